import io
import os
import logging
import asyncio
from typing import Iterable, List, Tuple

import fitz  # PyMuPDF
from docx import Document

from novah.core.config import settings
from novah.core.exceptions import FileExtractionError, UnsupportedFileTypeError
from novah.schemas.research import ProcessedFile

logger = logging.getLogger(__name__)

MAX_PDF_PAGES = 200


def file_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


async def extract_text_from_file(file_content: bytes, filename: str) -> ProcessedFile:
    """
    Dispatch on extension: .txt, .pdf (PyMuPDF), .doc/.docx (python-docx).
    Raises UnsupportedFileTypeError or FileExtractionError.
    """
    ext = file_extension(filename)
    extractor = _EXTRACTORS.get(ext)
    if extractor is None or ext not in settings.ALLOWED_EXTENSIONS:
        raise UnsupportedFileTypeError(ext)

    # ── Validate file size ────────────────────────────
    max_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024
    if len(file_content) > max_bytes:
        raise FileExtractionError(f"File exceeds {settings.MAX_FILE_SIZE_MB}MB limit.")

    if len(file_content) == 0:
        raise FileExtractionError("File is empty.")

    try:
        text = await extractor(file_content)
    except FileExtractionError:
        raise
    except Exception as e:
        logger.error(f"[FILES] Processing failed for {filename}: {str(e)}")
        raise FileExtractionError(f"Processing error: {str(e)}") from e

    if not text or not text.strip():
        raise FileExtractionError("No text found in file.")

    return ProcessedFile(
        name=filename,
        content=text.strip(),
        type=ext,
        size=len(file_content),
    )


async def process_files(uploads: Iterable[Tuple[str, bytes]]) -> List[ProcessedFile]:
    """
    Extract every (filename, bytes) upload in order. Files that cannot be
    read are skipped; an unsupported type still raises.
    """
    processed: List[ProcessedFile] = []
    for filename, content in uploads:
        try:
            processed.append(await extract_text_from_file(content, filename))
        except UnsupportedFileTypeError:
            raise
        except FileExtractionError as e:
            logger.warning(f"[FILES] Skipping {filename}: {e}")
    logger.info(f"[FILES] ✓ {len(processed)} file(s) extracted")
    return processed


async def _extract_from_txt(content: bytes) -> str:
    return content.decode("utf-8", errors="replace")


async def _extract_from_pdf(content: bytes) -> str:
    """
    Extract text from PDF using PyMuPDF (fitz).
    Runs in a thread pool to avoid blocking the async event loop.
    """
    def _process_pdf(data: bytes) -> str:
        with fitz.open(stream=data, filetype="pdf") as doc:
            if doc.page_count == 0:
                raise FileExtractionError("PDF has no pages.")

            if doc.page_count > MAX_PDF_PAGES:
                raise FileExtractionError(f"PDF too large (>{MAX_PDF_PAGES} pages).")

            text_blocks = []
            for page in doc:
                page_text = page.get_text("text")
                if page_text.strip():
                    text_blocks.append(page_text)

            return "\n\n".join(text_blocks)

    return await asyncio.to_thread(_process_pdf, content)


async def _extract_from_docx(content: bytes) -> str:
    """Paragraphs, then table cells, of a Word document."""
    def _process_docx(data: bytes) -> str:
        document = Document(io.BytesIO(data))
        parts = [p.text for p in document.paragraphs if p.text.strip()]
        for table in document.tables:
            for row in table.rows:
                for cell in row.cells:
                    if cell.text.strip():
                        parts.append(cell.text)
        return "\n".join(parts)

    return await asyncio.to_thread(_process_docx, content)


_EXTRACTORS = {
    ".txt": _extract_from_txt,
    ".pdf": _extract_from_pdf,
    ".doc": _extract_from_docx,  # only succeeds for .doc files that are really OOXML
    ".docx": _extract_from_docx,
}
