import io

import fitz  # PyMuPDF
import pytest
from docx import Document

from novah.core.exceptions import FileExtractionError, UnsupportedFileTypeError
from novah.services.file_service import extract_text_from_file, file_extension, process_files


def _pdf_bytes(text: str) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def _docx_bytes() -> bytes:
    document = Document()
    document.add_paragraph("Intro paragraph")
    table = document.add_table(rows=1, cols=2)
    table.cell(0, 0).text = "Cell A"
    table.cell(0, 1).text = "Cell B"
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def test_file_extension_is_lower_cased():
    assert file_extension("Report.PDF") == ".pdf"
    assert file_extension("noext") == ""


@pytest.mark.asyncio
async def test_txt_extraction():
    result = await extract_text_from_file("  Solar is cheap.  ".encode(), "notes.txt")
    assert result.name == "notes.txt"
    assert result.content == "Solar is cheap."
    assert result.type == ".txt"
    assert result.size == 19


@pytest.mark.asyncio
async def test_invalid_utf8_is_replaced_not_rejected():
    result = await extract_text_from_file(b"caf\xe9 menu", "menu.txt")
    assert result.content.startswith("caf")


@pytest.mark.asyncio
async def test_pdf_extraction():
    result = await extract_text_from_file(_pdf_bytes("Hello from a PDF"), "paper.pdf")
    assert "Hello from a PDF" in result.content
    assert result.type == ".pdf"


@pytest.mark.asyncio
async def test_docx_extraction_reads_paragraphs_and_tables():
    result = await extract_text_from_file(_docx_bytes(), "brief.docx")
    assert "Intro paragraph" in result.content
    assert "Cell A" in result.content and "Cell B" in result.content


@pytest.mark.asyncio
async def test_unsupported_extension_raises():
    with pytest.raises(UnsupportedFileTypeError) as excinfo:
        await extract_text_from_file(b"MZ", "tool.exe")
    assert excinfo.value.extension == ".exe"


@pytest.mark.asyncio
async def test_empty_and_corrupt_files_raise_extraction_error():
    with pytest.raises(FileExtractionError):
        await extract_text_from_file(b"", "empty.txt")
    with pytest.raises(FileExtractionError):
        await extract_text_from_file(b"not a pdf", "broken.pdf")
    with pytest.raises(FileExtractionError):
        await extract_text_from_file(b"   \n ", "blank.txt")


@pytest.mark.asyncio
async def test_process_files_skips_unreadable_files_in_order():
    uploads = [("a.txt", b"First."), ("empty.txt", b""), ("b.txt", b"Second.")]
    files = await process_files(uploads)
    assert [f.name for f in files] == ["a.txt", "b.txt"]


@pytest.mark.asyncio
async def test_process_files_rejects_unsupported_type():
    with pytest.raises(UnsupportedFileTypeError):
        await process_files([("a.txt", b"First."), ("image.png", b"\x89PNG")])
