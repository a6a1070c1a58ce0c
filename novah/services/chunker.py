import re
import logging
from typing import Optional

from novah.core.config import settings

logger = logging.getLogger(__name__)

# Sentence boundary: terminal punctuation followed by whitespace. The
# whitespace is captured so chunks keep the text's own separators.
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?؟。])(\s+)")


def target_chunk_size(text: str, threshold: Optional[int] = None) -> int:
    """Larger chunks for huge documents keep the number of AI calls bounded."""
    if threshold is None:
        threshold = settings.LARGE_DOCUMENT_THRESHOLD
    if len(text) > threshold:
        return settings.CHUNK_SIZE_LARGE
    return settings.CHUNK_SIZE_SMALL


def chunk_text(text: str, chunk_size: Optional[int] = None) -> list[str]:
    """
    Split text into non-overlapping chunks on sentence boundaries.

    Sentences inside a chunk keep their original separators; only the
    separator between two chunks is dropped. A sentence longer than the
    target becomes a chunk of its own and is never split.
    """
    text = text.strip() if text else ""
    if not text:
        return []

    if chunk_size is None:
        chunk_size = target_chunk_size(text)
    parts = _SENTENCE_BOUNDARY.split(text)
    # parts = [sentence, sep, sentence, sep, ..., sentence]
    sentences = parts[0::2]
    separators = [""] + parts[1::2]

    chunks: list[str] = []
    current = ""
    for sep, sentence in zip(separators, sentences):
        if not sentence:
            continue
        if current and len(current) + len(sep) + len(sentence) > chunk_size:
            chunks.append(current)
            current = sentence
        else:
            current = f"{current}{sep}{sentence}" if current else sentence

    if current:
        chunks.append(current)

    logger.info(f"[CHUNKER] {len(text)} chars → {len(chunks)} chunks (target {chunk_size})")
    return chunks
