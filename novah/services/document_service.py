import asyncio
import logging
from typing import List, Optional

from pydantic import BaseModel

from novah.ai_engine import CompletionFn, complete
from novah.core.config import settings
from novah.schemas.mindmap import ChunkTreeNode
from novah.services.chunker import chunk_text
from novah.services.summarizer import summarize_chunk
from novah.services.tree_merger import merge_trees

logger = logging.getLogger(__name__)


class ProcessedDocument(BaseModel):
    chunks: List[str] = []
    tree: Optional[ChunkTreeNode] = None
    summary: str = ""


def render_outline(tree: ChunkTreeNode, indent: int = 0) -> str:
    """Indented plain-text outline of a tree, used as prompt context."""
    line = "  " * indent + f"- {tree.title}"
    if tree.keywords:
        line += f" ({', '.join(tree.keywords)})"
    lines = [line]
    for child in tree.children:
        lines.append(render_outline(child, indent + 1))
    return "\n".join(lines)


def summary_semaphore(concurrency: Optional[int] = None) -> asyncio.Semaphore:
    """Limit on concurrent chunk summaries; share one across a request's documents."""
    if concurrency is None:
        concurrency = settings.SUMMARY_CONCURRENCY
    return asyncio.Semaphore(max(concurrency, 1))


async def summarize_chunks(
    chunks: list[str],
    llm: CompletionFn = complete,
    concurrency: Optional[int] = None,
    semaphore: Optional[asyncio.Semaphore] = None,
) -> list[ChunkTreeNode]:
    """Summarize every chunk concurrently; result order matches chunk order."""
    if semaphore is None:
        semaphore = summary_semaphore(concurrency)

    async def _one(chunk: str) -> ChunkTreeNode:
        async with semaphore:
            return await summarize_chunk(chunk, llm)

    return list(await asyncio.gather(*(_one(c) for c in chunks)))


async def process_file_content(
    text: str,
    llm: CompletionFn = complete,
    semaphore: Optional[asyncio.Semaphore] = None,
) -> ProcessedDocument:
    """Chunk → summarize → merge one document's text."""
    chunks = chunk_text(text)
    if not chunks:
        return ProcessedDocument()

    summaries = await summarize_chunks(chunks, llm, semaphore=semaphore)
    tree = await merge_trees(summaries, llm)
    logger.info(f"[DOCUMENT] ✓ {len(chunks)} chunks condensed into '{tree.title}'")
    return ProcessedDocument(chunks=chunks, tree=tree, summary=render_outline(tree))
