import logging
from typing import Optional

from novah.ai_engine import CompletionFn, complete, complete_and_parse
from novah.core.config import settings
from novah.prompts import CHUNK_SUMMARY_PROMPT
from novah.schemas.mindmap import ChunkTreeNode
from novah.services.tree_merger import prune_tree

logger = logging.getLogger(__name__)


def fallback_summary() -> ChunkTreeNode:
    """Deterministic stub used whenever a chunk cannot be summarized."""
    return ChunkTreeNode(
        title="Document Section",
        keywords=["analysis", "content"],
        children=[],
    )


async def summarize_chunk(
    chunk: str,
    llm: CompletionFn = complete,
    max_depth: Optional[int] = None,
) -> ChunkTreeNode:
    """
    Condense one chunk into a small labeled tree.
    Never raises: provider failures and unparseable output yield the stub.
    """
    if max_depth is None:
        max_depth = settings.SUMMARY_MAX_DEPTH
    prompt = CHUNK_SUMMARY_PROMPT.format(
        max_words=settings.SUMMARY_MAX_WORDS,
        max_depth=max_depth,
        max_keywords=settings.MAX_KEYWORDS,
        chunk=chunk,
    )
    tree = await complete_and_parse(
        llm,
        prompt,
        ChunkTreeNode.model_validate,
        fallback_summary,
        label="SUMMARY",
    )
    return prune_tree(tree, max_depth)
