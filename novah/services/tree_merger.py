"""
Novah: Tree Merger
==================
Combines per-chunk summary trees into a single tree.

Trees are merged tournament-style: the first `MERGE_BATCH_SIZE` trees are
merged into one node which is appended to the back of the queue, until a
single root remains. A batch the model cannot merge is wrapped in a
"Merged Analysis" node instead, so merging always terminates with one root.
"""

import json
import logging
from typing import Optional

from novah.ai_engine import CompletionFn, complete, complete_and_parse
from novah.core.config import settings
from novah.prompts import MERGE_TREES_PROMPT
from novah.schemas.mindmap import ChunkTreeNode

logger = logging.getLogger(__name__)


# ── Tree utilities ───────────────────────────────────────────────────────────

def tree_depth(tree: ChunkTreeNode) -> int:
    """Number of levels, a lone node being depth 1."""
    return 1 + max((tree_depth(child) for child in tree.children), default=0)


def serialized_size(tree: ChunkTreeNode) -> int:
    return len(tree.model_dump_json())


def collapse_deepest_level(tree: ChunkTreeNode) -> ChunkTreeNode:
    """
    Fold the deepest level into the keyword lists of its parents.
    Returns a new tree one level shallower (a lone node is returned as is).

    Folded titles, and the keywords they carried, are all kept: the
    keyword cap bounds model output only, so no leaf ever drops out of
    the tree.
    """
    depth = tree_depth(tree)
    if depth <= 1:
        return tree
    return _collapse_at(tree, level=1, parent_level=depth - 1)


def _collapse_at(node: ChunkTreeNode, level: int, parent_level: int) -> ChunkTreeNode:
    # model_construct skips the keyword cap of model-facing validation
    if level == parent_level:
        keywords = list(node.keywords)
        for child in node.children:
            for keyword in (child.title, *child.keywords):
                if keyword not in keywords:
                    keywords.append(keyword)
        return ChunkTreeNode.model_construct(title=node.title, keywords=keywords, children=[])
    return ChunkTreeNode.model_construct(
        title=node.title,
        keywords=list(node.keywords),
        children=[_collapse_at(c, level + 1, parent_level) for c in node.children],
    )


def prune_tree(tree: ChunkTreeNode, max_depth: int) -> ChunkTreeNode:
    """Collapse levels until the tree is at most `max_depth` deep."""
    while tree_depth(tree) > max(max_depth, 1):
        tree = collapse_deepest_level(tree)
    return tree


def fit_to_budget(tree: ChunkTreeNode, char_limit: int) -> ChunkTreeNode:
    """Collapse levels until the serialized tree fits `char_limit` or is a lone node."""
    while serialized_size(tree) > char_limit and tree_depth(tree) > 1:
        tree = collapse_deepest_level(tree)
    return tree


# ── Merge ────────────────────────────────────────────────────────────────────

def _fallback_wrapper(batch: list[ChunkTreeNode]) -> ChunkTreeNode:
    return ChunkTreeNode(
        title="Merged Analysis",
        keywords=["combined", "analysis"],
        children=list(batch),
    )


async def _merge_batch(
    batch: list[ChunkTreeNode],
    llm: CompletionFn,
    char_limit: int,
) -> ChunkTreeNode:
    prompt = MERGE_TREES_PROMPT.format(
        char_limit=char_limit,
        trees=json.dumps([tree.model_dump() for tree in batch], ensure_ascii=False),
    )
    merged = await complete_and_parse(
        llm,
        prompt,
        ChunkTreeNode.model_validate,
        lambda: None,
        label="MERGE",
    )
    if merged is None:
        logger.warning(f"[MERGE] Batch of {len(batch)} trees wrapped without merging")
        return _fallback_wrapper(batch)
    return fit_to_budget(merged, char_limit)


async def merge_trees(
    trees: list[ChunkTreeNode],
    llm: CompletionFn = complete,
    batch_size: Optional[int] = None,
    char_limit: Optional[int] = None,
) -> ChunkTreeNode:
    """Merge any non-empty list of trees into exactly one root."""
    if not trees:
        raise ValueError("merge_trees requires at least one tree")
    if len(trees) == 1:
        return trees[0]

    if batch_size is None:
        batch_size = settings.MERGE_BATCH_SIZE
    batch_size = max(batch_size, 2)
    if char_limit is None:
        char_limit = settings.MERGE_CHAR_LIMIT

    queue = list(trees)
    rounds = 0
    while len(queue) > 1:
        batch, queue = queue[:batch_size], queue[batch_size:]
        queue.append(await _merge_batch(batch, llm, char_limit))
        rounds += 1

    logger.info(f"[MERGE] ✓ {len(trees)} trees merged in {rounds} batch(es)")
    return queue[0]
