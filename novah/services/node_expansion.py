import logging
from typing import Any, Optional

from novah.ai_engine import CompletionFn, complete, complete_and_parse
from novah.core.config import settings
from novah.core.exceptions import NodeNotFoundError
from novah.prompts import EXPAND_NODE_PROMPT
from novah.schemas.mindmap import (
    NODE_TYPE_RULES,
    ChunkTreeNode,
    ExpansionDelta,
    MindMapEdge,
    MindMapGraph,
    MindMapNode,
    node_type_for_level,
)
from novah.services.mindmap_builder import (
    graph_outline,
    make_node,
    next_free_id,
    truncate_label,
)

logger = logging.getLogger(__name__)


def _parse_suggestions(data: Any) -> list[str]:
    """Accept {"new_nodes": [...]}, {"nodes": [...]} or a bare list of trees."""
    if isinstance(data, dict):
        data = data.get("new_nodes", data.get("nodes"))
    if not isinstance(data, list):
        raise ValueError("expected a list of new nodes")
    return [ChunkTreeNode.model_validate(item).title for item in data]


def fallback_titles(parent: MindMapNode, context: str) -> list[str]:
    seed = (context or "").strip() or parent.label
    return [seed, "Supporting Evidence", "Further Analysis"]


def _numbered(title: str, seen: set[str], cap: int) -> str:
    """`title`, or `title 2`, `title 3`... whichever is not yet a sibling label."""
    candidate, n = title, 2
    while truncate_label(candidate, cap).lower() in seen:
        suffix = f" {n}"
        candidate = truncate_label(title, cap - len(suffix)) + suffix
        n += 1
    return candidate


async def expand_node(
    node_id: str,
    graph: MindMapGraph,
    context: str,
    llm: CompletionFn = complete,
    max_children: Optional[int] = None,
    max_level: Optional[int] = None,
) -> ExpansionDelta:
    """
    Suggest children for `node_id`. Returns only the new nodes and edges;
    the caller merges them with `apply_expansion`.

    Raises NodeNotFoundError before any AI call when the node is absent.
    """
    parent = graph.find(node_id)
    if parent is None:
        raise NodeNotFoundError(node_id)

    if max_children is None:
        max_children = settings.EXPANSION_MAX_CHILDREN
    if max_level is None:
        max_level = settings.EXPANSION_MAX_LEVEL
    level = parent.level + 1
    if level > max_level or max_children <= 0:
        logger.info(f"[EXPAND] Nothing to add under '{node_id}' (max level {max_level}, max children {max_children})")
        return ExpansionDelta()

    node_type = node_type_for_level(level)
    cap = NODE_TYPE_RULES[node_type].label_cap

    prompt = EXPAND_NODE_PROMPT.format(
        node_label=parent.label,
        max_children=max_children,
        outline=graph_outline(graph),
        question=context or parent.label,
    )
    suggestions = await complete_and_parse(llm, prompt, _parse_suggestions, list, label="EXPAND")

    # compare as stored: labels are cut to the level cap
    seen = {n.label.lower() for n in graph.nodes if n.parent_id == node_id}
    titles: list[str] = []
    for title in suggestions:
        key = truncate_label(title, cap).lower()
        if key and key not in seen:
            seen.add(key)
            titles.append(title)
    titles = titles[:max_children]

    if not titles:
        logger.warning(f"[EXPAND] No usable suggestions for '{node_id}', using placeholders")
        for title in fallback_titles(parent, context)[:max_children]:
            title = _numbered(title, seen, cap)
            seen.add(truncate_label(title, cap).lower())
            titles.append(title)

    taken = graph.node_ids()
    nodes: list[MindMapNode] = []
    edges: list[MindMapEdge] = []
    for title in titles:
        child_id = next_free_id(f"{node_id}_detail_", taken)
        taken.add(child_id)
        nodes.append(make_node(
            child_id,
            title,
            node_type,
            level,
            node_id,
            expanded=False,
            has_children=level < max_level,
        ))
        edges.append(MindMapEdge(source=node_id, target=child_id))

    logger.info(f"[EXPAND] ✓ '{node_id}' +{len(nodes)} nodes")
    return ExpansionDelta(nodes=nodes, edges=edges)
