"""
Novah: Mind-Map Builder
=======================
Turns a ChunkTreeNode (document path) or a research plan (query-only path)
into the flat graph the front end renders:

    nodes: [{id, label, type, level, parentId, expanded, hasChildren}]
    edges: [{source, target}]

Graphs are never mutated in place. Every function here returns a new
MindMapGraph; `apply_expansion` is the only way nodes are appended after
the initial build.
"""

import itertools
import logging
from typing import Iterable, Optional

from novah.core.config import settings
from novah.core.exceptions import NodeNotFoundError
from novah.schemas.mindmap import (
    NODE_TYPE_RULES,
    ChunkTreeNode,
    ExpansionDelta,
    MindMapEdge,
    MindMapGraph,
    MindMapNode,
    NodeType,
    node_type_for_level,
)
from novah.schemas.research import SearchQuery

logger = logging.getLogger(__name__)

CENTER_ID = "center"
CENTER_PLACEHOLDER = "Research Topic"

# (id, label, [(sub id, sub label), ...])
PLAN_CATEGORIES = [
    ("research_methods", "Research Methods", [
        ("quantitative", "Quantitative Studies"),
        ("qualitative", "Qualitative Analysis"),
    ]),
    ("key_findings", "Key Findings", [
        ("primary_results", "Primary Results"),
        ("secondary_insights", "Secondary Insights"),
    ]),
    ("analysis", "Analysis & Insights", [
        ("patterns", "Pattern Recognition"),
        ("correlations", "Correlations"),
    ]),
    ("implications", "Future Implications", [
        ("short_term", "Short-term Outlook"),
        ("long_term", "Long-term Prospects"),
    ]),
]


# ── Helpers ──────────────────────────────────────────────────────────────────

def truncate_label(text: str, cap: int) -> str:
    """Collapse whitespace and cut to `cap` chars, marking the cut with '...'."""
    text = " ".join((text or "").split())
    if len(text) <= cap:
        return text
    return text[: max(cap - 3, 1)].rstrip() + "..."


def make_node(
    node_id: str,
    label: str,
    node_type: NodeType,
    level: int,
    parent_id: Optional[str],
    expanded: Optional[bool] = None,
    has_children: bool = False,
) -> MindMapNode:
    rule = NODE_TYPE_RULES[node_type]
    return MindMapNode(
        id=node_id,
        label=truncate_label(label, rule.label_cap) or "Untitled",
        type=node_type,
        level=level,
        parent_id=parent_id,
        expanded=rule.default_expanded if expanded is None else expanded,
        has_children=has_children,
    )


def next_free_id(prefix: str, taken: set[str], start: int = 1) -> str:
    """First `{prefix}{n}` (n >= start) not in `taken`."""
    for n in itertools.count(start):
        candidate = f"{prefix}{n}"
        if candidate not in taken:
            return candidate


def _center(label: str, fallback: str = CENTER_PLACEHOLDER) -> MindMapNode:
    text = (label or "").strip() or (fallback or "").strip() or CENTER_PLACEHOLDER
    return make_node(CENTER_ID, text, NodeType.center, 0, None, has_children=True)


# ── Contract A: from tree ────────────────────────────────────────────────────

def build_from_tree(
    tree: ChunkTreeNode,
    center_label: str,
    max_depth: Optional[int] = None,
) -> MindMapGraph:
    """
    Flatten a tree depth-first under a center node.

    The tree root becomes the single level-1 node; content deeper than
    `max_depth` levels from center is dropped.
    """
    if max_depth is None:
        max_depth = settings.MINDMAP_MAX_DEPTH
    nodes: list[MindMapNode] = [_center(center_label, tree.title)]
    edges: list[MindMapEdge] = []
    counter = itertools.count()

    def emit(data: ChunkTreeNode, parent_id: str, level: int) -> None:
        node_id = f"node_{next(counter)}"
        nodes.append(make_node(
            node_id,
            data.title,
            node_type_for_level(level),
            level,
            parent_id,
            expanded=level <= 2,
            has_children=bool(data.children),
        ))
        edges.append(MindMapEdge(source=parent_id, target=node_id))
        if level < max_depth:
            for child in data.children:
                emit(child, node_id, level + 1)

    if max_depth >= 1:
        emit(tree, CENTER_ID, 1)
    logger.info(f"[MINDMAP] Built {len(nodes)} nodes from tree (max depth {max_depth})")
    return MindMapGraph(nodes=nodes, edges=edges)


# ── Contract B: from research plan ───────────────────────────────────────────

def build_from_plan(query: str, sub_queries: Iterable[SearchQuery]) -> MindMapGraph:
    """Default structure for requests without documents: fixed categories + query branch."""
    sub_queries = list(sub_queries)
    nodes: list[MindMapNode] = [_center(query)]
    edges: list[MindMapEdge] = []

    for cat_id, cat_label, subs in PLAN_CATEGORIES:
        nodes.append(make_node(cat_id, cat_label, NodeType.main, 1, CENTER_ID, has_children=True))
        edges.append(MindMapEdge(source=CENTER_ID, target=cat_id))
        for sub_id, sub_label in subs:
            nodes.append(make_node(
                sub_id, sub_label, NodeType.sub, 2, cat_id, expanded=False, has_children=True,
            ))
            edges.append(MindMapEdge(source=cat_id, target=sub_id))

    if sub_queries:
        nodes.append(make_node("queries", "Research Queries", NodeType.main, 1, CENTER_ID, has_children=True))
        edges.append(MindMapEdge(source=CENTER_ID, target="queries"))
        for i, sub_query in enumerate(sub_queries):
            query_id = f"query_{i}"
            nodes.append(make_node(
                query_id, sub_query.query, NodeType.query, 2, "queries", has_children=True,
            ))
            edges.append(MindMapEdge(source="queries", target=query_id))

    logger.info(f"[MINDMAP] Built {len(nodes)} nodes from plan ({len(sub_queries)} sub-queries)")
    return MindMapGraph(nodes=nodes, edges=edges)


# ── Contract C: uploaded files ───────────────────────────────────────────────

def attach_files(graph: MindMapGraph, file_names: Iterable[str]) -> MindMapGraph:
    """Hang an "Uploaded Files" branch off center, one child per file in order."""
    file_names = list(file_names)
    if not file_names:
        return graph
    if graph.find(CENTER_ID) is None:
        raise NodeNotFoundError(CENTER_ID)

    taken = graph.node_ids()
    files_id = "files" if "files" not in taken else next_free_id("files_", taken)
    taken.add(files_id)

    nodes = [make_node(files_id, "Uploaded Files", NodeType.main, 1, CENTER_ID, has_children=True)]
    edges = [MindMapEdge(source=CENTER_ID, target=files_id)]
    for name in file_names:
        file_id = next_free_id("file_", taken, start=0)
        taken.add(file_id)
        nodes.append(make_node(file_id, name, NodeType.file, 2, files_id))
        edges.append(MindMapEdge(source=files_id, target=file_id))

    return MindMapGraph(nodes=[*graph.nodes, *nodes], edges=[*graph.edges, *edges])


# ── Mutation ─────────────────────────────────────────────────────────────────

def apply_expansion(graph: MindMapGraph, delta: ExpansionDelta) -> MindMapGraph:
    """
    Return a new graph with `delta` appended. Parents gaining children are
    marked expanded. Raises NodeNotFoundError for an unknown parent and
    ValueError for id collisions; the input graph is never touched.
    """
    known = {node.id: node for node in graph.nodes}
    for node in delta.nodes:
        if node.id in known:
            raise ValueError(f"Node id '{node.id}' already exists")
        if node.parent_id not in known:
            raise NodeNotFoundError(node.parent_id)
        if node.level != known[node.parent_id].level + 1:
            raise ValueError(f"Node '{node.id}' level does not follow its parent")
        known[node.id] = node

    existing_edges = {(e.source, e.target) for e in graph.edges}
    for edge in delta.edges:
        if edge.source not in known or edge.target not in known:
            raise NodeNotFoundError(edge.target if edge.source in known else edge.source)
        if (edge.source, edge.target) in existing_edges:
            raise ValueError(f"Duplicate edge {edge.source} → {edge.target}")
        existing_edges.add((edge.source, edge.target))

    parents = {node.parent_id for node in delta.nodes}
    nodes = [
        node.model_copy(update={"expanded": True, "has_children": True})
        if node.id in parents else node
        for node in graph.nodes
    ]
    return MindMapGraph(nodes=[*nodes, *delta.nodes], edges=[*graph.edges, *delta.edges])


def append_follow_up_node(graph: MindMapGraph, question: str) -> ExpansionDelta:
    """One `query` node under center for a follow-up question."""
    center = graph.find(CENTER_ID)
    if center is None:
        raise NodeNotFoundError(CENTER_ID)
    node_id = next_free_id("followup_", graph.node_ids())
    node = make_node(
        node_id, question, NodeType.query, center.level + 1, CENTER_ID, has_children=True,
    )
    return ExpansionDelta(nodes=[node], edges=[MindMapEdge(source=CENTER_ID, target=node_id)])


# ── Inspection ───────────────────────────────────────────────────────────────

def graph_outline(graph: MindMapGraph, max_nodes: int = 200) -> str:
    """Indented outline of the graph labels, used as prompt context."""
    children: dict[Optional[str], list[MindMapNode]] = {}
    for node in graph.nodes:
        children.setdefault(node.parent_id, []).append(node)

    lines: list[str] = []
    stack = [(node, 0) for node in reversed(children.get(None, []))]
    while stack and len(lines) < max_nodes:
        node, depth = stack.pop()
        lines.append("  " * depth + f"- {node.label}")
        stack.extend((child, depth + 1) for child in reversed(children.get(node.id, [])))
    return "\n".join(lines)


def validate_graph(graph: MindMapGraph, max_depth: Optional[int] = None) -> None:
    """Raise ValueError on the first structural invariant the graph breaks."""
    seen: dict[str, MindMapNode] = {}
    roots = [node for node in graph.nodes if node.level == 0]
    if len(roots) != 1 or roots[0].type is not NodeType.center:
        raise ValueError(f"Expected exactly one center node at level 0, found {len(roots)}")

    for node in graph.nodes:
        if node.id in seen:
            raise ValueError(f"Duplicate node id '{node.id}'")
        if node.level > 0:
            parent = seen.get(node.parent_id)
            if parent is None:
                raise ValueError(f"Node '{node.id}' references unknown or later parent '{node.parent_id}'")
            if node.level != parent.level + 1:
                raise ValueError(f"Node '{node.id}' is at level {node.level} under level {parent.level}")
        if max_depth is not None and node.level > max_depth:
            raise ValueError(f"Node '{node.id}' exceeds max depth {max_depth}")
        seen[node.id] = node

    pairs: set[tuple[str, str]] = set()
    for edge in graph.edges:
        if edge.source not in seen or edge.target not in seen:
            raise ValueError(f"Dangling edge {edge.source} → {edge.target}")
        if (edge.source, edge.target) in pairs:
            raise ValueError(f"Duplicate edge {edge.source} → {edge.target}")
        if seen[edge.target].parent_id != edge.source:
            raise ValueError(f"Edge {edge.source} → {edge.target} disagrees with parentId")
        if not seen[edge.source].has_children:
            raise ValueError(f"Edge source '{edge.source}' is not marked hasChildren")
        pairs.add((edge.source, edge.target))

    targets = {target for _, target in pairs}
    for node in graph.nodes:
        if node.level > 0 and node.id not in targets:
            raise ValueError(f"Node '{node.id}' has no edge from its parent")
