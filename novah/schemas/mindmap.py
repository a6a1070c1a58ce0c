from __future__ import annotations

from enum import Enum
from typing import List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from novah.core.config import settings


class CamelModel(BaseModel):
    """Base model serialising to the camelCase JSON the front end expects."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Chunk Tree ───────────────────────────────────────────────────────────────

class ChunkTreeNode(BaseModel):
    """Condensed unit of source text (recursive)."""
    title: str
    keywords: List[str] = []
    children: List[ChunkTreeNode] = []

    @field_validator("title", mode="before")
    @classmethod
    def require_title(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("title must be a non-empty string")
        return v.strip()

    @field_validator("keywords", mode="before")
    @classmethod
    def normalise_keywords(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        seen: list[str] = []
        for kw in v:
            kw = str(kw).strip()
            if kw and kw not in seen:
                seen.append(kw)
        return seen[: settings.MAX_KEYWORDS]

    @field_validator("children", mode="before")
    @classmethod
    def default_children(cls, v):
        return [] if v is None else v


ChunkTreeNode.model_rebuild()


# ── Graph ────────────────────────────────────────────────────────────────────

class NodeType(str, Enum):
    center = "center"
    main = "main"
    sub = "sub"
    detail = "detail"
    file = "file"
    query = "query"


class NodeTypeRule(NamedTuple):
    min_level: int
    max_level: Optional[int]  # None = unbounded
    label_cap: int
    default_expanded: bool


NODE_TYPE_RULES: dict[NodeType, NodeTypeRule] = {
    NodeType.center: NodeTypeRule(0, 0, 20, True),
    NodeType.main: NodeTypeRule(1, 1, 25, True),
    NodeType.sub: NodeTypeRule(2, 2, 25, True),
    NodeType.detail: NodeTypeRule(3, None, 30, False),
    NodeType.file: NodeTypeRule(2, 2, 25, False),
    NodeType.query: NodeTypeRule(1, 2, 30, False),
}


def node_type_for_level(level: int) -> NodeType:
    """Structural type of a content node at *level* (center excluded)."""
    if level <= 0:
        return NodeType.center
    if level == 1:
        return NodeType.main
    if level == 2:
        return NodeType.sub
    return NodeType.detail


class MindMapNode(CamelModel):
    id: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)
    type: NodeType
    level: int = Field(..., ge=0)
    parent_id: Optional[str] = None
    expanded: bool = False
    has_children: bool = False

    @model_validator(mode="after")
    def check_type_rules(self) -> MindMapNode:
        rule = NODE_TYPE_RULES[self.type]
        if self.level < rule.min_level or (
            rule.max_level is not None and self.level > rule.max_level
        ):
            raise ValueError(
                f"Node '{self.id}' of type '{self.type.value}' cannot sit at level {self.level}"
            )
        if (self.type is NodeType.center) != (self.parent_id is None):
            raise ValueError(f"Node '{self.id}': only the center node has no parent")
        return self


class MindMapEdge(CamelModel):
    source: str
    target: str


class MindMapGraph(CamelModel):
    """Flat arena of nodes addressed by id, plus parent → child edges."""
    nodes: List[MindMapNode] = []
    edges: List[MindMapEdge] = []

    def find(self, node_id: str) -> Optional[MindMapNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> set[str]:
        return {node.id for node in self.nodes}


class ExpansionDelta(CamelModel):
    """Nodes and edges to append to an existing graph."""
    nodes: List[MindMapNode] = []
    edges: List[MindMapEdge] = []
