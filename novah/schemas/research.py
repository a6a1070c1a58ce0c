"""
Novah: Research Schemas
=======================
Request/response contract of the research API, plus the small structured
payloads requested from the AI provider (sub-queries, learnings, reflection).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from novah.schemas.mindmap import CamelModel, MindMapGraph


class ResearchMode(str, Enum):
    normal = "normal"
    deep = "deep"


# ── Thinking Steps ───────────────────────────────────────────────────────────

class StepType(str, Enum):
    file_processing = "file_processing"
    planning = "planning"
    searching = "searching"
    learning = "learning"
    reflection = "reflection"
    replanning = "replanning"  # reserved, never emitted
    answer_generation = "answer_generation"


class StepStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    complete = "complete"


class ThinkingStep(CamelModel):
    """One logged phase of the research pipeline."""
    id: int
    type: StepType
    title: str
    content: str
    status: StepStatus = StepStatus.pending
    data: Optional[Dict[str, Any]] = None


# ── AI payloads ──────────────────────────────────────────────────────────────

class SearchQuery(CamelModel):
    query: str = Field(..., min_length=1)
    purpose: str = ""


class SearchPlan(CamelModel):
    queries: List[SearchQuery]


class Learning(CamelModel):
    summary: str = Field(..., min_length=1)
    source_url: str = Field(..., min_length=1)


class LearningBatch(CamelModel):
    learnings: List[Learning]


class Reflection(CamelModel):
    decision: Literal["sufficient", "insufficient"]
    reason: str = ""


# ── Files ────────────────────────────────────────────────────────────────────

class ProcessedFile(CamelModel):
    """Extracted upload: the core never sees raw bytes."""
    name: str
    content: str
    type: str = ""
    size: int = 0


class FileInfo(CamelModel):
    name: str
    type: str
    size: int = 0


# ── Responses ────────────────────────────────────────────────────────────────

class ResearchAnswer(CamelModel):
    content: str
    sources: List[str] = []


class ResearchResult(CamelModel):
    thinking_steps: List[ThinkingStep]
    response: ResearchAnswer
    mind_map: MindMapGraph
    files: List[FileInfo] = []


class FollowUpResult(CamelModel):
    thinking_steps: List[ThinkingStep]
    response: ResearchAnswer


class ErrorResponse(CamelModel):
    """Standard error envelope."""
    status: str = "error"
    message: str
    detail: Optional[str] = None


# ── Requests ─────────────────────────────────────────────────────────────────

class FollowUpRequest(CamelModel):
    query: str = Field(..., min_length=1)
    context: str = ""
    files: List[ProcessedFile] = []


class ExpandNodeRequest(CamelModel):
    node_id: str = Field(..., min_length=1)
    current_mind_map: MindMapGraph
    query: str = ""


class FollowUpNodeRequest(CamelModel):
    query: str = Field(..., min_length=1)
    current_mind_map: MindMapGraph
