"""
Novah: Research Orchestrator
============================
Drives one research request through a strictly sequential pipeline:

    file_processing (if files) → planning → searching/learning × N
        → reflection → answer_generation

Every phase is logged as a ThinkingStep. Each AI call has its own
deterministic fallback, so a failing provider degrades the content of a
phase but never aborts the run. The final answer and the mind map do not
depend on each other and are produced concurrently.
"""

import re
import asyncio
import logging
from typing import List, Optional, Union
from urllib.parse import quote_plus

from novah.ai_engine import CompletionFn, complete, complete_and_parse
from novah.core.config import settings
from novah.prompts import (
    FINAL_REPORT_PROMPT,
    LEARNINGS_PROMPT,
    REFLECTION_PROMPT,
    SEARCH_QUERIES_PROMPT,
)
from novah.schemas.mindmap import ChunkTreeNode, ExpansionDelta, MindMapGraph
from novah.schemas.research import (
    FileInfo,
    FollowUpResult,
    Learning,
    LearningBatch,
    ProcessedFile,
    Reflection,
    ResearchAnswer,
    ResearchMode,
    ResearchResult,
    SearchPlan,
    SearchQuery,
    StepStatus,
    StepType,
)
from novah.services.document_service import process_file_content, summary_semaphore
from novah.services.mindmap_builder import (
    append_follow_up_node,
    attach_files,
    build_from_plan,
    build_from_tree,
)
from novah.services.node_expansion import expand_node
from novah.services.thinking import ThinkingStepTracker
from novah.services.tree_merger import merge_trees

logger = logging.getLogger(__name__)

FOLLOW_UP_FILE_EXCERPT = 2000  # chars of each attached file added to follow-up context

_QUERY_TEMPLATES = [
    ("{q} overview", "Establish the core concepts and current state"),
    ("{q} latest developments", "Collect recent findings and data"),
    ("{q} challenges and limitations", "Identify open problems and risks"),
    ("{q} real-world applications", "Find concrete use cases and evidence"),
    ("{q} future outlook", "Gather expert projections"),
]


# ── Mode helpers ─────────────────────────────────────────────────────────────

def max_queries_for(mode: ResearchMode) -> int:
    return settings.DEEP_MAX_QUERIES if mode is ResearchMode.deep else settings.NORMAL_MAX_QUERIES


def word_budget_for(mode: ResearchMode) -> int:
    return settings.DEEP_WORD_BUDGET if mode is ResearchMode.deep else settings.NORMAL_WORD_BUDGET


def clip_words(text: str, budget: int) -> str:
    """Cut `text` after `budget` words, keeping its own whitespace and line breaks."""
    words = list(re.finditer(r"\S+", text))
    if len(words) <= budget:
        return text.strip()
    return text[: words[budget - 1].end()].strip()


def scholar_url(query: str) -> str:
    return f"https://scholar.google.com/scholar?q={quote_plus(query)}"


def _unique(items: List[str]) -> List[str]:
    seen: List[str] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


# ── Planning ─────────────────────────────────────────────────────────────────

def fallback_search_queries(query: str, count: int) -> List[SearchQuery]:
    return [
        SearchQuery(query=template.format(q=query), purpose=purpose)
        for template, purpose in _QUERY_TEMPLATES[:max(count, 1)]
    ]


def _parse_plan(data) -> List[SearchQuery]:
    if isinstance(data, list):
        data = {"queries": data}
    return SearchPlan.model_validate(data).queries


async def generate_search_queries(
    query: str,
    context: str,
    mode: ResearchMode,
    llm: CompletionFn = complete,
    max_queries: Optional[int] = None,
) -> List[SearchQuery]:
    count = max_queries if max_queries is not None else max_queries_for(mode)
    prompt = SEARCH_QUERIES_PROMPT.format(
        count=count, mode=mode.value, query=query, context=context or "none",
    )
    queries = await complete_and_parse(
        llm, prompt, _parse_plan, lambda: [], label="PLANNING",
    )
    queries = queries[:count]
    return queries or fallback_search_queries(query, count)


# ── Searching / learning ─────────────────────────────────────────────────────

def fallback_learnings(search_query: SearchQuery) -> List[Learning]:
    return [Learning(
        summary=f"Background literature on {search_query.query}. {search_query.purpose}".strip(),
        source_url=scholar_url(search_query.query),
    )]


def _parse_learnings(data) -> List[Learning]:
    if isinstance(data, list):
        data = {"learnings": data}
    return LearningBatch.model_validate(data).learnings


async def gather_learnings(
    search_query: SearchQuery,
    llm: CompletionFn = complete,
    count: Optional[int] = None,
) -> List[Learning]:
    if count is None:
        count = settings.LEARNINGS_PER_QUERY
    prompt = LEARNINGS_PROMPT.format(
        count=count, query=search_query.query, purpose=search_query.purpose or "general research",
    )
    learnings = await complete_and_parse(
        llm, prompt, _parse_learnings, lambda: [], label="SEARCH",
    )
    return learnings[:count] or fallback_learnings(search_query)


# ── Reflection ───────────────────────────────────────────────────────────────

async def perform_reflection(
    query: str,
    learnings: List[Learning],
    mode: ResearchMode,
    llm: CompletionFn = complete,
) -> Reflection:
    """Record a sufficiency verdict. Nothing branches on it."""
    def fallback() -> Reflection:
        if learnings:
            return Reflection(
                decision="sufficient",
                reason=f"{len(learnings)} learning(s) collected for the {mode.value} report.",
            )
        return Reflection(decision="insufficient", reason="No learnings were collected.")

    prompt = REFLECTION_PROMPT.format(
        mode=mode.value,
        word_budget=word_budget_for(mode),
        query=query,
        learnings="\n".join(f"- {l.summary}" for l in learnings) or "none",
    )
    return await complete_and_parse(
        llm, prompt, Reflection.model_validate, fallback, label="REFLECTION",
    )


# ── Answer ───────────────────────────────────────────────────────────────────

def fallback_report(query: str, file_count: int = 0) -> str:
    report = (
        f"# Research Analysis: {query}\n\n"
        "## Executive Summary\n"
        f"This is a preliminary overview of \"{query}\" assembled from the research plan. "
        "Live analysis was unavailable, so the points below are general guidance.\n\n"
        "## Key Insights\n"
        "- **Context**: Review recent literature to establish the current state of the topic.\n"
        "- **Evidence**: Prefer peer-reviewed and primary sources.\n"
        "- **Trends**: Compare findings over time to separate lasting shifts from noise.\n\n"
        "## Recommendations\n"
        "- Start from the listed sources and expand the mind map for detail.\n"
        "- Re-run the query to obtain a full analysis.\n"
    )
    if file_count:
        report += (
            "\n## File Analysis\n"
            f"{file_count} uploaded document(s) were condensed into the mind map.\n"
        )
    return report


async def generate_final_report(
    query: str,
    context: str,
    learnings: List[Learning],
    mode: ResearchMode,
    llm: CompletionFn = complete,
    file_count: int = 0,
) -> str:
    budget = word_budget_for(mode)
    prompt = FINAL_REPORT_PROMPT.format(
        word_budget=budget,
        query=query,
        context=context or "none",
        learnings="\n".join(f"- {l.summary} ({l.source_url})" for l in learnings) or "none",
    )
    try:
        content = await llm(prompt, json_mode=False)
    except Exception as e:
        logger.warning(f"[REPORT] AI call failed, using fallback: {str(e)[:200]}")
        content = ""
    if not content or not content.strip():
        content = fallback_report(query, file_count)
    return clip_words(content, budget)


# ── Mind map ─────────────────────────────────────────────────────────────────

async def generate_mind_map(
    query: str,
    tree: Optional[ChunkTreeNode],
    sub_queries: List[SearchQuery],
    file_names: List[str],
) -> MindMapGraph:
    if tree is not None:
        graph = build_from_tree(tree, center_label=query)
    else:
        graph = build_from_plan(query, sub_queries)
    return attach_files(graph, file_names)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ENTRY POINTS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

async def _search_and_learn(
    tracker: ThinkingStepTracker,
    queries: List[SearchQuery],
    llm: CompletionFn,
) -> List[Learning]:
    learnings: List[Learning] = []
    for search_query in queries:
        step = tracker.start(
            StepType.searching,
            f"Searching: {search_query.query}",
            f"Purpose: {search_query.purpose}" if search_query.purpose else "Gathering sources...",
            data={"query": search_query.query},
        )
        found = await gather_learnings(search_query, llm)
        tracker.complete(step.id)
        for learning in found:
            tracker.add(
                StepType.learning,
                "Knowledge acquired",
                learning.summary,
                status=StepStatus.complete,
                data={"source_url": learning.source_url, "summary": learning.summary},
            )
        learnings.extend(found)
    return learnings


async def _reflect(
    tracker: ThinkingStepTracker,
    query: str,
    learnings: List[Learning],
    mode: ResearchMode,
    llm: CompletionFn,
) -> Reflection:
    step = tracker.start(
        StepType.reflection,
        "Sufficiency Assessment",
        "Evaluating collected information for completeness...",
    )
    reflection = await perform_reflection(query, learnings, mode, llm)
    tracker.complete(
        step.id,
        content=f"Assessment: {reflection.decision}. {reflection.reason}".strip(),
        data=reflection.model_dump(),
    )
    return reflection


async def process_research(
    query: str,
    files: List[ProcessedFile],
    mode: Union[ResearchMode, str] = ResearchMode.normal,
    llm: CompletionFn = complete,
) -> ResearchResult:
    """Full pipeline: thinking steps, narrative answer with sources, mind map."""
    mode = ResearchMode(mode)
    tracker = ThinkingStepTracker()
    logger.info(f"[RESEARCH] '{query[:80]}' mode={mode.value} files={len(files)}")

    # ── 1. File processing ───────────────────────────────────────────────────
    file_context = ""
    doc_tree: Optional[ChunkTreeNode] = None
    if files:
        step = tracker.start(
            StepType.file_processing,
            "Processing uploaded files",
            f"Extracting and analyzing content from {len(files)} file(s)...",
        )
        readable = [f for f in files if f.content and f.content.strip()]
        # one summary limit for the whole request, not per document
        semaphore = summary_semaphore()
        documents = await asyncio.gather(
            *(process_file_content(f.content, llm, semaphore) for f in readable)
        )
        trees = [doc.tree for doc in documents if doc.tree is not None]
        for f, doc in zip(readable, documents):
            file_context += f"File: {f.name}\n{doc.summary}\n\n"
        if trees:
            doc_tree = await merge_trees(trees, llm)
        tracker.complete(
            step.id,
            content=(
                f"Processed {len(readable)} of {len(files)} file(s) into "
                f"{sum(len(doc.chunks) for doc in documents)} chunk(s). "
                "Document summary extracted for research context."
            ),
            data={"files": [f.name for f in files]},
        )

    # ── 2. Planning ──────────────────────────────────────────────────────────
    step = tracker.start(
        StepType.planning,
        "Research Planning",
        "Analyzing query and generating targeted search plan...",
    )
    queries = await generate_search_queries(query, file_context, mode, llm)
    tracker.complete(
        step.id,
        content=f"Generated {len(queries)} targeted research queries based on your {mode.value} research mode.",
        data={"queries": [q.model_dump() for q in queries]},
    )

    # ── 3. Searching & learning ──────────────────────────────────────────────
    learnings = await _search_and_learn(tracker, queries, llm)

    # ── 4. Reflection ────────────────────────────────────────────────────────
    await _reflect(tracker, query, learnings, mode, llm)

    # ── 5. Answer + mind map (independent, run concurrently) ─────────────────
    step = tracker.start(
        StepType.answer_generation,
        "Synthesizing Final Report",
        f"Generating comprehensive {mode.value} analysis...",
    )
    content, mind_map = await asyncio.gather(
        generate_final_report(query, file_context, learnings, mode, llm, file_count=len(files)),
        generate_mind_map(query, doc_tree, queries, [f.name for f in files]),
    )
    tracker.complete(step.id, content=f"Generated {mode.value} research report with actionable insights.")

    logger.info(
        f"[RESEARCH] ✓ {len(tracker.steps)} steps, {len(learnings)} learnings, "
        f"{len(mind_map.nodes)} mind-map nodes"
    )
    return ResearchResult(
        thinking_steps=tracker.finalize(),
        response=ResearchAnswer(
            content=content,
            sources=_unique([l.source_url for l in learnings]),
        ),
        mind_map=mind_map,
        files=[FileInfo(name=f.name, type=f.type, size=f.size) for f in files],
    )


async def process_follow_up(
    query: str,
    context: str = "",
    files: Optional[List[ProcessedFile]] = None,
    llm: CompletionFn = complete,
) -> FollowUpResult:
    """Same phases as a research run, minus file processing, with one sub-query."""
    files = files or []
    mode = ResearchMode.normal
    tracker = ThinkingStepTracker()
    logger.info(f"[FOLLOW-UP] '{query[:80]}' files={len(files)}")

    for f in files:
        if f.content:
            context += f"\n\nFile: {f.name}\n{f.content[:FOLLOW_UP_FILE_EXCERPT]}"

    step = tracker.start(
        StepType.planning,
        "Follow-up Analysis",
        f"Analyzing follow-up question: \"{query}\"",
    )
    queries = await generate_search_queries(query, context, mode, llm, max_queries=1)
    tracker.complete(step.id, data={"queries": [q.model_dump() for q in queries]})

    learnings = await _search_and_learn(tracker, queries, llm)
    await _reflect(tracker, query, learnings, mode, llm)

    step = tracker.start(
        StepType.answer_generation,
        "Answering Follow-up",
        "Generating answer in the context of the conversation...",
    )
    content = await generate_final_report(query, context, learnings, mode, llm)
    tracker.complete(step.id)

    return FollowUpResult(
        thinking_steps=tracker.finalize(),
        response=ResearchAnswer(
            content=content,
            sources=_unique([l.source_url for l in learnings]),
        ),
    )


async def expand_mind_map_node(
    node_id: str,
    graph: MindMapGraph,
    query: str,
    llm: CompletionFn = complete,
) -> ExpansionDelta:
    """Delta of new children for one node; NodeNotFoundError propagates."""
    return await expand_node(node_id, graph, query, llm)


def add_follow_up_to_mind_map(graph: MindMapGraph, query: str) -> ExpansionDelta:
    return append_follow_up_node(graph, query)
