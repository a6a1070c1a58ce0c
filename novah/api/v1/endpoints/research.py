import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from novah.core.config import settings
from novah.schemas.mindmap import ExpansionDelta
from novah.schemas.research import (
    ExpandNodeRequest,
    FollowUpNodeRequest,
    FollowUpRequest,
    FollowUpResult,
    ResearchMode,
    ResearchResult,
)
from novah.services.file_service import file_extension, process_files
from novah.services.research_service import (
    add_follow_up_to_mind_map,
    expand_mind_map_node,
    process_follow_up,
    process_research,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _resolve_mode(mode: Optional[str], deep_research: Optional[bool]) -> ResearchMode:
    if mode:
        try:
            return ResearchMode(mode.lower())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown research mode '{mode}'.")
    return ResearchMode.deep if deep_research else ResearchMode.normal


async def _read_uploads(files: List[UploadFile]) -> list[tuple[str, bytes]]:
    """Boundary checks: count, extension, size. Extraction happens later."""
    if len(files) > settings.MAX_FILES_PER_REQUEST:
        raise HTTPException(
            status_code=400,
            detail=f"At most {settings.MAX_FILES_PER_REQUEST} files per request.",
        )

    uploads = []
    max_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024
    for upload in files:
        if not upload.filename:
            raise HTTPException(status_code=400, detail="No filename provided.")
        if file_extension(upload.filename) not in settings.ALLOWED_EXTENSIONS:
            raise HTTPException(
                status_code=415,
                detail=f"Unsupported file type. Use {', '.join(settings.ALLOWED_EXTENSIONS)}.",
            )
        content = await upload.read()
        if len(content) > max_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Maximum size is {settings.MAX_FILE_SIZE_MB}MB.",
            )
        uploads.append((upload.filename, content))
    return uploads


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 1. RESEARCH
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/research", response_model=ResearchResult, tags=["Research"])
async def research(
    query: str = Form(...),
    mode: Optional[str] = Form(None),
    deep_research: Optional[bool] = Form(None, alias="deepResearch"),
    files: List[UploadFile] = File(default=[]),
):
    """Run the research pipeline: thinking steps, answer with sources, mind map."""
    if not query.strip():
        raise HTTPException(status_code=400, detail="Query cannot be empty.")

    research_mode = _resolve_mode(mode, deep_research)
    uploads = await _read_uploads(files)
    logger.info(f"[API] research mode={research_mode.value} files={len(uploads)}")
    processed = await process_files(uploads)

    try:
        return await asyncio.wait_for(
            process_research(query.strip(), processed, research_mode),
            timeout=settings.AI_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        raise HTTPException(
            status_code=504,
            detail=f"Research timed out after {settings.AI_TIMEOUT_SECONDS}s.",
        )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 2. FOLLOW-UP
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/followup", response_model=FollowUpResult, tags=["Research"])
async def follow_up(request: FollowUpRequest):
    """Answer a follow-up question in the context of an earlier answer."""
    if not request.query.strip():
        raise HTTPException(status_code=400, detail="Query cannot be empty.")
    try:
        return await asyncio.wait_for(
            process_follow_up(request.query.strip(), request.context, request.files),
            timeout=settings.AI_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        raise HTTPException(
            status_code=504,
            detail=f"Follow-up timed out after {settings.AI_TIMEOUT_SECONDS}s.",
        )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 3. MIND MAP
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/mindmap/expand", response_model=ExpansionDelta, tags=["Mind Map"])
async def expand(request: ExpandNodeRequest):
    """New children for one node. Unknown node ids answer 404."""
    return await expand_mind_map_node(request.node_id, request.current_mind_map, request.query)


@router.post("/mindmap/followup", response_model=ExpansionDelta, tags=["Mind Map"])
async def follow_up_node(request: FollowUpNodeRequest):
    """Node for a follow-up question, attached to the center."""
    return add_follow_up_to_mind_map(request.current_mind_map, request.query)
