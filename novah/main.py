"""
Novah: Research Assistant API
=============================
FastAPI entry point.
  • Global exception handler: never crashes, always returns JSON
  • Domain errors mapped to status codes (404 node, 415 type, 422 extraction)
  • /api/research, /api/followup, /api/mindmap/expand, /api/mindmap/followup
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from novah.api.v1.endpoints.research import router as research_router
from novah.core.config import settings
from novah.core.exceptions import (
    FileExtractionError,
    NodeNotFoundError,
    UnsupportedFileTypeError,
)
from novah.schemas.research import ErrorResponse

# ── Logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)

# ── App ──────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Novah Research Assistant",
    description=(
        "AI research assistant backend.\n"
        "Ask a question (optionally with documents) → thinking steps, "
        "a cited answer and an expandable mind map."
    ),
    version="1.0.0",
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)


def _error(status_code: int, message: str, detail: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(status="error", message=message, detail=detail)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


# ── Exception Handlers ───────────────────────────────────────────────────────
@app.exception_handler(NodeNotFoundError)
async def node_not_found_handler(request: Request, exc: NodeNotFoundError):
    logger.warning(f"[API] {request.url.path}: {exc}")
    return _error(404, str(exc))


@app.exception_handler(UnsupportedFileTypeError)
async def unsupported_file_handler(request: Request, exc: UnsupportedFileTypeError):
    logger.warning(f"[API] {request.url.path}: {exc}")
    return _error(415, str(exc))


@app.exception_handler(FileExtractionError)
async def extraction_error_handler(request: Request, exc: FileExtractionError):
    logger.warning(f"[API] {request.url.path}: {exc}")
    return _error(422, "Text extraction failed.", str(exc))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    detail = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    return _error(400, "Invalid request.", detail)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all: every unhandled exception returns a clean JSON envelope."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return _error(500, "An internal server error occurred.", str(exc))


# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Health Check ─────────────────────────────────────────────────────────────
@app.get("/", tags=["System"])
async def health_check():
    return {
        "status": "operational",
        "service": "Novah Research Assistant",
        "version": app.version,
        "provider": settings.AI_PROVIDER,
    }


app.include_router(research_router, prefix="/api")
