"""FastAPI app exposing submissions, statistics and match suggestions.

Input is validated by the request models before any store access; domain
errors are translated to HTTP responses by the exception handlers below.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from . import storage
from .config import settings
from .db import get_session
from .logging_config import setup_logging
from .models import Neighborhood, SubmissionCategory, SubmissionStatus
from .pipelines.matching import InvalidMatchError, confirm_match, get_match_suggestions
from .pipelines.stats import get_stats
from .schemas import (
    DashboardStats,
    ErrorResponse,
    HealthResponse,
    MatchConfirmationOut,
    MatchSuggestionOut,
    SubmissionCreate,
    SubmissionFilters,
    SubmissionOut,
    SubmissionUpdate,
)
from .storage import StorageError, SubmissionNotFoundError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info(f"{settings.app_name} v{settings.version} starting up ({settings.environment.value})")

    yield

    # Shutdown
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Community needs, offers and ideas with match suggestions",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, error: str, detail: str | None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump(),
    )


def format_validation_errors(exc: RequestValidationError) -> str:
    """Human-readable summary of pydantic errors, e.g. ``title: String should have at least 3 characters``."""
    messages = []
    for err in exc.errors():
        # Drop the "body"/"query" prefix
        loc = [str(part) for part in err.get("loc", ())[1:]]
        field = ".".join(loc)
        messages.append(f"{field}: {err['msg']}" if field else err["msg"])
    return "; ".join(messages) or "Invalid request"


# Exception handlers
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Reject malformed input with a 400 and the violated constraints."""
    detail = format_validation_errors(exc)
    logger.info(f"Validation error on {request.method} {request.url.path}: {detail}")
    return _error(status.HTTP_400_BAD_REQUEST, "validation_error", detail)


@app.exception_handler(SubmissionNotFoundError)
async def not_found_handler(request: Request, exc: SubmissionNotFoundError):
    logger.info(f"Not found: {exc}")
    return _error(status.HTTP_404_NOT_FOUND, "not_found", "Submission not found")


@app.exception_handler(InvalidMatchError)
async def invalid_match_handler(request: Request, exc: InvalidMatchError):
    logger.info(f"Rejected match: {exc}")
    return _error(status.HTTP_400_BAD_REQUEST, "invalid_match", str(exc))


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    """Storage failures are logged where they happen; only a generic message leaves the server."""
    logger.error(f"Storage error on {request.method} {request.url.path}: {exc}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "storage_error", "Internal server error")


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=settings.version,
    )


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "endpoints": {
            "health": "/health",
            "submissions": "/api/submissions",
            "submission": "/api/submissions/{id}",
            "match": "/api/submissions/{need_id}/match/{offer_id}",
            "stats": "/api/stats",
            "match_suggestions": "/api/match-suggestions",
            "neighborhoods": "/api/neighborhoods",
            "docs": "/docs",
        },
    }


@app.get("/api/submissions", response_model=list[SubmissionOut])
async def list_submissions(
    category: SubmissionCategory | None = None,
    neighborhood: Neighborhood | None = None,
    status: SubmissionStatus | None = None,
    session: AsyncSession = Depends(get_session),
):
    """List submissions, newest first, optionally filtered by category, neighborhood and status."""
    filters = SubmissionFilters(category=category, neighborhood=neighborhood, status=status)
    return await storage.list_submissions(session, None if filters.is_empty() else filters)


@app.get("/api/submissions/{submission_id}", response_model=SubmissionOut)
async def get_submission(
    submission_id: str,
    session: AsyncSession = Depends(get_session),
):
    return await storage.get_submission(session, submission_id)


@app.post(
    "/api/submissions",
    response_model=SubmissionOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_submission(
    request: SubmissionCreate,
    session: AsyncSession = Depends(get_session),
):
    """Create a need, offer or idea. Status defaults to open."""
    logger.info(f"Creating {request.category.value} submission: {request.title}")
    return await storage.create_submission(session, request)


@app.patch("/api/submissions/{submission_id}", response_model=SubmissionOut)
async def update_submission(
    submission_id: str,
    request: SubmissionUpdate,
    session: AsyncSession = Depends(get_session),
):
    """Apply the fields present in the body; absent fields are left untouched."""
    return await storage.update_submission(session, submission_id, request)


@app.post(
    "/api/submissions/{need_id}/match/{offer_id}",
    response_model=MatchConfirmationOut,
)
async def match_submissions(
    need_id: str,
    offer_id: str,
    session: AsyncSession = Depends(get_session),
) -> MatchConfirmationOut:
    """Confirm a match between a need and an offer.

    Both records get status ``matched`` and point at each other through
    ``matchedWithId``. Both writes share one transaction.
    """
    logger.info(f"Matching need {need_id} with offer {offer_id}")
    confirmed = await confirm_match(session, need_id, offer_id)
    return MatchConfirmationOut.model_validate(confirmed)


@app.get("/api/stats", response_model=DashboardStats)
async def stats(session: AsyncSession = Depends(get_session)) -> DashboardStats:
    return await get_stats(session)


@app.get("/api/match-suggestions", response_model=list[MatchSuggestionOut])
async def match_suggestions(
    session: AsyncSession = Depends(get_session),
) -> list[MatchSuggestionOut]:
    """Open, unmatched needs with up to three candidate offers each."""
    suggestions = await get_match_suggestions(session)
    return [MatchSuggestionOut.model_validate(s) for s in suggestions]


@app.get("/api/neighborhoods", response_model=list[str])
async def neighborhoods() -> list[str]:
    return [n.value for n in Neighborhood]
