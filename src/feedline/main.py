# src/feedline/main.py
"""Main entry point for the Feedline API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from feedline.api.v1 import (
    engagement_router,
    feed_router,
    notifications_router,
    posts_router,
)
from feedline.core.errors import (
    DocumentExistsError,
    DocumentNotFoundError,
    EngagementError,
    FeedUnavailableError,
    InvalidArgumentError,
    InvalidSelfReferenceError,
    PollAlreadyVotedError,
    PollClosedError,
    PreconditionFailedError,
    StoreTimeoutError,
    StoreUnavailableError,
    TargetNotFoundError,
    UnauthenticatedError,
)
from feedline.core.settings import settings
from feedline.db.session import create_tables
from feedline.db.store import get_store
from feedline.services.notifications import NotificationDispatcher, NotificationService

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

# Most specific class wins; lookups walk the exception's MRO.
ERROR_STATUS: dict[type[EngagementError], int] = {
    InvalidArgumentError: status.HTTP_400_BAD_REQUEST,
    InvalidSelfReferenceError: status.HTTP_409_CONFLICT,
    UnauthenticatedError: status.HTTP_401_UNAUTHORIZED,
    TargetNotFoundError: status.HTTP_404_NOT_FOUND,
    DocumentNotFoundError: status.HTTP_404_NOT_FOUND,
    DocumentExistsError: status.HTTP_409_CONFLICT,
    PreconditionFailedError: status.HTTP_409_CONFLICT,
    PollClosedError: status.HTTP_409_CONFLICT,
    PollAlreadyVotedError: status.HTTP_409_CONFLICT,
    StoreTimeoutError: status.HTTP_504_GATEWAY_TIMEOUT,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    FeedUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: EngagementError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


app = FastAPI(
    title="Feedline API",
    description="Engagement and feed API for the Feedline social app",
    version=settings.app_version,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(GZipMiddleware)

app.include_router(engagement_router, prefix="/api/v1")
app.include_router(posts_router, prefix="/api/v1")
app.include_router(feed_router, prefix="/api/v1")
app.include_router(notifications_router, prefix="/api/v1")


@app.exception_handler(EngagementError)
async def engagement_error_handler(request: Request, exc: EngagementError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    headers = {"WWW-Authenticate": "Bearer"} if code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=code,
        content={"detail": str(exc), "retryable": exc.retryable},
        headers=headers,
    )


@app.on_event("startup")
async def on_startup() -> None:
    create_tables()
    notifier = NotificationDispatcher(NotificationService(get_store()))
    await notifier.start()
    app.state.notifier = notifier


@app.on_event("shutdown")
async def on_shutdown() -> None:
    notifier: NotificationDispatcher | None = getattr(app.state, "notifier", None)
    if notifier:
        await notifier.stop()
    app.state.notifier = None


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "name": "Feedline API",
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("feedline.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
