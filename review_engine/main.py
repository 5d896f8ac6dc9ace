"""FastAPI application entry point and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from review_engine.api.queue_router import router as queue_router
from review_engine.api.review_router import router as review_router
from review_engine.api.settings_router import router as settings_router
from review_engine.api.stats_router import router as stats_router
from review_engine.api.suspension_router import router as suspension_router
from review_engine.config import settings
from review_engine.database import async_session, engine
from review_engine.errors import (
    NotFoundError,
    OptimizerUnavailableError,
    PersistenceError,
    ReviewEngineError,
    ValidationError,
)
from review_engine.models import Base

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[ReviewEngineError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    PersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
    OptimizerUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize database on startup and cleanup on shutdown."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


async def review_engine_error_handler(request: Request, exc: ReviewEngineError) -> JSONResponse:
    """Translate engine errors into JSON responses."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


app = FastAPI(
    title=settings.app_name,
    description="Spaced repetition scheduling and review ordering",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(ReviewEngineError, review_engine_error_handler)

app.include_router(review_router)
app.include_router(queue_router)
app.include_router(suspension_router)
app.include_router(stats_router)
app.include_router(settings_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Check database connectivity and return status."""
    async with async_session() as session:
        await session.execute(text("SELECT 1"))
    return {"status": "ok"}
