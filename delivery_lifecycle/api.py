"""
FastAPI application wrapping the delivery lifecycle router.
"""

from __future__ import annotations

import importlib.metadata
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .db.base import init_database
from .errors import LifecycleError
from .lifecycle.routes import router as lifecycle_router
from .lifecycle.routes import status_for
from .logging import setup_logging

logger = structlog.get_logger()

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging(settings)
    logger.info("starting", app_name=settings.app_name, environment=settings.environment)

    try:
        init_database()
    except Exception as e:
        logger.error("startup_failed", error=str(e))
        raise

    yield

    logger.info("shutdown_complete")


app = FastAPI(
    title=settings.app_name,
    description="Versioned deliveries, review comments and approval workflow for video projects",
    version=importlib.metadata.version("delivery-lifecycle"),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(lifecycle_router)


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    """Lifecycle errors that escape a route still get their mapped status."""
    return JSONResponse(status_code=status_for(exc), content={"detail": exc.to_dict()})


@app.get("/healthz", tags=["system"])
def healthz() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/version", tags=["system"])
def version() -> dict[str, str]:
    """Return the version of the application."""
    return {"version": importlib.metadata.version("delivery-lifecycle")}
