# src/tagdrop/main.py
"""Main entry point for the Tag Drop application."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tagdrop.api.v1 import drops_router
from tagdrop.core.settings import settings
from tagdrop.services.drop_expiry import ExpiryScheduler

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# Initialize FastAPI app
app = FastAPI(
    title="Tag Drop API",
    description="Anonymous, self-expiring notice drops for smart tags",
    version=settings.app_version,
)

# Drops are unauthenticated, so no credentials are ever shared cross-origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Include API routers
app.include_router(drops_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    # Process-local buckets need pruning even when expiry runs from cron.
    prune_buckets = settings.drop_rate_limit_backend == "memory"
    if settings.drop_expiry_enabled or prune_buckets:
        scheduler = ExpiryScheduler(sweep_expired=settings.drop_expiry_enabled)
        await scheduler.start()
        app.state.expiry_scheduler = scheduler
    else:
        app.state.expiry_scheduler = None


@app.on_event("shutdown")
async def on_shutdown() -> None:
    scheduler: ExpiryScheduler | None = getattr(app.state, "expiry_scheduler", None)
    if scheduler:
        await scheduler.stop()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Anonymous, self-expiring notice drops for smart tags",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tagdrop.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
