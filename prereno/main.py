"""PreReno API -- Main Application Entry Point

Creates the FastAPI application, configures logging and CORS middleware,
and registers all API route modules under the /api/v1 prefix.

Run with::

    uvicorn prereno.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from prereno.core.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Shutdown:
      - Dispose of the database connection pool.
    """
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("%s %s starting", settings.app_name, settings.app_version)

    yield

    from prereno.api.deps import engine

    await engine.dispose()


# ---------------------------------------------------------------------------
# Application instance
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_allowed_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health():
    """Lightweight health check for load balancers and readiness probes."""
    return {"status": "ok", "version": settings.app_version}


# ---------------------------------------------------------------------------
# Register API route modules
# ---------------------------------------------------------------------------

from prereno.api.routes import (  # noqa: E402
    admin,
    approvals,
    jobs,
    offers,
    payments,
    pricing,
    webhooks,
)

_prefix = settings.api_v1_prefix

app.include_router(jobs.router, prefix=_prefix)
app.include_router(offers.router, prefix=_prefix)
app.include_router(pricing.router, prefix=_prefix)
app.include_router(payments.router, prefix=_prefix)
app.include_router(webhooks.router, prefix=_prefix)
app.include_router(approvals.router, prefix=_prefix)
app.include_router(admin.router, prefix=_prefix)
