"""
FastAPI application entry point for the Listing Audit API.

This module configures logging and CORS, builds the AuditService at startup,
registers the API routers and starts the ASGI server.

Storage:
- DATABASE_URL set: asyncpg pool, schema check, default rules seeded on first run
- DATABASE_URL unset: in-memory rule and snapshot stores
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from listing_audit import __version__
from listing_audit.api import audits_router, rules_router
from listing_audit.core.config import get_settings
from listing_audit.core.dependencies import SettingsDep
from listing_audit.core.database import close_db, ensure_schema, init_db
from listing_audit.services.audit import build_default_service, seed_rule_store

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Initialize the database pool and schema when DATABASE_URL is set
        - Build the AuditService (rule resolver, cache and snapshot store)

    On shutdown:
        - Close the database connection pool
    """
    # Startup
    settings = get_settings()
    logger.info("Listing Audit API starting")
    service = build_default_service(settings)

    if settings.database_url:
        try:
            await init_db()
            await ensure_schema()
            await seed_rule_store(service.resolver.store)
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            # Continue startup; store-backed requests will report 503
    else:
        logger.info("DATABASE_URL not set; using in-memory rule and snapshot stores")

    app.state.audit_service = service

    yield

    # Shutdown
    logger.info("Listing Audit API shutting down")
    try:
        await close_db()
    except Exception as e:
        logger.error(f"Error closing database pool: {e}")


# Create FastAPI application
app = FastAPI(
    title="Listing Audit API",
    version=__version__,
    description=(
        "Deterministic audits of app-store listing text: tokenization, "
        "layered rule resolution, KPI and formula scoring, recommendations, "
        "snapshots and diffs."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
app.include_router(audits_router, prefix="/audits", tags=["audits"])
app.include_router(rules_router, prefix="/rules", tags=["rules"])


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root(settings: SettingsDep):
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name, version and the active storage backend
    """
    return {
        "name": "Listing Audit API",
        "version": __version__,
        "storage": "postgres" if settings.database_url else "memory",
        "platform": settings.platform,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "listing_audit.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
