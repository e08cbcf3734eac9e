"""FastAPI application setup for the repository retrieval service."""

from __future__ import annotations

from fastapi import FastAPI

from repo_context.api.dependencies import get_app_settings, get_engine, get_query_service, shutdown_engine
from repo_context.api.routes_admin import router as admin_router
from repo_context.api.routes_query import router as query_router
from repo_context.core.logging import configure_logging

configure_logging()

app = FastAPI(
    title="Repo Context",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(query_router, prefix="", tags=["query"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.on_event("startup")
async def startup() -> None:
    """Build the engine and start background indexing."""
    get_app_settings()
    engine = get_engine()
    get_query_service()
    engine.start()


@app.on_event("shutdown")
async def shutdown() -> None:
    shutdown_engine()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
