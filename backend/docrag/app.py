"""FastAPI application setup for docrag."""

from __future__ import annotations

from fastapi import FastAPI

from docrag.api.routes_query import router as query_router
from docrag.core.logging import configure_logging
from docrag.core.metrics import metrics_response

configure_logging()

app = FastAPI(
    title="docrag",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(query_router, prefix="", tags=["query"])


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}


@app.get("/metrics", tags=["admin"], summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()
