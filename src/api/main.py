"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routers import query, schema
from src.db.connectivity import get_monitor

app = FastAPI(
    title="Clinic Query Assistant",
    version="0.1.0",
    description="Natural-language questions over the clinic database, answered with SQL",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(query.router, tags=["Query"])
app.include_router(schema.router, tags=["Schema"])


@app.get("/health")
def health(check: bool = False, reconnect: bool = False):
    """Service status plus database connectivity (probe with ``check``, retry with ``reconnect``)."""
    monitor = get_monitor()
    if reconnect:
        monitor.reconnect()
    elif check:
        monitor.check()
    return {"status": "ok", "database": monitor.snapshot()}
