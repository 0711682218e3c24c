"""
FastAPI application for the manual QA API.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .deps import build_pipeline
from .routes import router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline on startup; dispose of the database engine on shutdown."""
    services = build_pipeline()
    app.state.pipeline = services.pipeline
    app.state.backend = services.backend
    app.state.chunks_loaded = services.chunks_loaded
    app.state.configured = services.configured
    yield
    app.state.pipeline = None
    if services.engine is not None:
        await services.engine.dispose()


app = FastAPI(
    title="Manual QA API",
    description="Grounded answers over equipment manuals with page citations",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
app.include_router(router)
