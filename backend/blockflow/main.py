"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blockflow.api.runs import router as runs_router
from blockflow.api.webhooks import router as webhooks_router
from blockflow.config import settings
from blockflow.db.engine import engine
from blockflow.db.models import Base
from blockflow.runtime.container import build_runtime
from blockflow.utils.logger import setup_logger

setup_logger(log_format=settings.LOG_FORMAT, log_level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL)
logger = logging.getLogger("blockflow.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    runtime = app.state.runtime
    await runtime.start()
    logger.info("Application lifespan startup complete")
    try:
        yield
    finally:
        await runtime.stop()
        await engine.dispose()


app = FastAPI(
    title="BlockFlow",
    description="Workflow execution core for block-based automations",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.runtime = build_runtime()

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(runs_router, prefix="/api/runs", tags=["runs"])
app.include_router(webhooks_router, prefix="/api/webhooks", tags=["webhooks"])


@app.get("/api/health")
async def health():
    return {"status": "ok", "blockTypes": len(app.state.runtime.registry.block_types)}
