"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from plansync.api.v1 import v1_router
from plansync.core.config import get_settings
from plansync.core.database import init_db
from plansync.core.errors import register_error_handlers

_settings = get_settings()
logging.basicConfig(
    level=_settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: ensure tables exist (use Alembic in production)
    await init_db()
    yield


app = FastAPI(
    title="PlanSync",
    version="0.1.0",
    description="Subscription billing and plan quota enforcement for multi-tenant stores",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _settings.allowed_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Errors ───────────────────────────────────────────────────
register_error_handlers(app)

# ── API routes ───────────────────────────────────────────────
app.include_router(v1_router)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    return {"status": "ok"}
