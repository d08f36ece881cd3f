"""FastAPI application relaying dashboard commands to the rain controller."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .database import is_database_configured
from .nodemcu.config import settings
from .nodemcu.utils import configure_logging, logger
from .router import router as api_router

configure_logging()

app = FastAPI(
    title="Rain Control API",
    version="1.0.0",
    description=(
        "Relays dashboard commands to the rain/servo/proximity controller and "
        "keeps an audit trail of commands, actuations and setting changes."
    ),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)

logger.bind(
    device_url=settings.device_base_url,
    storage="database" if is_database_configured() else "memory",
).info("Rain control API ready")


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    """Readiness probe; does not contact the controller."""
    return {
        "status": "ok",
        "storage": "database" if is_database_configured() else "memory",
    }
