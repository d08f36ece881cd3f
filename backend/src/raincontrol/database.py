"""Optional SQL storage for the command ledger, rain logs and settings.

Storage is selected through ``RAIN_DB_MODE`` (``memory``, ``database`` or
``auto``) together with ``RAIN_DB_URL``. Without both, the repositories fall
back to their in-memory implementations.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from threading import Lock

from pydantic import BaseModel
from sqlalchemy import Engine, create_engine, inspect, text
from sqlalchemy.orm import Session, sessionmaker

from .nodemcu.utils import logger

ENV_PREFIX = "RAIN_DB_"
SQL_MODES = frozenset({"auto", "database"})
_TRUTHY = {"1", "true", "yes", "on"}


def _env(name: str, default: str = "") -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default).strip()


class DatabaseSettings(BaseModel):
    """Ledger database connection options."""

    url: str | None = None
    echo: bool = False
    mode: str = "memory"

    @classmethod
    def load(cls) -> DatabaseSettings:
        return cls(
            url=_env("URL") or None,
            echo=_env("ECHO", "false").lower() in _TRUTHY,
            mode=_env("MODE", "memory").lower(),
        )

    @property
    def uses_sql(self) -> bool:
        return bool(self.url) and self.mode in SQL_MODES


@lru_cache
def get_database_settings() -> DatabaseSettings:
    return DatabaseSettings.load()


def is_database_configured() -> bool:
    """Return True when the environment selects the SQL ledger."""
    return get_database_settings().uses_sql


def prepare_schema(engine: Engine) -> None:
    """Create missing tables and columns added after the first release."""
    from .db_models import Base

    Base.metadata.create_all(engine)
    log_columns = {column["name"] for column in inspect(engine).get_columns("rain_logs")}
    if "distance" not in log_columns:
        logger.info("Adding distance column to rain_logs")
        with engine.begin() as connection:
            connection.execute(text("ALTER TABLE rain_logs ADD COLUMN distance BIGINT"))


def create_ledger_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine usable from FastAPI's worker threads."""
    connect_args: dict[str, object] = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if url.startswith("sqlite:///"):
            Path(url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, echo=echo, future=True, connect_args=connect_args)


class _Storage:
    """Lazily built engine and session factory shared by the repositories."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.engine: Engine | None = None
        self.session_factory: sessionmaker[Session] | None = None

    def initialise(self, settings: DatabaseSettings) -> None:
        with self._lock:
            if self.engine is not None:
                return
            logger.bind(mode=settings.mode).info("Opening ledger database")
            engine = create_ledger_engine(settings.url or "", echo=settings.echo)
            prepare_schema(engine)
            self.session_factory = sessionmaker(
                bind=engine,
                autoflush=False,
                expire_on_commit=False,
                future=True,
            )
            self.engine = engine


_storage = _Storage()


def get_engine() -> Engine | None:
    """Return the ledger engine, or None while running in memory mode."""
    settings = get_database_settings()
    if not settings.uses_sql:
        return None
    if _storage.engine is None:
        _storage.initialise(settings)
    return _storage.engine


def get_session_factory() -> sessionmaker[Session]:
    if get_engine() is None or _storage.session_factory is None:
        raise RuntimeError(
            f"Database is not configured. Set {ENV_PREFIX}URL and "
            f"{ENV_PREFIX}MODE=database (or auto) to enable SQL storage."
        )
    return _storage.session_factory
