"""Device connection settings read from the environment and an optional .env file."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

DEFAULT_DEVICE_URL = "http://192.168.1.100"
DEFAULT_TIMEOUT_SECONDS = 10.0

ENV_FILE_VARIABLE = "RAIN_ENV_FILE"


def _find_env_file() -> Path | None:
    """Return ``$RAIN_ENV_FILE`` or the nearest .env above this package."""
    override = os.environ.get(ENV_FILE_VARIABLE)
    search = [Path(override).expanduser()] if override else []
    here = Path(__file__).resolve().parent
    search.extend(directory / ".env" for directory in (here, *here.parents))
    return next((path for path in search if path.exists()), None)


def _parse_env_line(line: str) -> tuple[str, str] | None:
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    key, separator, value = line.partition("=")
    if not separator:
        return None
    return key.strip(), value.strip().strip("\"'")


def load_env_file(path: Path | None = None) -> int:
    """Copy variables from a .env file into ``os.environ``; return how many were new.

    Variables already present in the environment keep their value.
    """
    env_path = path or _find_env_file()
    if env_path is None:
        logger.debug("No .env file found for device configuration")
        return 0

    added = 0
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        parsed = _parse_env_line(raw_line)
        if parsed is None or parsed[0] in os.environ:
            continue
        os.environ[parsed[0]] = parsed[1]
        added += 1
    logger.bind(path=str(env_path), added=added).info("Loaded .env file")
    return added


def _read_timeout(raw: str | None) -> float:
    if raw is None or not raw.strip():
        return DEFAULT_TIMEOUT_SECONDS
    try:
        timeout = float(raw)
    except ValueError as exc:
        raise RuntimeError(
            f"RAIN_DEVICE_TIMEOUT must be a number of seconds, got {raw!r}."
        ) from exc
    if timeout <= 0:
        raise RuntimeError("RAIN_DEVICE_TIMEOUT must be greater than zero.")
    return timeout


@dataclass(frozen=True)
class Settings:
    """Where the controller lives and how patiently to talk to it."""

    device_base_url: str
    request_timeout: float
    verify_ssl: bool = False

    @classmethod
    def from_env(cls) -> Settings:
        verify_raw = os.environ.get("RAIN_DEVICE_VERIFY_SSL", "")
        loaded = cls(
            device_base_url=(
                os.environ.get("RAIN_DEVICE_URL", "").strip() or DEFAULT_DEVICE_URL
            ).rstrip("/"),
            request_timeout=_read_timeout(os.environ.get("RAIN_DEVICE_TIMEOUT")),
            verify_ssl=verify_raw.strip().lower() in {"1", "true", "yes", "on"},
        )
        logger.bind(
            base_url=loaded.device_base_url,
            timeout=loaded.request_timeout,
            verify_ssl=loaded.verify_ssl,
        ).info("Device configuration loaded")
        return loaded


load_env_file()
settings = Settings.from_env()
