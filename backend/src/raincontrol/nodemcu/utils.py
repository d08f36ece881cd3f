"""Logging and transport helpers shared by the device client."""

from __future__ import annotations

import os
import sys
import warnings

from loguru import logger
from urllib3.exceptions import InsecureRequestWarning

_LOGGER_CONFIGURED = False


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level> {extra}"
)


def configure_logging(*, force: bool = False) -> None:
    """Route Loguru output to stderr once, including any bound context."""
    global _LOGGER_CONFIGURED
    if _LOGGER_CONFIGURED and not force:
        return

    logger.remove()
    logger.add(
        sys.stderr,
        level=os.getenv("RAIN_LOG_LEVEL", "INFO").upper(),
        format=LOG_FORMAT,
        backtrace=False,
        diagnose=_env_flag("RAIN_LOG_DIAGNOSE"),
        colorize=True,
    )
    _LOGGER_CONFIGURED = True


def suppress_insecure_request_warning(verify_ssl: bool) -> None:
    """Silence urllib3 warnings for controllers served over self-signed HTTPS."""
    if verify_ssl:
        return

    warnings.filterwarnings(
        "ignore",
        category=InsecureRequestWarning,
        message="Unverified HTTPS request is being made to host",
    )


def truncate(text: str | None, limit: int) -> str | None:
    """Clip text to ``limit`` characters, marking the cut with an ellipsis."""
    if text is None or len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return text[: limit - 3] + "..."


configure_logging()

__all__ = [
    "configure_logging",
    "suppress_insecure_request_warning",
    "truncate",
    "logger",
]
