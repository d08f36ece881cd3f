"""HTTP client for the rain controller's embedded web server."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

import requests  # type: ignore[import-untyped]
from requests import Response, Session

from .config import settings


class DeviceErrorKind(str, Enum):
    """Closed set of ways a device call can fail."""

    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    DECODE = "decode"
    INVALID_ARGUMENT = "invalid_argument"
    UNEXPECTED = "unexpected"


class DeviceRequestError(RuntimeError):
    """Raised when an HTTP request to the controller fails."""

    def __init__(
        self,
        kind: DeviceErrorKind,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class NodeMCUClient:
    """Minimal client for the controller's ``/api`` surface."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        verify_ssl: bool | None = None,
    ) -> None:
        self.base_url = (base_url or settings.device_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.verify_ssl = settings.verify_ssl if verify_ssl is None else verify_ssl
        self._session: Session | None = None

    def establish_connection(self) -> Session:
        """Initialize (or reuse) a requests.Session for the controller."""
        if self._session is not None:
            return self._session

        session = requests.Session()
        session.verify = self.verify_ssl
        session.headers.update({"Accept": "application/json"})

        self._session = session
        return session

    def request(
        self,
        method: str,
        path: str,
        *,
        data: Mapping[str, Any] | None = None,
    ) -> Response:
        """Execute an HTTP request, raising DeviceRequestError on any failure."""
        session = self.establish_connection()
        url = f"{self.base_url}/{path.lstrip('/')}"

        try:
            response = session.request(
                method=method.upper(),
                url=url,
                data=dict(data) if data is not None else None,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise DeviceRequestError(
                DeviceErrorKind.TIMEOUT,
                f"Device did not answer {method.upper()} {path} within {self.timeout}s",
            ) from exc
        except requests.RequestException as exc:
            raise DeviceRequestError(
                DeviceErrorKind.TRANSPORT,
                f"Device unreachable for {method.upper()} {path}: {exc}",
            ) from exc

        if not response.ok:
            raise DeviceRequestError(
                DeviceErrorKind.HTTP_STATUS,
                f"Device request failed ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        return response

    def get_json(self, path: str) -> Any:
        """GET ``path`` and decode the JSON body."""
        response = self.request("get", path)
        try:
            return response.json()
        except ValueError as exc:
            raise DeviceRequestError(
                DeviceErrorKind.DECODE,
                f"Device returned malformed JSON for {path}: {exc}",
                status_code=response.status_code,
            ) from exc

    def close(self) -> None:
        """Close the underlying session if it was created."""
        if self._session is not None:
            self._session.close()
            self._session = None
