"""Structured error taxonomy for Odoo JSON-2 calls."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, List, Optional

# Status code used when no HTTP response was received (connection refused, timeout).
NO_RESPONSE_STATUS = 0


class ErrorKind(str, Enum):
    AUTHENTICATION = "authentication"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


_STATUS_KINDS = {
    NO_RESPONSE_STATUS: ErrorKind.TRANSIENT,
    400: ErrorKind.VALIDATION,
    401: ErrorKind.AUTHENTICATION,
    403: ErrorKind.PERMISSION,
    404: ErrorKind.NOT_FOUND,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.TRANSIENT,
    502: ErrorKind.TRANSIENT,
    503: ErrorKind.TRANSIENT,
    504: ErrorKind.TRANSIENT,
}


def kind_for_status(status_code: int) -> ErrorKind:
    """Return the error kind for ``status_code``; unmapped codes are UNKNOWN."""
    return _STATUS_KINDS.get(status_code, ErrorKind.UNKNOWN)


class RemoteError(RuntimeError):
    """Raised when an Odoo call fails; ``kind`` is derived from ``status_code``."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        detail: str = "",
        name: str = "",
        arguments: Optional[List[Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.kind = kind_for_status(status_code)
        self.message = message
        self.detail = detail
        self.name = name
        self.arguments = list(arguments or [])
        super().__init__(str(self))

    @property
    def retriable(self) -> bool:
        return self.kind is ErrorKind.TRANSIENT

    def __str__(self) -> str:
        label = self.name or self.kind.value
        return f"[{self.status_code}] {label}: {self.message}"

    @classmethod
    def from_response(cls, status_code: int, body: str) -> "RemoteError":
        """Build an error from an Odoo error body, tolerating non-JSON payloads."""
        try:
            data = json.loads(body) if body else None
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, dict):
            return cls(
                status_code,
                f"HTTP {status_code}: {body[:200]}",
                name="HTTP Error",
            )
        arguments = data.get("arguments")
        return cls(
            status_code,
            str(data.get("message") or f"HTTP {status_code}"),
            detail=str(data.get("debug") or ""),
            name=str(data.get("name") or ""),
            arguments=arguments if isinstance(arguments, list) else None,
        )


__all__ = ["ErrorKind", "NO_RESPONSE_STATUS", "RemoteError", "kind_for_status"]
