"""Odoo JSON-2 API client utilities."""

from .client import (
    DEFAULT_CONTEXT,
    OdooClient,
    OdooClientSettings,
    RemoteCallMetrics,
    RetryPolicy,
)
from .errors import NO_RESPONSE_STATUS, ErrorKind, RemoteError, kind_for_status

__all__ = [
    "DEFAULT_CONTEXT",
    "ErrorKind",
    "NO_RESPONSE_STATUS",
    "OdooClient",
    "OdooClientSettings",
    "RemoteCallMetrics",
    "RemoteError",
    "RetryPolicy",
    "kind_for_status",
]
