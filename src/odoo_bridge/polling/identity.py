"""Deterministic message identities used as consumer idempotency keys."""

from __future__ import annotations

from typing import Union

from .classifier import EventKind

DEFAULT_NAMESPACE = "odoo"


def message_identity(
    source_model: str,
    record_id: int,
    kind: Union[EventKind, str],
    *,
    namespace: str = DEFAULT_NAMESPACE,
) -> str:
    """Return ``<namespace>-<model>-<id>-<kind>``, e.g. ``odoo-res.partner-123-create``.

    The value depends only on its arguments so a replayed event carries the
    same key across process restarts.
    """
    token = kind.token if isinstance(kind, EventKind) else str(kind).lower()
    return f"{namespace}-{source_model}-{int(record_id)}-{token}"


__all__ = ["DEFAULT_NAMESPACE", "message_identity"]
