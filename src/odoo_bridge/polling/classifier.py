"""Classification of fetched records into create/write change events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from .window import ODOO_DATETIME_FORMAT


class EventKind(str, Enum):
    CREATED = "create"
    MODIFIED = "write"

    @property
    def token(self) -> str:
        return self.value


def _present(value: object) -> bool:
    # Odoo serialises empty fields as ``false``.
    return value is not None and value is not False


def classify(
    record: Mapping[str, Any],
    trigger_on_create: bool,
    trigger_on_modify: bool,
) -> Optional[EventKind]:
    """Return the event kind for ``record`` or ``None`` when it should be dropped.

    A record is CREATED only when both ``create_date`` and ``write_date`` are
    present and equal; a missing timestamp always means MODIFIED.
    """
    created_at = record.get("create_date")
    written_at = record.get("write_date")
    is_new = _present(created_at) and _present(written_at) and created_at == written_at
    if is_new:
        return EventKind.CREATED if trigger_on_create else None
    return EventKind.MODIFIED if trigger_on_modify else None


def record_id_of(record: Mapping[str, Any]) -> Optional[int]:
    value = record.get("id")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def parse_odoo_timestamp(value: object) -> Optional[datetime]:
    """Parse Odoo (``2024-01-15 10:30:00``) or ISO-8601 timestamps as UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        parsed = datetime.strptime(text, ODOO_DATETIME_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_iso_utc(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChangeEvent:
    source_model: str
    record_id: int
    kind: EventKind
    fields: Dict[str, Any] = field(default_factory=dict)
    change_timestamp: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_record(
        cls,
        source_model: str,
        record: Mapping[str, Any],
        kind: EventKind,
        tracking_field: str,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> "ChangeEvent":
        record_id = record_id_of(record)
        if record_id is None:
            raise ValueError("record has no identifier")
        timestamp = parse_odoo_timestamp(record.get(tracking_field)) or now()
        return cls(
            source_model=source_model,
            record_id=record_id,
            kind=kind,
            fields=dict(record),
            change_timestamp=timestamp,
        )

    @property
    def field_names(self) -> List[str]:
        return list(self.fields.keys())

    def to_variables(self) -> Dict[str, Any]:
        """Variables payload handed to the correlation consumer."""
        return {
            "odooModel": self.source_model,
            "odooRecordId": self.record_id,
            "odooEventType": self.kind.token,
            "odooRecord": dict(self.fields),
            "odooTimestamp": format_iso_utc(self.change_timestamp),
            "odooFields": self.field_names,
        }


__all__ = [
    "ChangeEvent",
    "EventKind",
    "classify",
    "format_iso_utc",
    "parse_odoo_timestamp",
    "record_id_of",
]
