"""Change window helpers: the "changed since last poll" domain and field projection."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

ODOO_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_TRACKING_FIELD = "write_date"
BASE_FIELDS = ("id", "create_date", "write_date")

_DOMAIN_OPERATORS = {"&": 2, "|": 2, "!": 1}

DomainInput = Union[str, Sequence[Any], None]


def format_odoo_datetime(value: datetime) -> str:
    """Render ``value`` in Odoo's UTC, second-precision datetime format."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(ODOO_DATETIME_FORMAT)


def is_valid_domain(domain: Sequence[Any]) -> bool:
    """Check that ``domain`` is a well-formed prefix (Polish notation) domain.

    Leaves are ``[field, operator, value]`` triples; ``&``/``|`` take two
    operands and ``!`` takes one. Leftover top-level terms are implicitly
    AND-ed, so any positive operand count is acceptable.
    """
    operands = 0
    for term in reversed(list(domain)):
        if isinstance(term, str):
            arity = _DOMAIN_OPERATORS.get(term)
            if arity is None or operands < arity:
                return False
            operands -= arity - 1
            continue
        if isinstance(term, (list, tuple)) and len(term) == 3:
            if not isinstance(term[0], str) or not isinstance(term[1], str):
                return False
            operands += 1
            continue
        return False
    return True


def parse_domain(raw: DomainInput) -> List[Any]:
    """Parse a domain from JSON text or a sequence; malformed input yields ``[]``."""
    if raw is None:
        return []
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return []
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("failed to parse filter domain, using empty domain: %s", exc)
            return []
    else:
        parsed = raw
    if not isinstance(parsed, (list, tuple)) or not is_valid_domain(parsed):
        logger.warning("filter domain %r is malformed; using empty domain", raw)
        return []
    return [list(term) if isinstance(term, tuple) else term for term in parsed]


def parse_fields(raw: Union[str, Sequence[str], None]) -> List[str]:
    """Parse a field list from a JSON array, a comma-separated string, or a sequence."""
    if raw is None:
        return []
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError as exc:
                logger.warning("failed to parse fields JSON: %s", exc)
                return []
            if not isinstance(parsed, list):
                return []
            return [str(entry) for entry in parsed if entry]
        return [entry.strip() for entry in text.split(",") if entry.strip()]
    return [str(entry) for entry in raw if entry]


class ChangeWindowTracker:
    """Builds the fetch domain and field projection for one monitored model."""

    def __init__(
        self,
        *,
        tracking_field: Optional[str] = None,
        extra_domain: DomainInput = None,
        fields: Union[str, Sequence[str], None] = None,
    ) -> None:
        self.tracking_field = (tracking_field or "").strip() or DEFAULT_TRACKING_FIELD
        self.extra_domain = parse_domain(extra_domain)
        self.requested_fields = parse_fields(fields)

    def build_filter(self, last_poll_time: datetime) -> List[Any]:
        domain: List[Any] = [
            [self.tracking_field, ">", format_odoo_datetime(last_poll_time)]
        ]
        domain.extend(self.extra_domain)
        return domain

    @property
    def order(self) -> str:
        """Fetch order keeping each batch contiguous in the change window."""
        return f"{self.tracking_field} asc, id asc"

    def build_fields(self, requested: Optional[Sequence[str]] = None) -> List[str]:
        extra = self.requested_fields if requested is None else list(requested)
        fields: List[str] = []
        for name in (*BASE_FIELDS, self.tracking_field, *extra):
            if name and name not in fields:
                fields.append(name)
        return fields


__all__ = [
    "BASE_FIELDS",
    "ChangeWindowTracker",
    "DEFAULT_TRACKING_FIELD",
    "ODOO_DATETIME_FORMAT",
    "format_odoo_datetime",
    "is_valid_domain",
    "parse_domain",
    "parse_fields",
]
