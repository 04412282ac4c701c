"""Intake for events pushed by Odoo webhooks instead of polling."""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .polling.classifier import format_iso_utc, parse_odoo_timestamp
from .polling.dispatcher import CorrelationDispatcher, Failure, Ignore, Success
from .polling.identity import DEFAULT_NAMESPACE, message_identity

logger = logging.getLogger(__name__)

_KEYED_OPERATIONS = {"create", "write"}


def _as_int(value: object) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _parse_timestamp(value: object) -> datetime:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    return parse_odoo_timestamp(value) or datetime.now(timezone.utc)


@dataclass(frozen=True)
class WebhookEvent:
    model: str
    operation: str
    record_ids: List[int]
    user_id: Optional[int]
    database: str
    timestamp: datetime
    values: Dict[str, Any] = field(default_factory=dict)
    changed_fields: List[str] = field(default_factory=list)
    raw_payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "WebhookEvent":
        raw_ids = payload.get("record_ids")
        if isinstance(raw_ids, (list, tuple)):
            record_ids = [rid for rid in (_as_int(entry) for entry in raw_ids) if rid is not None]
        else:
            single = _as_int(raw_ids)
            record_ids = [single] if single is not None else []
        values = payload.get("values")
        changed = payload.get("changed_fields")
        return cls(
            model=str(payload.get("model") or ""),
            operation=str(payload.get("operation") or ""),
            record_ids=record_ids,
            user_id=_as_int(payload.get("user_id")),
            database=str(payload.get("database") or ""),
            timestamp=_parse_timestamp(payload.get("timestamp")),
            values=dict(values) if isinstance(values, Mapping) else {},
            changed_fields=[str(entry) for entry in changed]
            if isinstance(changed, (list, tuple))
            else [],
            raw_payload=dict(payload),
        )

    @property
    def record_id(self) -> Optional[int]:
        return self.record_ids[0] if self.record_ids else None

    def to_variables(self) -> Dict[str, Any]:
        return {
            "odooModel": self.model,
            "odooOperation": self.operation,
            "odooRecordId": self.record_id or 0,
            "odooRecordIds": list(self.record_ids),
            "odooUserId": self.user_id or 0,
            "odooDatabase": self.database,
            "odooTimestamp": format_iso_utc(self.timestamp),
            "odooValues": dict(self.values),
            "odooChangedFields": list(self.changed_fields),
            "odooEvent": dict(self.raw_payload),
        }


@dataclass(frozen=True)
class WebhookResult:
    success: bool
    message: str
    status_code: int


class WebhookProcessor:
    """Validates, filters and correlates webhook payloads."""

    def __init__(
        self,
        dispatcher: CorrelationDispatcher,
        *,
        secret_token: str = "",
        allowed_models: Sequence[str] = (),
        event_type: str = "all",
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        self._dispatcher = dispatcher
        self._secret = secret_token or ""
        self._allowed_models = {entry.strip() for entry in allowed_models if entry.strip()}
        self._event_type = (event_type or "all").lower()
        self._namespace = namespace
        self.active = False

    def activate(self) -> None:
        self.active = True
        logger.info(
            "Odoo webhook intake activated: models=%s, event type=%s",
            sorted(self._allowed_models) or "all",
            self._event_type,
        )

    def deactivate(self) -> None:
        self.active = False
        logger.info("Odoo webhook intake deactivated")

    def is_model_allowed(self, model: str) -> bool:
        return not self._allowed_models or model in self._allowed_models

    def is_event_type_allowed(self, operation: str) -> bool:
        if self._event_type == "all":
            return True
        if self._event_type == "create_write":
            return operation in _KEYED_OPERATIONS
        return operation == self._event_type

    def process(
        self, payload: Mapping[str, Any], secret_token: Optional[str]
    ) -> WebhookResult:
        if not self.active:
            return WebhookResult(False, "Connector not active", 503)
        if self._secret and not hmac.compare_digest(
            self._secret.encode("utf-8"), (secret_token or "").encode("utf-8")
        ):
            logger.warning("invalid webhook secret token received")
            return WebhookResult(False, "Invalid secret token", 401)

        try:
            event = WebhookEvent.from_payload(payload)
            if not self.is_model_allowed(event.model):
                logger.debug("ignoring event for model %s (not allowed)", event.model)
                return WebhookResult(True, "Model not in allowed list", 200)
            if not self.is_event_type_allowed(event.operation):
                logger.debug("ignoring event type %s", event.operation)
                return WebhookResult(True, "Event type not matching", 200)
            outcome = self._dispatcher.dispatch(self._identity(event), event.to_variables())
        except Exception as exc:  # noqa: BLE001 - reported back to the caller
            logger.exception("error processing Odoo webhook event")
            return WebhookResult(False, str(exc), 500)

        if isinstance(outcome, Success):
            return WebhookResult(True, "Event correlated", 200)
        if isinstance(outcome, Ignore):
            return WebhookResult(True, "Event acknowledged", 200)
        if isinstance(outcome, Failure):
            return WebhookResult(False, outcome.message, 422)
        raise TypeError(f"unsupported delivery outcome: {outcome!r}")

    def _identity(self, event: WebhookEvent) -> str:
        operation = event.operation.lower()
        if event.record_id is not None and operation in _KEYED_OPERATIONS:
            return message_identity(
                event.model, event.record_id, operation, namespace=self._namespace
            )
        ids = "_".join(str(entry) for entry in event.record_ids) or "none"
        stamp = int(event.timestamp.timestamp())
        return f"{self._namespace}-{event.model}-{ids}-{operation or 'event'}-{stamp}"


__all__ = ["WebhookEvent", "WebhookProcessor", "WebhookResult"]
