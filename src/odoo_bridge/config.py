"""Runtime configuration helpers for the Odoo bridge."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

from .polling.service import (
    TriggerCondition,
    effective_batch_size,
    effective_poll_interval,
)
from .polling.window import DEFAULT_TRACKING_FIELD, parse_fields
from .remote import OdooClientSettings


@dataclass(frozen=True)
class Settings:
    """Immutable container for service configuration."""

    odoo_url: str
    odoo_database: str
    odoo_api_key: str
    models: Tuple[str, ...] = ()
    poll_interval_seconds: float = 30.0
    trigger_condition: TriggerCondition = TriggerCondition.BOTH
    trigger_field: str = DEFAULT_TRACKING_FIELD
    filter_domain: str = ""
    fields: Tuple[str, ...] = ()
    batch_size: int = 50
    request_timeout_seconds: float = 30.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0
    retry_backoff_factor: float = 1.0
    dedup_high_water: int = 1000
    dedup_retain: int = 500
    shutdown_grace_seconds: float = 5.0
    message_namespace: str = "odoo"
    consumer_url: str = ""
    consumer_timeout_seconds: float = 10.0
    write_jsonl: bool = True
    jsonl_pattern: str = "deliveries_{model}.jsonl"
    webhook_secret: str = ""
    webhook_allowed_models: Tuple[str, ...] = ()
    webhook_event_type: str = "all"

    def client_settings(self) -> OdooClientSettings:
        return OdooClientSettings(
            base_url=self.odoo_url,
            database=self.odoo_database,
            api_key=self.odoo_api_key,
            request_timeout_seconds=self.request_timeout_seconds,
            retry_attempts=self.retry_attempts,
            retry_delay_seconds=self.retry_delay_seconds,
            retry_backoff_factor=self.retry_backoff_factor,
        )


def _as_bool(value: Optional[str], default: bool) -> bool:
    """Convert environment strings to booleans."""
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no"}


def _split_csv(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(entry.strip() for entry in value.split(",") if entry.strip())


def _coerce_trigger_condition(value: Optional[str]) -> TriggerCondition:
    """Translate TRIGGER_CONDITION to a supported value, defaulting to BOTH."""
    if value is None:
        return TriggerCondition.BOTH
    normalized = value.strip().upper()
    try:
        return TriggerCondition(normalized)
    except ValueError:
        return TriggerCondition.BOTH


def _coerce_event_type(value: Optional[str]) -> str:
    if value is None:
        return "all"
    normalized = value.strip().lower()
    if normalized in {"all", "create", "write", "unlink", "create_write"}:
        return normalized
    return "all"


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or not value.strip():
        return None
    return float(value)


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip():
        return None
    return int(value)


def load_settings() -> Settings:
    """Load configuration from the environment (and `.env`)."""
    load_dotenv()
    odoo_url = os.getenv("ODOO_URL", "").strip().rstrip("/")
    odoo_database = os.getenv("ODOO_DATABASE", "").strip()
    odoo_api_key = os.getenv("ODOO_API_KEY", "").strip()
    models = _split_csv(os.getenv("ODOO_MODELS"))

    poll_interval_seconds = effective_poll_interval(
        _optional_float(os.getenv("POLL_INTERVAL_SECONDS"))
    )
    batch_size = effective_batch_size(_optional_int(os.getenv("BATCH_SIZE")))
    trigger_condition = _coerce_trigger_condition(os.getenv("TRIGGER_CONDITION"))
    trigger_field = os.getenv("TRIGGER_FIELD", "").strip() or DEFAULT_TRACKING_FIELD
    filter_domain = os.getenv("FILTER_DOMAIN", "").strip()
    fields = tuple(parse_fields(os.getenv("POLL_FIELDS")))

    request_timeout_seconds = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30.0"))
    retry_attempts = int(os.getenv("RETRY_ATTEMPTS", "3"))
    retry_delay_seconds = float(os.getenv("RETRY_DELAY_SECONDS", "1.0"))
    retry_backoff_factor = float(os.getenv("RETRY_BACKOFF_FACTOR", "1.0"))
    dedup_high_water = int(os.getenv("DEDUP_HIGH_WATER", "1000"))
    dedup_retain = int(os.getenv("DEDUP_RETAIN", "500"))
    shutdown_grace_seconds = float(os.getenv("SHUTDOWN_GRACE_SECONDS", "5.0"))
    message_namespace = os.getenv("MESSAGE_NAMESPACE", "").strip() or "odoo"

    consumer_url = os.getenv("CONSUMER_URL", "").strip()
    consumer_timeout_seconds = float(os.getenv("CONSUMER_TIMEOUT_SECONDS", "10.0"))
    write_jsonl = _as_bool(os.getenv("WRITE_JSONL"), True)
    jsonl_pattern = os.getenv("JSONL_PATTERN", "deliveries_{model}.jsonl")

    webhook_secret = os.getenv("WEBHOOK_SECRET", "")
    webhook_allowed_models = _split_csv(os.getenv("WEBHOOK_ALLOWED_MODELS"))
    webhook_event_type = _coerce_event_type(os.getenv("WEBHOOK_EVENT_TYPE"))

    return Settings(
        odoo_url=odoo_url,
        odoo_database=odoo_database,
        odoo_api_key=odoo_api_key,
        models=models,
        poll_interval_seconds=poll_interval_seconds,
        trigger_condition=trigger_condition,
        trigger_field=trigger_field,
        filter_domain=filter_domain,
        fields=fields,
        batch_size=batch_size,
        request_timeout_seconds=request_timeout_seconds,
        retry_attempts=retry_attempts,
        retry_delay_seconds=retry_delay_seconds,
        retry_backoff_factor=retry_backoff_factor,
        dedup_high_water=dedup_high_water,
        dedup_retain=dedup_retain,
        shutdown_grace_seconds=shutdown_grace_seconds,
        message_namespace=message_namespace,
        consumer_url=consumer_url,
        consumer_timeout_seconds=consumer_timeout_seconds,
        write_jsonl=write_jsonl,
        jsonl_pattern=jsonl_pattern,
        webhook_secret=webhook_secret,
        webhook_allowed_models=webhook_allowed_models,
        webhook_event_type=webhook_event_type,
    )
