from __future__ import annotations

import pytest

from odoo_bridge import config
from odoo_bridge.config import load_settings
from odoo_bridge.polling import TriggerCondition

_ENV_VARS = (
    "ODOO_URL",
    "ODOO_DATABASE",
    "ODOO_API_KEY",
    "ODOO_MODELS",
    "POLL_INTERVAL_SECONDS",
    "BATCH_SIZE",
    "TRIGGER_CONDITION",
    "TRIGGER_FIELD",
    "FILTER_DOMAIN",
    "POLL_FIELDS",
    "REQUEST_TIMEOUT_SECONDS",
    "RETRY_ATTEMPTS",
    "RETRY_DELAY_SECONDS",
    "RETRY_BACKOFF_FACTOR",
    "DEDUP_HIGH_WATER",
    "DEDUP_RETAIN",
    "SHUTDOWN_GRACE_SECONDS",
    "MESSAGE_NAMESPACE",
    "CONSUMER_URL",
    "CONSUMER_TIMEOUT_SECONDS",
    "WRITE_JSONL",
    "JSONL_PATTERN",
    "WEBHOOK_SECRET",
    "WEBHOOK_ALLOWED_MODELS",
    "WEBHOOK_EVENT_TYPE",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.setattr(config, "load_dotenv", lambda *args, **kwargs: False)
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.mark.unit
def test_defaults_when_environment_is_empty() -> None:
    settings = load_settings()

    assert settings.models == ()
    assert settings.poll_interval_seconds == 30.0
    assert settings.batch_size == 50
    assert settings.trigger_condition is TriggerCondition.BOTH
    assert settings.trigger_field == "write_date"
    assert settings.retry_attempts == 3
    assert settings.retry_delay_seconds == 1.0
    assert settings.message_namespace == "odoo"
    assert settings.write_jsonl is True
    assert settings.webhook_event_type == "all"


@pytest.mark.unit
def test_environment_values_are_parsed_and_clamped(monkeypatch) -> None:
    monkeypatch.setenv("ODOO_URL", "https://odoo.example/")
    monkeypatch.setenv("ODOO_DATABASE", "prod")
    monkeypatch.setenv("ODOO_API_KEY", "key")
    monkeypatch.setenv("ODOO_MODELS", "res.partner, sale.order,,")
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "3")
    monkeypatch.setenv("BATCH_SIZE", "250")
    monkeypatch.setenv("TRIGGER_CONDITION", "new")
    monkeypatch.setenv("POLL_FIELDS", '["name", "email"]')
    monkeypatch.setenv("WRITE_JSONL", "false")
    monkeypatch.setenv("WEBHOOK_ALLOWED_MODELS", "res.partner")
    monkeypatch.setenv("WEBHOOK_EVENT_TYPE", "CREATE_WRITE")

    settings = load_settings()

    assert settings.odoo_url == "https://odoo.example"
    assert settings.models == ("res.partner", "sale.order")
    assert settings.poll_interval_seconds == 10.0
    assert settings.batch_size == 100
    assert settings.trigger_condition is TriggerCondition.NEW
    assert settings.fields == ("name", "email")
    assert settings.write_jsonl is False
    assert settings.webhook_allowed_models == ("res.partner",)
    assert settings.webhook_event_type == "create_write"


@pytest.mark.unit
def test_unknown_trigger_condition_falls_back_to_both(monkeypatch) -> None:
    monkeypatch.setenv("TRIGGER_CONDITION", "sometimes")

    assert load_settings().trigger_condition is TriggerCondition.BOTH


@pytest.mark.unit
def test_client_settings_carry_retry_configuration(monkeypatch) -> None:
    monkeypatch.setenv("ODOO_URL", "https://odoo.example")
    monkeypatch.setenv("ODOO_DATABASE", "prod")
    monkeypatch.setenv("ODOO_API_KEY", "key")
    monkeypatch.setenv("RETRY_ATTEMPTS", "5")
    monkeypatch.setenv("RETRY_BACKOFF_FACTOR", "2")

    client_settings = load_settings().client_settings()

    assert client_settings.resolve_endpoint() == "https://odoo.example/json/2"
    assert client_settings.retry_attempts == 5
    assert client_settings.retry_backoff_factor == 2.0
    assert client_settings.headers()["X-Odoo-Database"] == "prod"
