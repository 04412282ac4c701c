from __future__ import annotations

from pathlib import Path

import pytest

from odoo_bridge.config import Settings
from odoo_bridge.consumers import HttpCorrelationConsumer, JsonlConsumer
from odoo_bridge.polling import ActivationError, PollingScheduler
from odoo_bridge.remote import RemoteError
from odoo_bridge.service import (
    ServiceRuntime,
    build_consumer,
    build_poller,
    build_webhook_processor,
)


def _settings(**overrides) -> Settings:
    values = dict(
        odoo_url="https://odoo.example",
        odoo_database="prod",
        odoo_api_key="key",
        models=("res.partner", "sale.order"),
    )
    values.update(overrides)
    return Settings(**values)


class FakePoller:
    def __init__(self, model: str, *, fail: bool = False) -> None:
        self.model = model
        self.fail = fail
        self.active = False

    def activate(self) -> None:
        if self.fail:
            raise ActivationError(f"cannot reach Odoo for {self.model}")
        self.active = True

    def deactivate(self) -> None:
        self.active = False


class UnreachableClient:
    """Client whose connectivity check always fails."""

    def __init__(self) -> None:
        self.closed = False

    def probe(self) -> None:
        raise RemoteError(0, "connection refused")

    def search_read(self, *args, **kwargs):  # pragma: no cover - never activated
        raise AssertionError("unexpected fetch")

    def close(self) -> None:
        self.closed = True


class ClosingConsumer:
    def __init__(self) -> None:
        self.closed = False

    def correlate(self, message_id, variables):  # pragma: no cover - not dispatched
        raise AssertionError("unexpected delivery")

    def close(self) -> None:
        self.closed = True


@pytest.mark.unit
def test_consumer_selection_prefers_http_endpoint() -> None:
    http = build_consumer(_settings(consumer_url="https://broker.example/c"), "res.partner")
    jsonl = build_consumer(_settings(jsonl_pattern="out/{model}.jsonl"), "res.partner")

    assert isinstance(http, HttpCorrelationConsumer)
    assert isinstance(jsonl, JsonlConsumer)
    assert jsonl.path == Path("out/res.partner.jsonl")
    http.close()
    with pytest.raises(ValueError):
        build_consumer(_settings(write_jsonl=False), "res.partner")


@pytest.mark.unit
def test_build_poller_requires_credentials() -> None:
    with pytest.raises(ValueError):
        build_poller(_settings(odoo_api_key=""), "res.partner", ClosingConsumer())


@pytest.mark.unit
def test_build_poller_applies_settings() -> None:
    poller = build_poller(
        _settings(poll_interval_seconds=45.0, batch_size=20),
        "res.partner",
        ClosingConsumer(),
    )

    assert isinstance(poller, PollingScheduler)
    assert poller.interval_seconds == 45.0
    assert poller.batch_size == 20
    assert poller.state == "inactive"


@pytest.mark.unit
def test_runtime_isolates_activation_failures_and_closes_consumers() -> None:
    consumers = []
    pollers = {}

    def consumer_factory(settings, model):
        consumer = ClosingConsumer()
        consumers.append(consumer)
        return consumer

    def poller_factory(settings, model, consumer):
        poller = FakePoller(model, fail=model == "res.partner")
        pollers[model] = poller
        return poller

    runtime = ServiceRuntime(
        _settings(), poller_factory=poller_factory, consumer_factory=consumer_factory
    )

    assert runtime.start() == 1
    assert list(runtime.pollers) == ["sale.order"]
    assert pollers["sale.order"].active is True

    runtime.stop()

    assert pollers["sale.order"].active is False
    assert runtime.pollers == {}
    assert all(consumer.closed for consumer in consumers)


@pytest.mark.unit
def test_runtime_requires_models() -> None:
    with pytest.raises(RuntimeError):
        ServiceRuntime(_settings(models=())).start()


@pytest.mark.unit
def test_run_returns_when_stop_already_requested() -> None:
    runtime = ServiceRuntime(
        _settings(models=("sale.order",)),
        poller_factory=lambda settings, model, consumer: FakePoller(model),
        consumer_factory=lambda settings, model: ClosingConsumer(),
    )
    runtime.request_stop()

    runtime.run()

    assert runtime.pollers == {}


@pytest.mark.unit
def test_runtime_releases_client_of_poller_that_fails_activation() -> None:
    clients = []

    def poller_factory(settings, model, consumer):
        client = UnreachableClient()
        clients.append(client)
        return build_poller(settings, model, consumer, client=client)

    runtime = ServiceRuntime(
        _settings(models=("res.partner",)),
        poller_factory=poller_factory,
        consumer_factory=lambda settings, model: ClosingConsumer(),
    )

    assert runtime.start() == 0
    assert [client.closed for client in clients] == [True]
    runtime.stop()


@pytest.mark.unit
def test_webhook_processor_uses_webhook_settings() -> None:
    consumer = ClosingConsumer()
    processor = build_webhook_processor(
        _settings(
            webhook_secret="token",
            webhook_allowed_models=("sale.order",),
            webhook_event_type="create",
            message_namespace="erp",
        ),
        consumer,
    )
    payload = {"model": "res.partner", "operation": "create", "record_ids": [1]}

    assert processor.active is True
    assert processor.process(payload, "bad").status_code == 401
    assert processor.process(payload, "token").message == "Model not in allowed list"
    assert processor.is_model_allowed("sale.order")
    assert processor.is_event_type_allowed("create")
    assert not processor.is_event_type_allowed("write")
