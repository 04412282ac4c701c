from __future__ import annotations

import json
from typing import Callable, List

import httpx
import pytest

from odoo_bridge.remote import (
    ErrorKind,
    OdooClient,
    OdooClientSettings,
    RemoteError,
    RetryPolicy,
    kind_for_status,
)


def _settings(**overrides) -> OdooClientSettings:
    values = dict(base_url="https://odoo.example/", database="prod", api_key="secret")
    values.update(overrides)
    return OdooClientSettings(**values)


def _client(
    handler: Callable[[httpx.Request], httpx.Response], sleeps: List[float], **overrides
) -> OdooClient:
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return OdooClient(_settings(**overrides), http_client=http_client, sleep=sleeps.append)


@pytest.mark.unit
@pytest.mark.parametrize(
    "status, kind",
    [
        (0, ErrorKind.TRANSIENT),
        (400, ErrorKind.VALIDATION),
        (401, ErrorKind.AUTHENTICATION),
        (403, ErrorKind.PERMISSION),
        (404, ErrorKind.NOT_FOUND),
        (422, ErrorKind.VALIDATION),
        (429, ErrorKind.TRANSIENT),
        (500, ErrorKind.UNKNOWN),
        (502, ErrorKind.TRANSIENT),
        (503, ErrorKind.TRANSIENT),
        (504, ErrorKind.TRANSIENT),
        (418, ErrorKind.UNKNOWN),
    ],
)
def test_status_codes_map_to_error_kinds(status: int, kind: ErrorKind) -> None:
    assert kind_for_status(status) is kind
    assert RemoteError(status, "boom").retriable is (kind is ErrorKind.TRANSIENT)


@pytest.mark.unit
def test_error_body_is_parsed_into_structured_fields() -> None:
    body = json.dumps(
        {
            "name": "odoo.exceptions.AccessError",
            "message": "You are not allowed to modify this document",
            "arguments": ["You are not allowed", 403],
            "debug": "Traceback ...",
        }
    )
    error = RemoteError.from_response(403, body)

    assert error.kind is ErrorKind.PERMISSION
    assert error.name == "odoo.exceptions.AccessError"
    assert error.arguments == ["You are not allowed", 403]
    assert error.detail == "Traceback ..."
    assert str(error) == (
        "[403] odoo.exceptions.AccessError: You are not allowed to modify this document"
    )


@pytest.mark.unit
def test_error_body_without_name_is_labelled_by_kind() -> None:
    error = RemoteError.from_response(401, json.dumps({"message": "Invalid API key"}))

    assert error.name == ""
    assert str(error) == "[401] authentication: Invalid API key"


@pytest.mark.unit
def test_non_json_error_body_falls_back_to_http_message() -> None:
    error = RemoteError.from_response(502, "<html>Bad Gateway</html>")

    assert error.kind is ErrorKind.TRANSIENT
    assert error.name == "HTTP Error"
    assert error.message == "HTTP 502: <html>Bad Gateway</html>"


@pytest.mark.unit
def test_requests_carry_auth_headers_and_default_context() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[42])

    client = _client(handler, [])
    created = client.create("res.partner", {"name": "Acme"})

    assert created == 42
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://odoo.example/json/2/res.partner/create"
    assert request.headers["authorization"] == "bearer secret"
    assert request.headers["x-odoo-database"] == "prod"
    assert request.headers["user-agent"] == "odoo-bridge/1.0"
    assert json.loads(request.content) == {
        "vals_list": [{"name": "Acme"}],
        "context": {"lang": "en_US"},
    }
    client.close()


@pytest.mark.unit
def test_transient_status_is_retried_three_times_with_fixed_delay() -> None:
    calls = {"count": 0}
    sleeps: List[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(503, text="maintenance")

    client = _client(handler, sleeps)
    with pytest.raises(RemoteError) as excinfo:
        client.search_read("sale.order", [], ["id"])

    assert excinfo.value.kind is ErrorKind.TRANSIENT
    assert calls["count"] == 4
    assert sleeps == [1.0, 1.0, 1.0]
    snapshot = client.metrics.snapshot()
    assert snapshot["retry_total"] == 3
    assert snapshot["failure_total"] == 1
    assert snapshot["attempts_total"] == 4


@pytest.mark.unit
def test_transient_failure_then_success_returns_result() -> None:
    responses = [httpx.Response(429), httpx.Response(200, json=[1, 2, 3])]
    sleeps: List[float] = []

    client = _client(lambda request: responses.pop(0), sleeps)

    assert client.search("res.partner", [["active", "=", True]], limit=3) == [1, 2, 3]
    assert sleeps == [1.0]
    assert client.metrics.retry_total == 1
    assert client.metrics.success_total == 1


@pytest.mark.unit
def test_validation_error_is_not_retried() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(
            400, json={"name": "odoo.exceptions.ValidationError", "message": "bad vals"}
        )

    sleeps: List[float] = []
    client = _client(handler, sleeps)
    with pytest.raises(RemoteError) as excinfo:
        client.write("res.partner", [1], {"email": "nope"})

    assert excinfo.value.kind is ErrorKind.VALIDATION
    assert calls["count"] == 1
    assert sleeps == []


@pytest.mark.unit
def test_network_errors_are_retried_as_transient() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json=7)

    client = _client(handler, [])

    assert client.search_count("res.partner") == 7
    assert calls["count"] == 2


@pytest.mark.unit
def test_backoff_factor_grows_retry_delays() -> None:
    policy = RetryPolicy(attempts=3, delay=1.0, backoff_factor=2.0)

    assert policy.max_attempts == 4
    assert policy.all_delays() == [1.0, 2.0, 4.0]


@pytest.mark.unit
def test_unexpected_result_shape_raises_remote_error() -> None:
    client = _client(lambda request: httpx.Response(200, json={"oops": True}), [])

    with pytest.raises(RemoteError, match="Unexpected search_read result type"):
        client.search_read("res.partner")


@pytest.mark.unit
def test_search_read_sends_paging_and_fields() -> None:
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=[{"id": 1}])

    client = _client(handler, [])
    records = client.search_read(
        "res.partner",
        [["id", ">", 0]],
        ["id", "name"],
        limit=5,
        offset=10,
        order="write_date asc, id asc",
    )

    assert records == [{"id": 1}]
    assert bodies[0] == {
        "domain": [["id", ">", 0]],
        "fields": ["id", "name"],
        "order": "write_date asc, id asc",
        "limit": 5,
        "offset": 10,
        "context": {"lang": "en_US"},
    }


@pytest.mark.unit
def test_closed_client_refuses_calls() -> None:
    with _client(lambda request: httpx.Response(200, json=True), []) as client:
        assert client.unlink("res.partner", [3]) is True
    assert client.closed

    with pytest.raises(RemoteError, match="client is closed"):
        client.unlink("res.partner", [3])
