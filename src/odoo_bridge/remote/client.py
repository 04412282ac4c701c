"""Odoo JSON-2 API client with fixed-delay retries and a structured error taxonomy."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import httpx

from .errors import NO_RESPONSE_STATUS, RemoteError

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT: Mapping[str, Any] = {"lang": "en_US"}


@dataclass(frozen=True)
class OdooClientSettings:
    """Settings that control the Odoo client behaviour."""

    base_url: str
    database: str
    api_key: str
    api_path: str = "/json/2"
    request_timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 15.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0
    retry_backoff_factor: float = 1.0
    user_agent: str = "odoo-bridge/1.0"
    default_context: Mapping[str, Any] = field(
        default_factory=lambda: dict(DEFAULT_CONTEXT)
    )

    def resolve_endpoint(self) -> str:
        """Return the absolute JSON-2 base URL (``<base>/json/2``)."""
        base = self.base_url.rstrip("/")
        path = self.api_path.strip()
        if not path:
            return base
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{base}{path.rstrip('/')}"

    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json; charset=utf-8",
            "Accept": "application/json",
            "Authorization": f"bearer {self.api_key}",
            "X-Odoo-Database": self.database,
            "User-Agent": self.user_agent,
        }


@dataclass
class RemoteCallMetrics:
    """Minimal metrics collector used for in-process assertions."""

    requests_total: int = 0
    attempts_total: int = 0
    success_total: int = 0
    retry_total: int = 0
    failure_total: int = 0

    def inc_requests(self) -> None:
        self.requests_total += 1

    def inc_attempts(self) -> None:
        self.attempts_total += 1

    def inc_success(self) -> None:
        self.success_total += 1

    def inc_retry(self) -> None:
        self.retry_total += 1

    def inc_failure(self) -> None:
        self.failure_total += 1

    def snapshot(self) -> dict[str, int]:
        return {
            "requests_total": self.requests_total,
            "attempts_total": self.attempts_total,
            "success_total": self.success_total,
            "retry_total": self.retry_total,
            "failure_total": self.failure_total,
        }


class RetryPolicy:
    """Bounded retry schedule; the delay is fixed unless ``backoff_factor`` > 1."""

    def __init__(
        self,
        *,
        attempts: int,
        delay: float,
        backoff_factor: float = 1.0,
    ) -> None:
        if attempts < 0:
            raise ValueError("attempts must be >= 0")
        if delay < 0:
            raise ValueError("delay must be >= 0")
        if backoff_factor < 1:
            raise ValueError("backoff_factor must be at least 1.0")
        self._retries = attempts
        self._delay = float(delay)
        self._factor = float(backoff_factor)

    @property
    def max_attempts(self) -> int:
        """Return the total attempts (first try + retries)."""
        return self._retries + 1

    @property
    def retries(self) -> int:
        return self._retries

    def next_delay(self, attempt: int) -> float:
        """Return the delay (seconds) before ``attempt`` (1-based)."""
        if attempt <= 1:
            return 0.0
        return self._delay * (self._factor ** (attempt - 2))

    def all_delays(self) -> List[float]:
        return [self.next_delay(attempt) for attempt in range(2, self.max_attempts + 1)]


class OdooClient:
    """Issues logical operations against ``POST /json/2/<model>/<method>``.

    Transient statuses (429/502/503/504) and transport failures are retried
    according to the :class:`RetryPolicy`; every other failure surfaces as a
    :class:`RemoteError` immediately. The client owns its ``httpx.Client`` and
    must be closed, either explicitly or by using it as a context manager.
    """

    def __init__(
        self,
        settings: OdooClientSettings,
        *,
        http_client: Optional[httpx.Client] = None,
        metrics: Optional[RemoteCallMetrics] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._metrics = metrics or RemoteCallMetrics()
        self._sleep = sleep
        self._endpoint = settings.resolve_endpoint()
        self._retry_policy = RetryPolicy(
            attempts=settings.retry_attempts,
            delay=settings.retry_delay_seconds,
            backoff_factor=settings.retry_backoff_factor,
        )
        self._http_client: Optional[httpx.Client] = http_client or httpx.Client(
            timeout=httpx.Timeout(
                settings.request_timeout_seconds,
                connect=settings.connect_timeout_seconds,
            )
        )
        self._http_client.headers.update(settings.headers())
        logger.debug("Odoo client initialised for %s", settings.base_url)

    @property
    def metrics(self) -> RemoteCallMetrics:
        return self._metrics

    @property
    def closed(self) -> bool:
        return self._http_client is None

    # ------------------------------------------------------------------ Core call
    def call(
        self,
        model: str,
        method: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Execute ``method`` on ``model`` and return the decoded JSON result."""
        if self._http_client is None:
            raise RemoteError(NO_RESPONSE_STATUS, "client is closed")
        body: Dict[str, Any] = dict(params or {})
        if "context" not in body:
            body["context"] = dict(self._settings.default_context)
        url = f"{self._endpoint}/{model}/{method}"
        self._metrics.inc_requests()
        attempt = 1
        while True:
            try:
                return self._send(url, body)
            except RemoteError as exc:
                if (
                    not exc.retriable
                    or self.closed
                    or attempt >= self._retry_policy.max_attempts
                ):
                    self._metrics.inc_failure()
                    raise
                logger.warning(
                    "retrying %s.%s after transient error (attempt %d/%d): %s",
                    model,
                    method,
                    attempt,
                    self._retry_policy.max_attempts,
                    exc,
                )
            self._metrics.inc_retry()
            attempt += 1
            self._wait(self._retry_policy.next_delay(attempt))

    def _send(self, url: str, body: Mapping[str, Any]) -> Any:
        http_client = self._http_client
        if http_client is None:
            raise RemoteError(NO_RESPONSE_STATUS, "client is closed")
        self._metrics.inc_attempts()
        logger.debug("Odoo request POST %s - %s", url, body)
        try:
            response = http_client.post(url, json=body)
        except httpx.TransportError as exc:
            raise RemoteError(
                NO_RESPONSE_STATUS,
                f"Network error: {exc}",
                name=type(exc).__name__,
            ) from exc
        text = response.text or ""
        if not response.is_success:
            error = RemoteError.from_response(response.status_code, text)
            logger.debug("Odoo API error %s: %s", response.status_code, text[:500])
            raise error
        try:
            result = json.loads(text) if text else None
        except json.JSONDecodeError as exc:
            raise RemoteError(
                response.status_code,
                f"invalid JSON response: {exc}",
                detail=text[:200],
            ) from exc
        self._metrics.inc_success()
        return result

    def _wait(self, duration: float) -> None:
        if duration <= 0:
            return
        self._sleep(duration)

    # ------------------------------------------------------------------ Operations
    def create(self, model: str, values: Mapping[str, Any]) -> int:
        result = self.call(model, "create", {"vals_list": [dict(values)]})
        if isinstance(result, list) and result and _is_int(result[0]):
            return int(result[0])
        if _is_int(result):
            return int(result)
        raise _unexpected("create", result)

    def read(
        self,
        model: str,
        ids: Sequence[int],
        fields: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        body: Dict[str, Any] = {"ids": list(ids)}
        if fields:
            body["fields"] = list(fields)
        result = self.call(model, "read", body)
        if isinstance(result, list):
            return result
        raise _unexpected("read", result)

    def write(
        self, model: str, ids: Sequence[int], values: Mapping[str, Any]
    ) -> bool:
        result = self.call(model, "write", {"ids": list(ids), "values": dict(values)})
        return result is True

    def unlink(self, model: str, ids: Sequence[int]) -> bool:
        result = self.call(model, "unlink", {"ids": list(ids)})
        return result is True

    def search(
        self,
        model: str,
        domain: Optional[Sequence[Any]] = None,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[int]:
        body = _paged({"domain": list(domain or [])}, limit, offset)
        result = self.call(model, "search", body)
        if isinstance(result, list) and all(_is_int(item) for item in result):
            return [int(item) for item in result]
        raise _unexpected("search", result)

    def search_read(
        self,
        model: str,
        domain: Optional[Sequence[Any]] = None,
        fields: Optional[Sequence[str]] = None,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        body: Dict[str, Any] = {"domain": list(domain or [])}
        if fields:
            body["fields"] = list(fields)
        if order:
            body["order"] = order
        result = self.call(model, "search_read", _paged(body, limit, offset))
        if isinstance(result, list):
            return result
        raise _unexpected("search_read", result)

    def search_count(self, model: str, domain: Optional[Sequence[Any]] = None) -> int:
        result = self.call(model, "search_count", {"domain": list(domain or [])})
        if _is_int(result):
            return int(result)
        raise _unexpected("search_count", result)

    def fields_get(
        self, model: str, fields: Optional[Sequence[str]] = None
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "attributes": ["string", "type", "required", "readonly", "selection"]
        }
        if fields:
            body["allfields"] = list(fields)
        result = self.call(model, "fields_get", body)
        if isinstance(result, dict):
            return result
        raise _unexpected("fields_get", result)

    def call_method(
        self,
        model: str,
        method: str,
        ids: Optional[Sequence[int]] = None,
        args: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        body: Dict[str, Any] = {}
        if ids:
            body["ids"] = list(ids)
        if args:
            body.update(args)
        return self.call(model, method, body)

    def probe(self) -> None:
        """Raise :class:`RemoteError` unless the instance answers an authenticated call."""
        self.fields_get("res.users", ["name"])

    # ------------------------------------------------------------------ Lifecycle
    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None
            logger.debug("Odoo client closed")

    def __enter__(self) -> "OdooClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _paged(
    body: Dict[str, Any], limit: Optional[int], offset: Optional[int]
) -> Dict[str, Any]:
    if limit is not None:
        body["limit"] = limit
    if offset is not None:
        body["offset"] = offset
    return body


def _unexpected(method: str, result: object) -> RemoteError:
    return RemoteError(200, f"Unexpected {method} result type: {result!r}")


__all__ = [
    "DEFAULT_CONTEXT",
    "OdooClient",
    "OdooClientSettings",
    "RemoteCallMetrics",
    "RetryPolicy",
]
