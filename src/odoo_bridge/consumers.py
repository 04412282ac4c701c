"""Correlation consumers used by the runtime: an HTTP endpoint and a JSONL sink."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Mapping, Optional

import httpx

from .polling.dispatcher import DeliveryOutcome, Failure, Ignore, Success

logger = logging.getLogger(__name__)

_RECOVERABLE_STATUSES = frozenset({408, 429})


class HttpCorrelationConsumer:
    """Posts ``{"messageId", "variables"}`` to a correlation endpoint.

    The message id is also sent as an ``Idempotency-Key`` header so the
    receiving broker can reject replays.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        if not url:
            raise ValueError("url must be provided")
        self._url = url
        self._client = http_client or httpx.Client(timeout=timeout_seconds)

    def correlate(
        self, message_id: str, variables: Mapping[str, Any]
    ) -> DeliveryOutcome:
        try:
            response = self._client.post(
                self._url,
                json={"messageId": message_id, "variables": dict(variables)},
                headers={"Idempotency-Key": message_id},
            )
        except httpx.TransportError as exc:
            return Failure(recoverable=True, message=f"consumer unreachable: {exc}")
        status = response.status_code
        if response.is_success:
            return Success()
        message = f"HTTP {status}: {response.text[:200]}"
        if status == 404:
            return Ignore(message=message)
        if status in _RECOVERABLE_STATUSES or status >= 500:
            return Failure(recoverable=True, message=message)
        return Failure(recoverable=False, message=message)

    def close(self) -> None:
        self._client.close()


class JsonlConsumer:
    """Appends each delivery as one JSON line; always reports success."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def correlate(
        self, message_id: str, variables: Mapping[str, Any]
    ) -> DeliveryOutcome:
        line = json.dumps(
            {"messageId": message_id, "variables": dict(variables)},
            ensure_ascii=False,
            default=str,
        )
        with self._lock:
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        logger.info("delivery written to %s: %s", self._path, message_id)
        return Success()


__all__ = ["HttpCorrelationConsumer", "JsonlConsumer"]
