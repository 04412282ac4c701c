"""Polling scheduler coordinating fetch, classification, dedup and correlation."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from prometheus_client import CollectorRegistry, Counter, Gauge

from .classifier import ChangeEvent, classify, parse_odoo_timestamp, record_id_of
from .dedup import DeduplicationCache
from .dispatcher import (
    CorrelationDispatcher,
    Failure,
    Ignore,
    Success,
    marks_seen,
)
from .identity import DEFAULT_NAMESPACE, message_identity
from .window import ChangeWindowTracker

logger = logging.getLogger(__name__)

MIN_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_POLL_INTERVAL_SECONDS = 30.0
DEFAULT_BATCH_SIZE = 50
MAX_BATCH_SIZE = 100
DEFAULT_SHUTDOWN_GRACE_SECONDS = 5.0


def effective_poll_interval(value: Optional[float]) -> float:
    """Unset intervals use the default; short ones are clamped to the floor."""
    if value is None:
        return DEFAULT_POLL_INTERVAL_SECONDS
    return max(MIN_POLL_INTERVAL_SECONDS, float(value))


def effective_batch_size(value: Optional[int]) -> int:
    if value is None:
        return DEFAULT_BATCH_SIZE
    return max(1, min(MAX_BATCH_SIZE, int(value)))


class TriggerCondition(str, Enum):
    NEW = "NEW"
    MODIFIED = "MODIFIED"
    BOTH = "BOTH"

    @property
    def on_create(self) -> bool:
        return self in (TriggerCondition.NEW, TriggerCondition.BOTH)

    @property
    def on_modify(self) -> bool:
        return self in (TriggerCondition.MODIFIED, TriggerCondition.BOTH)


class RecordSource(Protocol):
    """The slice of :class:`~odoo_bridge.remote.OdooClient` the scheduler uses."""

    def search_read(
        self,
        model: str,
        domain: Optional[Sequence[Any]] = None,
        fields: Optional[Sequence[str]] = None,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]: ...

    def probe(self) -> None: ...

    def close(self) -> None: ...


class ActivationError(RuntimeError):
    """Raised when a poller cannot reach Odoo on activation."""


@dataclass
class PollState:
    """Mutable per-poller state; written only by the poller's own tick.

    ``page_offset`` is non-zero only while a full batch could not move the
    window forward (every record in it shares the window's lower bound or a
    failed record pins it); the next fetch then pages past the records
    already seen instead of refetching them.
    """

    last_successful_poll_time: datetime
    seen_ids: DeduplicationCache = field(default_factory=DeduplicationCache)
    page_offset: int = 0

    def advance(self, target: datetime) -> bool:
        """Move the window to ``target`` if that is later; return whether it moved."""
        if target > self.last_successful_poll_time:
            self.last_successful_poll_time = target
            return True
        return False


@dataclass(frozen=True)
class TickResult:
    completed: bool
    fetched: int = 0
    delivered: int = 0
    ignored: int = 0
    failed: int = 0
    duplicates: int = 0
    dropped: int = 0
    evicted: int = 0


class PollingMetrics:
    """Prometheus counters on a private registry, with a plain snapshot for tests."""

    _COUNTERS = {
        "ticks": "Poll ticks completed",
        "tick_failures": "Poll ticks aborted by a fetch failure",
        "records_fetched": "Records returned by Odoo",
        "delivered": "Deliveries accepted by the consumer",
        "ignored": "Deliveries with no waiting consumer",
        "failed": "Deliveries rejected or raising",
        "duplicates": "Records skipped by the dedup cache",
        "dropped": "Records dropped before dispatch",
    }

    def __init__(
        self,
        namespace: str = "odoo_bridge",
        *,
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        self._registry = registry or CollectorRegistry()
        self._prefix = f"{namespace}_poll"
        self._counters: Dict[str, Counter] = {
            name: Counter(f"{self._prefix}_{name}_total", doc, registry=self._registry)
            for name, doc in self._COUNTERS.items()
        }
        self._seen_ids = Gauge(
            f"{self._prefix}_seen_ids",
            "Record ids held in the dedup cache",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def inc(self, name: str, amount: int = 1) -> None:
        if amount <= 0:
            return
        self._counters[name].inc(amount)

    def set_seen_ids(self, value: int) -> None:
        self._seen_ids.set(value)

    def snapshot(self) -> Dict[str, float]:
        values: Dict[str, float] = {}
        for name in self._COUNTERS:
            sample = self._registry.get_sample_value(f"{self._prefix}_{name}_total")
            values[f"{name}_total"] = sample or 0.0
        values["seen_ids"] = (
            self._registry.get_sample_value(f"{self._prefix}_seen_ids") or 0.0
        )
        return values


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Odoo timestamps have second precision and the window filter is strict.
_WINDOW_OVERLAP = timedelta(seconds=1)


class PollingScheduler:
    """Polls one Odoo model on a fixed interval and correlates each change once.

    States are ``inactive`` and ``active``. One daemon worker thread runs the
    ticks back to back with ``interval`` seconds between them, so ticks for
    the same scheduler never overlap.
    """

    def __init__(
        self,
        *,
        model: str,
        client: RecordSource,
        dispatcher: CorrelationDispatcher,
        window: Optional[ChangeWindowTracker] = None,
        trigger: TriggerCondition = TriggerCondition.BOTH,
        interval_seconds: Optional[float] = None,
        batch_size: Optional[int] = None,
        namespace: str = DEFAULT_NAMESPACE,
        dedup_high_water: int = 1000,
        dedup_retain: int = 500,
        shutdown_grace_seconds: float = DEFAULT_SHUTDOWN_GRACE_SECONDS,
        metrics: Optional[PollingMetrics] = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not model:
            raise ValueError("model must be provided")
        self.model = model
        self._client = client
        self._dispatcher = dispatcher
        self._window = window or ChangeWindowTracker()
        self._trigger = trigger
        self.interval_seconds = effective_poll_interval(interval_seconds)
        self.batch_size = effective_batch_size(batch_size)
        self._namespace = namespace
        self._dedup_high_water = dedup_high_water
        self._dedup_retain = dedup_retain
        self._grace = max(0.0, shutdown_grace_seconds)
        self._metrics = metrics or PollingMetrics()
        self._now = now
        self._lifecycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._cancel_event = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._poll_state: Optional[PollState] = None

    @property
    def state(self) -> str:
        return "active" if self._poll_state is not None else "inactive"

    @property
    def poll_state(self) -> Optional[PollState]:
        return self._poll_state

    @property
    def metrics(self) -> PollingMetrics:
        return self._metrics

    # ------------------------------------------------------------------ Lifecycle
    def activate(self, *, start_worker: bool = True) -> None:
        with self._lifecycle_lock:
            if self._poll_state is not None:
                return
            try:
                self._client.probe()
            except Exception as exc:  # noqa: BLE001 - surfaced as activation failure
                logger.error("connection test failed for %s: %s", self.model, exc)
                self._close_client()
                raise ActivationError(
                    f"failed to connect to Odoo while activating poller for {self.model}"
                ) from exc
            self._poll_state = PollState(
                last_successful_poll_time=self._now(),
                seen_ids=DeduplicationCache(
                    high_water=self._dedup_high_water, retain=self._dedup_retain
                ),
            )
            # Fresh events per worker: a worker abandoned after the grace
            # period keeps its own (set) events and cannot be revived.
            self._stop_event = threading.Event()
            self._cancel_event = threading.Event()
            if start_worker:
                self._worker = threading.Thread(
                    target=self._run_loop,
                    args=(self._stop_event, self._cancel_event),
                    name=f"odoo-poll-{self.model}",
                    daemon=True,
                )
                self._worker.start()
        logger.info(
            "Odoo poller activated: model=%s, interval=%ss, batch=%d",
            self.model,
            self.interval_seconds,
            self.batch_size,
        )

    def deactivate(self) -> None:
        with self._lifecycle_lock:
            if self._poll_state is None and self._worker is None:
                return
            self._stop_event.set()
            worker = self._worker
            if worker is not None and worker.is_alive():
                worker.join(timeout=self._grace)
                if worker.is_alive():
                    logger.warning(
                        "poll tick for %s still running after %.1fs; cancelling",
                        self.model,
                        self._grace,
                    )
                    self._cancel_event.set()
            self._worker = None
            try:
                self._client.close()
            finally:
                if self._poll_state is not None:
                    self._poll_state.seen_ids.clear()
                self._poll_state = None
                self._metrics.set_seen_ids(0)
        logger.info("Odoo poller deactivated: model=%s", self.model)

    def _close_client(self) -> None:
        try:
            self._client.close()
        except Exception:  # noqa: BLE001 - the activation error takes precedence
            logger.warning("failed to close client for %s", self.model, exc_info=True)

    def _run_loop(
        self, stop_event: threading.Event, cancel_event: threading.Event
    ) -> None:
        while not stop_event.wait(self.interval_seconds):
            state = self._poll_state
            if state is None or cancel_event.is_set():
                break
            try:
                self._tick(state, cancel_event)
            except Exception:  # noqa: BLE001 - the next tick must still run
                logger.exception("poll tick for %s failed unexpectedly", self.model)

    # ------------------------------------------------------------------ Tick
    def run_tick(self) -> TickResult:
        """Run one fetch-classify-dispatch cycle if the scheduler is active."""
        state = self._poll_state
        cancel_event = self._cancel_event
        if state is None or cancel_event.is_set():
            return TickResult(completed=False)
        return self._tick(state, cancel_event)

    def _tick(self, state: PollState, cancel_event: threading.Event) -> TickResult:
        tick_started_at = self._now()
        domain = self._window.build_filter(state.last_successful_poll_time)
        fields = self._window.build_fields()
        try:
            records = self._client.search_read(
                self.model,
                domain,
                fields,
                limit=self.batch_size,
                offset=state.page_offset or None,
                order=self._window.order,
            )
        except Exception as exc:  # noqa: BLE001 - window stays put for the retry
            self._metrics.inc("tick_failures")
            logger.error("error polling Odoo for %s: %s", self.model, exc)
            return TickResult(completed=False)

        self._metrics.inc("records_fetched", len(records))
        if records:
            logger.info("found %d records to process for %s", len(records), self.model)
        else:
            logger.debug("no new records found for %s", self.model)

        counts = {"delivered": 0, "ignored": 0, "failed": 0, "duplicates": 0, "dropped": 0}
        retry_from: Optional[datetime] = None
        pinned = False
        for record in records:
            if cancel_event.is_set():
                logger.warning("poll tick for %s cancelled mid-batch", self.model)
                return TickResult(completed=False, fetched=len(records), **counts)
            label = self._process_record(state, record)
            counts[label] += 1
            if label == "failed":
                changed_at = self._changed_at(record)
                if changed_at is None:
                    pinned = True
                elif retry_from is None or changed_at < retry_from:
                    retry_from = changed_at

        self._advance_window(state, records, tick_started_at, retry_from, pinned)
        evicted = state.seen_ids.evict()
        self._metrics.set_seen_ids(len(state.seen_ids))
        self._metrics.inc("ticks")
        return TickResult(
            completed=True, fetched=len(records), evicted=evicted, **counts
        )

    def _changed_at(self, record: Mapping[str, Any]) -> Optional[datetime]:
        return parse_odoo_timestamp(record.get(self._window.tracking_field))

    def _advance_window(
        self,
        state: PollState,
        records: Sequence[Mapping[str, Any]],
        tick_started_at: datetime,
        retry_from: Optional[datetime],
        pinned: bool,
    ) -> None:
        """Move the window forward without skipping unfetched or failed records.

        A short batch means everything changed before the tick start was seen.
        A full batch only covers changes up to its last record (the fetch is
        ordered by the tracking field). A failed delivery holds the window just
        below its own timestamp so the next fetch returns it again; records
        already delivered in the overlap are stopped by the dedup cache.
        """
        full_batch = len(records) >= self.batch_size
        if pinned:
            target = state.last_successful_poll_time
        elif full_batch:
            last_changed = self._changed_at(records[-1])
            target = (
                last_changed - _WINDOW_OVERLAP
                if last_changed is not None
                else state.last_successful_poll_time
            )
        else:
            target = tick_started_at
        if retry_from is not None:
            target = min(target, retry_from - _WINDOW_OVERLAP)

        if state.advance(target):
            state.page_offset = 0
        elif full_batch:
            state.page_offset += len(records)
            logger.debug(
                "window for %s held at %s; next fetch starts at offset %d",
                self.model,
                state.last_successful_poll_time,
                state.page_offset,
            )
        else:
            state.page_offset = 0

    def _process_record(self, state: PollState, record: Mapping[str, Any]) -> str:
        record_id = record_id_of(record)
        if record_id is None:
            self._metrics.inc("dropped")
            return "dropped"
        if state.seen_ids.seen(record_id):
            self._metrics.inc("duplicates")
            return "duplicates"
        kind = classify(record, self._trigger.on_create, self._trigger.on_modify)
        if kind is None:
            self._metrics.inc("dropped")
            return "dropped"

        event = ChangeEvent.from_record(
            self.model, record, kind, self._window.tracking_field, now=self._now
        )
        identity = message_identity(
            self.model, record_id, kind, namespace=self._namespace
        )
        try:
            outcome = self._dispatcher.dispatch(identity, event.to_variables())
        except Exception:  # noqa: BLE001 - isolate per-record failures
            self._metrics.inc("failed")
            logger.exception("failed to correlate event for record %s", record_id)
            return "failed"

        if marks_seen(outcome):
            state.seen_ids.mark(record_id)
        if isinstance(outcome, Success):
            label = "delivered"
        elif isinstance(outcome, Ignore):
            label = "ignored"
        elif isinstance(outcome, Failure):
            label = "failed"
        else:
            raise TypeError(f"unsupported delivery outcome: {outcome!r}")
        self._metrics.inc(label)
        return label


__all__ = [
    "ActivationError",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "MAX_BATCH_SIZE",
    "MIN_POLL_INTERVAL_SECONDS",
    "PollState",
    "PollingMetrics",
    "PollingScheduler",
    "RecordSource",
    "TickResult",
    "TriggerCondition",
    "effective_batch_size",
    "effective_poll_interval",
]
