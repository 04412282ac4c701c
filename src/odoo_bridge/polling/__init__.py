"""Change detection, deduplication and correlation for polled Odoo models."""

from .classifier import ChangeEvent, EventKind, classify
from .dedup import DeduplicationCache
from .dispatcher import (
    CorrelationConsumer,
    CorrelationDispatcher,
    DeliveryOutcome,
    Failure,
    Ignore,
    Success,
    marks_seen,
)
from .identity import DEFAULT_NAMESPACE, message_identity
from .service import (
    ActivationError,
    PollingMetrics,
    PollingScheduler,
    PollState,
    TickResult,
    TriggerCondition,
    effective_batch_size,
    effective_poll_interval,
)
from .window import ChangeWindowTracker, format_odoo_datetime, parse_domain

__all__ = [
    "ActivationError",
    "ChangeEvent",
    "ChangeWindowTracker",
    "CorrelationConsumer",
    "CorrelationDispatcher",
    "DEFAULT_NAMESPACE",
    "DeduplicationCache",
    "DeliveryOutcome",
    "EventKind",
    "Failure",
    "Ignore",
    "PollState",
    "PollingMetrics",
    "PollingScheduler",
    "Success",
    "TickResult",
    "TriggerCondition",
    "classify",
    "effective_batch_size",
    "effective_poll_interval",
    "format_odoo_datetime",
    "marks_seen",
    "message_identity",
    "parse_domain",
]
