"""Correlation dispatch: hand a keyed delivery to the consumer and interpret the outcome."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Success:
    """The consumer accepted the delivery."""


@dataclass(frozen=True)
class Failure:
    """The consumer rejected the delivery."""

    recoverable: bool
    message: str


@dataclass(frozen=True)
class Ignore:
    """No consumer was waiting for the delivery; not an error."""

    message: str


DeliveryOutcome = Union[Success, Failure, Ignore]


class CorrelationConsumer(Protocol):
    """Downstream consumer deduplicating deliveries by ``message_id``."""

    def correlate(
        self, message_id: str, variables: Mapping[str, Any]
    ) -> DeliveryOutcome: ...


def marks_seen(outcome: DeliveryOutcome) -> bool:
    """Return True when the record behind ``outcome`` must not be re-delivered."""
    if isinstance(outcome, Success):
        return True
    if isinstance(outcome, Ignore):
        return True
    if isinstance(outcome, Failure):
        return False
    raise TypeError(f"unsupported delivery outcome: {outcome!r}")


class CorrelationDispatcher:
    """Submits deliveries to a consumer and logs each outcome at its severity."""

    def __init__(self, consumer: CorrelationConsumer) -> None:
        self._consumer = consumer

    def dispatch(
        self, identity: str, payload: Mapping[str, Any]
    ) -> DeliveryOutcome:
        outcome = self._consumer.correlate(identity, payload)
        if isinstance(outcome, Success):
            logger.info("event correlated: %s", identity)
        elif isinstance(outcome, Failure):
            if outcome.recoverable:
                logger.warning(
                    "correlation failed (recoverable) for %s: %s",
                    identity,
                    outcome.message,
                )
            else:
                logger.error("correlation failed for %s: %s", identity, outcome.message)
        elif isinstance(outcome, Ignore):
            logger.debug("no waiting consumer for %s: %s", identity, outcome.message)
        else:
            raise TypeError(f"unsupported delivery outcome: {outcome!r}")
        return outcome


__all__ = [
    "CorrelationConsumer",
    "CorrelationDispatcher",
    "DeliveryOutcome",
    "Failure",
    "Ignore",
    "Success",
    "marks_seen",
]
