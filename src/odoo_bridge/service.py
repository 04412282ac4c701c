"""Runtime wiring one polling scheduler per configured Odoo model."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .config import Settings
from .consumers import HttpCorrelationConsumer, JsonlConsumer
from .polling import (
    ActivationError,
    ChangeWindowTracker,
    CorrelationConsumer,
    CorrelationDispatcher,
    PollingScheduler,
)
from .remote import OdooClient
from .webhook import WebhookProcessor

logger = logging.getLogger(__name__)

PollerFactory = Callable[[Settings, str, CorrelationConsumer], PollingScheduler]


def build_consumer(settings: Settings, model: str) -> CorrelationConsumer:
    """Prefer the HTTP correlation endpoint; fall back to the JSONL sink."""
    if settings.consumer_url:
        return HttpCorrelationConsumer(
            settings.consumer_url, timeout_seconds=settings.consumer_timeout_seconds
        )
    if settings.write_jsonl:
        return JsonlConsumer(Path(settings.jsonl_pattern.format(model=model)))
    raise ValueError("no consumer configured; set CONSUMER_URL or WRITE_JSONL")


def build_poller(
    settings: Settings,
    model: str,
    consumer: CorrelationConsumer,
    *,
    client: Optional[OdooClient] = None,
) -> PollingScheduler:
    """Construct a scheduler for ``model``; each poller owns its own client."""
    if not settings.odoo_url:
        raise ValueError("Odoo URL is not configured. Set ODOO_URL.")
    if not settings.odoo_database or not settings.odoo_api_key:
        raise ValueError("ODOO_DATABASE and ODOO_API_KEY must be set")
    return PollingScheduler(
        model=model,
        client=client or OdooClient(settings.client_settings()),
        dispatcher=CorrelationDispatcher(consumer),
        window=ChangeWindowTracker(
            tracking_field=settings.trigger_field,
            extra_domain=settings.filter_domain,
            fields=list(settings.fields),
        ),
        trigger=settings.trigger_condition,
        interval_seconds=settings.poll_interval_seconds,
        batch_size=settings.batch_size,
        namespace=settings.message_namespace,
        dedup_high_water=settings.dedup_high_water,
        dedup_retain=settings.dedup_retain,
        shutdown_grace_seconds=settings.shutdown_grace_seconds,
    )


def build_webhook_processor(
    settings: Settings, consumer: CorrelationConsumer
) -> WebhookProcessor:
    """Construct an active webhook intake using the WEBHOOK_* settings."""
    processor = WebhookProcessor(
        CorrelationDispatcher(consumer),
        secret_token=settings.webhook_secret,
        allowed_models=settings.webhook_allowed_models,
        event_type=settings.webhook_event_type,
        namespace=settings.message_namespace,
    )
    processor.activate()
    return processor


class ServiceRuntime:
    """Runs independent pollers for every configured model until stopped."""

    def __init__(
        self,
        settings: Settings,
        *,
        poller_factory: PollerFactory = build_poller,
        consumer_factory: Callable[[Settings, str], CorrelationConsumer] = build_consumer,
    ) -> None:
        self.settings = settings
        self._poller_factory = poller_factory
        self._consumer_factory = consumer_factory
        self._pollers: Dict[str, PollingScheduler] = {}
        self._consumers: List[CorrelationConsumer] = []
        self._stop_event = threading.Event()

    @property
    def pollers(self) -> Dict[str, PollingScheduler]:
        return dict(self._pollers)

    def start(self) -> int:
        """Activate a poller per model; return how many are running."""
        if not self.settings.models:
            raise RuntimeError("No Odoo models configured. Set ODOO_MODELS.")
        for model in self.settings.models:
            if model in self._pollers:
                continue
            try:
                consumer = self._consumer_factory(self.settings, model)
                self._consumers.append(consumer)
                poller = self._poller_factory(self.settings, model, consumer)
                poller.activate()
            except ActivationError:
                logger.exception("failed to activate poller for %s", model)
                continue
            except Exception:  # noqa: BLE001 - other models keep running
                logger.exception("unable to build poller for %s", model)
                continue
            self._pollers[model] = poller
        return len(self._pollers)

    def run(self) -> None:
        try:
            started = self.start()
            if not started:
                logger.error("no pollers could be activated; exiting")
                return
            logger.info("polling %d Odoo model(s)", started)
            while not self._stop_event.wait(1.0):
                pass
        except KeyboardInterrupt:
            logger.info("shutdown requested (KeyboardInterrupt)")
        finally:
            self.stop()

    def request_stop(self) -> None:
        self._stop_event.set()

    def stop(self) -> None:
        self._stop_event.set()
        for model, poller in list(self._pollers.items()):
            try:
                poller.deactivate()
            except Exception:  # noqa: BLE001 - best effort
                logger.exception("failed to stop poller for %s cleanly", model)
        self._pollers.clear()
        for consumer in self._consumers:
            close = getattr(consumer, "close", None)
            if callable(close):
                try:
                    close()
                except Exception:  # noqa: BLE001 - best effort
                    logger.exception("failed to close consumer %r", consumer)
        self._consumers.clear()


def configure_logging(level: int = logging.INFO) -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        )

