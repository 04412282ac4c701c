#!/usr/bin/env python
"""Run a single poll tick against a live Odoo instance and print what would be delivered."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, List, Mapping, Tuple

from odoo_bridge.config import load_settings
from odoo_bridge.polling import (
    ActivationError,
    ChangeWindowTracker,
    CorrelationDispatcher,
    Ignore,
    PollingScheduler,
    Success,
)
from odoo_bridge.remote import OdooClient


class _PrintingConsumer:
    """Collects deliveries instead of correlating them; optionally reports Ignore."""

    def __init__(self, *, acknowledge_only: bool) -> None:
        self.deliveries: List[Tuple[str, Mapping[str, Any]]] = []
        self._acknowledge_only = acknowledge_only

    def correlate(self, message_id: str, variables: Mapping[str, Any]):
        self.deliveries.append((message_id, variables))
        if self._acknowledge_only:
            return Ignore(message="smoke run")
        return Success()


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Poll one Odoo model once, looking back a fixed number of minutes",
    )
    parser.add_argument("--model", required=True, help="Odoo model, e.g. res.partner")
    parser.add_argument(
        "--lookback-minutes",
        type=int,
        default=60,
        help="Start the change window this many minutes in the past (default 60)",
    )
    parser.add_argument(
        "--batch-size", type=int, default=10, help="Maximum records to fetch"
    )
    parser.add_argument(
        "--show-payloads",
        action="store_true",
        help="Print each delivery's variables as JSON",
    )
    args = parser.parse_args()

    settings = load_settings()
    if not settings.odoo_url:
        print("Error: ODOO_URL is not configured", file=sys.stderr)
        return 2
    if not settings.odoo_api_key:
        print("Error: ODOO_API_KEY is not configured", file=sys.stderr)
        return 2

    started = datetime.now(timezone.utc) - timedelta(minutes=max(0, args.lookback_minutes))
    consumer = _PrintingConsumer(acknowledge_only=True)
    scheduler = PollingScheduler(
        model=args.model,
        client=OdooClient(settings.client_settings()),
        dispatcher=CorrelationDispatcher(consumer),
        window=ChangeWindowTracker(
            tracking_field=settings.trigger_field,
            extra_domain=settings.filter_domain,
            fields=list(settings.fields),
        ),
        trigger=settings.trigger_condition,
        batch_size=args.batch_size,
        namespace=settings.message_namespace,
    )
    try:
        scheduler.activate(start_worker=False)
    except ActivationError as exc:
        print(f"Error: {exc} ({exc.__cause__})", file=sys.stderr)
        return 1
    try:
        state = scheduler.poll_state
        if state is not None:
            state.last_successful_poll_time = started
        result = scheduler.run_tick()
    finally:
        scheduler.deactivate()

    for message_id, variables in consumer.deliveries:
        print(message_id)
        if args.show_payloads:
            print(json.dumps(dict(variables), indent=2, default=str))

    print("Odoo poll smoke test completed.")
    print(
        f"Fetched={result.fetched} Delivered={len(consumer.deliveries)}"
        f" Dropped={result.dropped} Completed={result.completed}"
    )
    return 0 if result.completed else 1


if __name__ == "__main__":
    raise SystemExit(main())
