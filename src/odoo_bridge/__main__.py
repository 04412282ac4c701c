"""Command line interface for the Odoo bridge."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, Optional

from .config import load_settings
from .operations import OPERATIONS, OperationError, run_operation
from .remote import OdooClient
from .service import (
    ServiceRuntime,
    build_consumer,
    build_webhook_processor,
    configure_logging,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Odoo change-detection bridge")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "poll", help="Poll every model in ODOO_MODELS until interrupted"
    )

    call_parser = subparsers.add_parser(
        "call", help="Execute a single Odoo operation and print the result as JSON"
    )
    call_parser.add_argument(
        "--payload",
        help="JSON object with camelCase request keys; overrides the flags below",
        default=None,
    )
    call_parser.add_argument(
        "--operation", choices=[op.lower() for op in OPERATIONS], default=None
    )
    call_parser.add_argument("--model", default=None)
    call_parser.add_argument("--record-id", type=int, default=None)
    call_parser.add_argument("--values", help="JSON object of field values", default=None)
    call_parser.add_argument("--fields", help="JSON array or comma list", default=None)
    call_parser.add_argument("--domain", help="JSON domain array", default=None)
    call_parser.add_argument("--limit", type=int, default=None)
    call_parser.add_argument("--offset", type=int, default=None)
    call_parser.add_argument("--method-name", default=None)

    webhook_parser = subparsers.add_parser(
        "webhook",
        help="Correlate one Odoo webhook payload (JSON from --payload or stdin)",
    )
    webhook_parser.add_argument("--payload", default=None)
    webhook_parser.add_argument(
        "--secret", help="Secret token sent with the webhook", default=None
    )

    return parser


def _payload_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    if args.payload:
        payload = json.loads(args.payload)
        if not isinstance(payload, dict):
            raise OperationError("ODOO_VALIDATION_ERROR", "--payload must be a JSON object")
        return payload
    fields: Any = args.fields
    if fields and not fields.strip().startswith("["):
        fields = [entry.strip() for entry in fields.split(",") if entry.strip()]
    return {
        "operation": args.operation or "",
        "model": args.model or "",
        "recordId": args.record_id,
        "values": json.loads(args.values) if args.values else None,
        "fields": fields,
        "domain": args.domain,
        "limit": args.limit,
        "offset": args.offset,
        "methodName": args.method_name,
    }


def _run_webhook(args: argparse.Namespace) -> int:
    settings = load_settings()
    try:
        payload = json.loads(args.payload if args.payload else sys.stdin.read())
    except json.JSONDecodeError as exc:
        print(f"invalid JSON payload: {exc}", file=sys.stderr)
        return 2
    if not isinstance(payload, dict):
        print("webhook payload must be a JSON object", file=sys.stderr)
        return 2
    consumer = build_consumer(settings, str(payload.get("model") or "webhook"))
    try:
        result = build_webhook_processor(settings, consumer).process(
            payload, args.secret
        )
    finally:
        close = getattr(consumer, "close", None)
        if callable(close):
            close()
    print(
        json.dumps(
            {
                "success": result.success,
                "message": result.message,
                "statusCode": result.status_code,
            }
        )
    )
    return 0 if result.success else 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging()

    if args.command == "poll":
        ServiceRuntime(load_settings()).run()
        return 0

    if args.command == "call":
        settings = load_settings()
        try:
            payload = _payload_from_args(args)
            result = run_operation(
                lambda: OdooClient(settings.client_settings()), payload
            )
        except json.JSONDecodeError as exc:
            print(f"invalid JSON argument: {exc}", file=sys.stderr)
            return 2
        except OperationError as exc:
            print(f"{exc.code}: {exc}", file=sys.stderr)
            return 2
        print(json.dumps(result.to_dict(), indent=2, default=str))
        return 0 if result.success else 1

    if args.command == "webhook":
        return _run_webhook(args)

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":
    sys.exit(main())
