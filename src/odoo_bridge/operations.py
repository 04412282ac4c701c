"""Mutating and query operations executed against Odoo on behalf of a workflow.

Each request names one operation (CREATE, READ, UPDATE, DELETE, SEARCH,
SEARCH_READ, SEARCH_COUNT or CALL_METHOD). Invalid requests raise
:class:`OperationError`; remote failures come back as an unsuccessful
:class:`OperationResult` whose ``error_code`` lets the caller branch on the
failure kind.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from .remote import ErrorKind, OdooClient, RemoteError

logger = logging.getLogger(__name__)

ERROR_AUTHENTICATION = "ODOO_AUTH_ERROR"
ERROR_PERMISSION = "ODOO_PERMISSION_ERROR"
ERROR_NOT_FOUND = "ODOO_NOT_FOUND"
ERROR_VALIDATION = "ODOO_VALIDATION_ERROR"
ERROR_CONNECTION = "ODOO_CONNECTION_ERROR"
ERROR_UNKNOWN = "ODOO_ERROR"

ERROR_CODES = {
    ErrorKind.AUTHENTICATION: ERROR_AUTHENTICATION,
    ErrorKind.PERMISSION: ERROR_PERMISSION,
    ErrorKind.NOT_FOUND: ERROR_NOT_FOUND,
    ErrorKind.VALIDATION: ERROR_VALIDATION,
    ErrorKind.TRANSIENT: ERROR_CONNECTION,
    ErrorKind.UNKNOWN: ERROR_UNKNOWN,
}

OPERATIONS = (
    "CREATE",
    "READ",
    "UPDATE",
    "DELETE",
    "SEARCH",
    "SEARCH_READ",
    "SEARCH_COUNT",
    "CALL_METHOD",
)


class OperationError(RuntimeError):
    """Raised for requests that cannot be executed; ``code`` is the failure code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


def _parse_json_list(value: object, label: str) -> Optional[List[Any]]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if not text.startswith("["):
            return [text]
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise OperationError(ERROR_VALIDATION, f"Invalid {label} JSON: {text}") from exc
        if not isinstance(parsed, list):
            raise OperationError(ERROR_VALIDATION, f"{label} must be a JSON array")
        return parsed
    raise OperationError(ERROR_VALIDATION, f"{label} must be a list or JSON array string")


def _parse_domain(value: object) -> Optional[List[Any]]:
    if isinstance(value, str) and value.strip() and not value.strip().startswith("["):
        raise OperationError(ERROR_VALIDATION, "Domain must be a JSON array")
    return _parse_json_list(value, "domain")


def _optional_int(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)  # type: ignore[arg-type]


@dataclass
class OperationRequest:
    operation: str
    model: str
    record_id: Optional[int] = None
    record_ids: List[int] = field(default_factory=list)
    values: Optional[Dict[str, Any]] = None
    fields: Optional[List[str]] = None
    domain: Optional[List[Any]] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
    method_name: Optional[str] = None
    method_args: Optional[Dict[str, Any]] = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "OperationRequest":
        """Bind a request from workflow variables (camelCase keys)."""
        raw_fields = _parse_json_list(payload.get("fields"), "fields")
        try:
            record_ids = [int(entry) for entry in payload.get("recordIds") or []]
            return cls(
                operation=str(payload.get("operation") or "").strip().upper(),
                model=str(payload.get("model") or "").strip(),
                record_id=_optional_int(payload.get("recordId")),
                record_ids=record_ids,
                values=dict(payload["values"]) if payload.get("values") else None,
                fields=[str(entry) for entry in raw_fields] if raw_fields else None,
                domain=_parse_domain(payload.get("domain")),
                limit=_optional_int(payload.get("limit")),
                offset=_optional_int(payload.get("offset")),
                method_name=payload.get("methodName") or None,
                method_args=dict(payload["methodArgs"])
                if payload.get("methodArgs")
                else None,
            )
        except (TypeError, ValueError) as exc:
            raise OperationError(ERROR_VALIDATION, f"Invalid request: {exc}") from exc

    @property
    def effective_record_ids(self) -> List[int]:
        if self.record_ids:
            return list(self.record_ids)
        if self.record_id is not None:
            return [self.record_id]
        return []

    def validate(self) -> None:
        if not self.model:
            raise OperationError(ERROR_VALIDATION, "Invalid request: model is required")
        if self.operation not in OPERATIONS:
            raise OperationError(
                ERROR_VALIDATION, f"Unsupported operation: {self.operation}"
            )
        if self.operation == "CREATE" and not self.values:
            raise OperationError(ERROR_VALIDATION, "Invalid request: CREATE requires 'values'")
        if self.operation in {"READ", "DELETE"} and not self.effective_record_ids:
            raise OperationError(
                ERROR_VALIDATION,
                f"Invalid request: {self.operation} requires record IDs",
            )
        if self.operation == "UPDATE" and (
            not self.effective_record_ids or self.values is None
        ):
            raise OperationError(
                ERROR_VALIDATION, "Invalid request: UPDATE requires IDs and values"
            )
        if self.operation == "CALL_METHOD" and not (self.method_name or "").strip():
            raise OperationError(
                ERROR_VALIDATION, "Invalid request: CALL_METHOD requires methodName"
            )


@dataclass(frozen=True)
class OperationResult:
    operation: str
    model: str
    success: bool
    created_id: Optional[int] = None
    affected_ids: Optional[List[int]] = None
    records: Optional[List[Dict[str, Any]]] = None
    search_ids: Optional[List[int]] = None
    count: Optional[int] = None
    method_result: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    error_name: Optional[str] = None
    status_code: Optional[int] = None

    @classmethod
    def failed(
        cls, operation: str, model: str, error: RemoteError
    ) -> "OperationResult":
        return cls(
            operation=operation,
            model=model,
            success=False,
            error=str(error),
            error_code=ERROR_CODES[error.kind],
            error_name=error.name or None,
            status_code=error.status_code,
        )

    @property
    def primary_result(self) -> Any:
        if not self.success:
            return None
        if self.operation == "CREATE":
            return self.created_id
        if self.operation in {"READ", "SEARCH_READ"}:
            return self.records
        if self.operation in {"UPDATE", "DELETE"}:
            return self.affected_ids
        if self.operation == "SEARCH":
            return self.search_ids
        if self.operation == "SEARCH_COUNT":
            return self.count
        if self.operation.startswith("CALL_METHOD"):
            return self.method_result
        return None

    @property
    def first_record(self) -> Optional[Dict[str, Any]]:
        if self.records:
            return self.records[0]
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "model": self.model,
            "success": self.success,
            "createdId": self.created_id,
            "affectedIds": self.affected_ids,
            "records": self.records,
            "searchIds": self.search_ids,
            "count": self.count,
            "methodResult": self.method_result,
            "error": self.error,
            "errorCode": self.error_code,
            "errorName": self.error_name,
            "statusCode": self.status_code,
        }


def _execute(client: OdooClient, request: OperationRequest) -> OperationResult:
    model = request.model
    operation = request.operation
    if operation == "CREATE":
        created_id = client.create(model, request.values or {})
        logger.info("created %s record with ID %s", model, created_id)
        return OperationResult(operation, model, True, created_id=created_id)
    if operation == "READ":
        records = client.read(model, request.effective_record_ids, request.fields)
        logger.info("read %d records from %s", len(records), model)
        return OperationResult(operation, model, True, records=records)
    if operation == "UPDATE":
        ids = request.effective_record_ids
        if not client.write(model, ids, request.values or {}):
            raise RemoteError(200, "Update operation returned false")
        logger.info("updated %d records in %s", len(ids), model)
        return OperationResult(operation, model, True, affected_ids=ids)
    if operation == "DELETE":
        ids = request.effective_record_ids
        if not client.unlink(model, ids):
            raise RemoteError(200, "Delete operation returned false")
        logger.info("deleted %d records from %s", len(ids), model)
        return OperationResult(operation, model, True, affected_ids=ids)
    if operation == "SEARCH":
        ids = client.search(
            model, request.domain, limit=request.limit, offset=request.offset
        )
        logger.info("found %d record IDs in %s", len(ids), model)
        return OperationResult(operation, model, True, search_ids=ids)
    if operation == "SEARCH_READ":
        records = client.search_read(
            model,
            request.domain,
            request.fields,
            limit=request.limit,
            offset=request.offset,
        )
        logger.info("search-read found %d records in %s", len(records), model)
        return OperationResult(operation, model, True, records=records)
    if operation == "SEARCH_COUNT":
        count = client.search_count(model, request.domain)
        logger.info("counted %d records in %s", count, model)
        return OperationResult(operation, model, True, count=count)
    if operation == "CALL_METHOD":
        method = (request.method_name or "").strip()
        result = client.call_method(
            model, method, request.effective_record_ids, request.method_args
        )
        logger.info(
            "called %s on %s with result type %s", method, model, type(result).__name__
        )
        return OperationResult(
            f"CALL_METHOD:{method}", model, True, method_result=result
        )
    raise OperationError(ERROR_VALIDATION, f"Unsupported operation: {operation}")


def execute_operation(client: OdooClient, request: OperationRequest) -> OperationResult:
    """Validate and run ``request``; remote failures become a failed result."""
    request.validate()
    logger.info("executing Odoo operation %s on %s", request.operation, request.model)
    try:
        return _execute(client, request)
    except RemoteError as exc:
        logger.error("Odoo API error: %s", exc)
        return OperationResult.failed(request.operation, request.model, exc)


def run_operation(
    client_factory: Callable[[], OdooClient], payload: Mapping[str, Any]
) -> OperationResult:
    """Bind ``payload``, then execute it on a client that is closed afterwards."""
    request = OperationRequest.from_mapping(payload)
    request.validate()
    with client_factory() as client:
        return execute_operation(client, request)


__all__ = [
    "ERROR_AUTHENTICATION",
    "ERROR_CODES",
    "ERROR_CONNECTION",
    "ERROR_NOT_FOUND",
    "ERROR_PERMISSION",
    "ERROR_UNKNOWN",
    "ERROR_VALIDATION",
    "OPERATIONS",
    "OperationError",
    "OperationRequest",
    "OperationResult",
    "execute_operation",
    "run_operation",
]
