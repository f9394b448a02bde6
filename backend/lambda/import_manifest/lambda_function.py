"""import_manifest/lambda_function.py

Lambda API handler that upserts expected-equipment manifest rows into
``imported_manifest``.

Routes (via API Gateway proxy):
    POST    /api/v1/manifest/import   body: [{manufacturer, model, room, expected_qty}, ...]
    OPTIONS /api/v1/manifest/import   CORS preflight

Rows merge on (manufacturer, model, room): importing the same row twice
updates the stored row instead of duplicating it.

The table, its unique index and its read policy are provisioned once by an
operator (backend/sql/imported_manifest.sql). Before writing, the handler
probes for that schema and answers 501 with instructions when it is absent.

Environment variables: see punchlist_shared.config.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from punchlist_shared.backend import SupabaseClient
from punchlist_shared.config import get_config
from punchlist_shared.errors import BackendError, PunchlistError, SchemaBootstrapRequired, ValidationError
from punchlist_shared.http_utils import (
    _error,
    _error_from_exc,
    _options_response,
    _parse_body,
    _path_method,
    _response,
)

logger = logging.getLogger()
logger.setLevel(logging.INFO)

MANIFEST_TABLE = "imported_manifest"
CONFLICT_COLUMNS = ("manufacturer", "model", "room")
PREPARE_RPC = "punchlist_import_manifest_prepare"
MIGRATION_PATH = "backend/sql/imported_manifest.sql"

# PostgREST: function not found / relation missing / no unique index for on_conflict
_SCHEMA_ERROR_CODES = ("PGRST202", "42P01", "42883", "42P10")

BOOTSTRAP_ACTION = (
    f"Open the Supabase SQL editor, run {MIGRATION_PATH} once, then call this endpoint again."
)


def _is_schema_error(exc: BackendError) -> bool:
    details = str(exc.details or "")
    return exc.status == 404 or any(code in details for code in _SCHEMA_ERROR_CODES)


def _normalize_row(index: int, row: Any) -> Dict[str, Any]:
    if not isinstance(row, dict):
        raise ValidationError(f"Row {index} must be a JSON object")

    out: Dict[str, Any] = {}
    for key in ("manufacturer", "model"):
        value = row.get(key)
        text = str(value).strip() if value is not None else ""
        if not text:
            raise ValidationError(f"Row {index} is missing '{key}'")
        out[key] = text

    room = row.get("room")
    out["room"] = str(room).strip() if room not in (None, "") else None

    raw_qty = row.get("expected_qty", 0)
    if raw_qty in (None, ""):
        raw_qty = 0
    if isinstance(raw_qty, bool):
        raise ValidationError(f"Row {index} has a non-integer expected_qty")
    if isinstance(raw_qty, float) and raw_qty.is_integer():
        raw_qty = int(raw_qty)
    try:
        qty = int(str(raw_qty).strip()) if not isinstance(raw_qty, int) else raw_qty
    except ValueError as exc:
        raise ValidationError(f"Row {index} has a non-integer expected_qty") from exc
    if qty < 0:
        raise ValidationError(f"Row {index} has a negative expected_qty")
    out["expected_qty"] = qty
    return out


def _normalize_rows(body: Any) -> List[Dict[str, Any]]:
    if not isinstance(body, list) or not body:
        raise ValidationError("Provide a non-empty JSON array")

    # one row per conflict key; the last occurrence wins
    merged: Dict[Tuple[Any, ...], Dict[str, Any]] = {}
    for index, raw in enumerate(body):
        row = _normalize_row(index, raw)
        merged[tuple(row[col] for col in CONFLICT_COLUMNS)] = row
    return list(merged.values())


def _ensure_schema(client: SupabaseClient) -> None:
    try:
        client.rpc(PREPARE_RPC)
    except BackendError as exc:
        if _is_schema_error(exc):
            raise SchemaBootstrapRequired(
                "Schema bootstrap required",
                action=BOOTSTRAP_ACTION,
                details=exc.details,
            ) from exc
        raise


def _handle_import(event: Dict[str, Any]) -> Dict[str, Any]:
    config = get_config()
    rows = _normalize_rows(_parse_body(event))
    client = SupabaseClient(config)

    _ensure_schema(client)
    try:
        upserted = client.upsert(MANIFEST_TABLE, rows, on_conflict=CONFLICT_COLUMNS)
    except BackendError as exc:
        if _is_schema_error(exc):
            raise SchemaBootstrapRequired(
                "Schema bootstrap required",
                action=BOOTSTRAP_ACTION,
                details=exc.details,
            ) from exc
        return _error(500, "Upsert failed", code=exc.code, details=exc.details, upstream_status=exc.status)

    logger.info("[INFO] manifest import rows=%d upserted=%d", len(rows), len(upserted))
    return _response(200, upserted)


def lambda_handler(event: Dict[str, Any], _context: Any) -> Dict[str, Any]:
    method, path = _path_method(event)
    if method == "OPTIONS":
        return _options_response()

    logger.info("[INFO] route method=%s path=%s", method, path)
    if method != "POST":
        return _error(405, "Use POST")

    try:
        return _handle_import(event)
    except PunchlistError as exc:
        return _error_from_exc(exc)
    except Exception as exc:
        logger.exception("[ERROR] import_manifest failed")
        return _error(500, str(exc))
