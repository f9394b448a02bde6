"""generate_punchlist/lambda_function.py

Lambda API handler that turns the current manifest-vs-received diff into a
draft punchlist.

Routes (via API Gateway proxy):
    POST    /api/v1/punchlists/generate   body: {"work_order_id": "<id>"|null}
    OPTIONS /api/v1/punchlists/generate   CORS preflight

Flow:
    1. Read every row of the ``v_manifest_vs_received`` view.
    2. Keep the rows with missing or damaged units.
    3. Create the punchlist header (status=draft), then its items.

A punchlist is created even when nothing is missing or damaged.

Response:
    {"punchlist_id", "work_order_id", "items_count", "items"}

Environment variables: see punchlist_shared.config.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from punchlist_shared.backend import SupabaseClient
from punchlist_shared.config import get_config
from punchlist_shared.diff import compute_items
from punchlist_shared.errors import BackendError, PersistenceError, PunchlistError, ValidationError
from punchlist_shared.http_utils import (
    _error,
    _error_from_exc,
    _options_response,
    _parse_body,
    _path_method,
    _response,
)
from punchlist_shared.persister import create_punchlist

logger = logging.getLogger()
logger.setLevel(logging.INFO)

DIFF_VIEW = "v_manifest_vs_received"


def _read_work_order_id(event: Dict[str, Any]) -> Any:
    body = _parse_body(event)
    if body is None:
        return None
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object")
    work_order_id = body.get("work_order_id")
    if isinstance(work_order_id, str):
        work_order_id = work_order_id.strip() or None
    return work_order_id


def _handle_generate(event: Dict[str, Any]) -> Dict[str, Any]:
    config = get_config()
    work_order_id = _read_work_order_id(event)
    client = SupabaseClient(config)

    try:
        diff_rows = client.select(DIFF_VIEW)
    except BackendError as exc:
        return _error(500, "Failed to read diff view", code=exc.code, details=exc.details)

    items = compute_items(diff_rows)
    logger.info("[INFO] diff rows=%d actionable=%d work_order=%s", len(diff_rows), len(items), work_order_id)

    try:
        record = create_punchlist(client, work_order_id, items)
    except PersistenceError as exc:
        return _error(500, exc.message, code=exc.code, details=exc.details)
    return _response(200, record.to_payload())


def lambda_handler(event: Dict[str, Any], _context: Any) -> Dict[str, Any]:
    method, path = _path_method(event)
    if method == "OPTIONS":
        return _options_response()

    logger.info("[INFO] route method=%s path=%s", method, path)
    if method != "POST":
        return _error(405, "Use POST")

    try:
        return _handle_generate(event)
    except PunchlistError as exc:
        return _error_from_exc(exc)
    except Exception as exc:
        logger.exception("[ERROR] generate_punchlist failed")
        return _error(500, str(exc))
