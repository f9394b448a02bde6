"""punchlist_pdf/lambda_function.py

Lambda API handler that renders a branded punchlist PDF.

Routes (via API Gateway proxy):
    GET     /api/v1/punchlists/pdf?punchlist_id=<id>
    GET     /api/v1/punchlists/pdf?work_order_id=<id>    latest punchlist of the work order
    POST    /api/v1/punchlists/pdf   body: {"punchlist_id"|"work_order_id", "branding": {...}}
    OPTIONS /api/v1/punchlists/pdf   CORS preflight

Branding per field: request ``branding`` override > work order columns >
BRAND_* environment defaults > built-in company name.

Success returns the PDF base64-encoded (``isBase64Encoded``) with an inline
Content-Disposition. Errors are plain text.

Environment variables: see punchlist_shared.config.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from punchlist_shared.backend import SupabaseClient
from punchlist_shared.branding import resolve_branding
from punchlist_shared.config import get_config
from punchlist_shared.errors import PunchlistError, ValidationError
from punchlist_shared.http_utils import (
    _binary_response,
    _options_response,
    _parse_body,
    _path_method,
    _query_params,
    _text_response,
)
from punchlist_shared.persister import fetch_items, fetch_latest_punchlist, fetch_punchlist, fetch_work_order
from punchlist_shared.report import fetch_logo, render_report, report_filename

logger = logging.getLogger()
logger.setLevel(logging.INFO)

PDF_CONTENT_TYPE = "application/pdf"


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _read_request(event: Dict[str, Any], method: str) -> Tuple[Optional[str], Optional[str], Dict[str, Any]]:
    qs = _query_params(event)
    punchlist_id = _clean(qs.get("punchlist_id"))
    work_order_id = _clean(qs.get("work_order_id"))
    overrides: Dict[str, Any] = {}

    if method == "POST":
        body = _parse_body(event)
        if body is not None and not isinstance(body, dict):
            raise ValidationError("JSON body must be an object")
        body = body or {}
        punchlist_id = punchlist_id or _clean(body.get("punchlist_id"))
        work_order_id = work_order_id or _clean(body.get("work_order_id"))
        branding = body.get("branding")
        if isinstance(branding, dict):
            overrides = branding

    if not punchlist_id and not work_order_id:
        raise ValidationError("Provide ?punchlist_id=... or ?work_order_id=...")
    return punchlist_id, work_order_id, overrides


def _handle_pdf(event: Dict[str, Any], method: str) -> Dict[str, Any]:
    config = get_config()
    punchlist_id, work_order_id, overrides = _read_request(event, method)
    client = SupabaseClient(config)

    if punchlist_id:
        punchlist = fetch_punchlist(client, punchlist_id)
    else:
        punchlist = fetch_latest_punchlist(client, work_order_id)

    items = fetch_items(client, punchlist["id"])
    work_order = fetch_work_order(client, punchlist.get("work_order_id"))
    branding = resolve_branding(config.branding, work_order, overrides)

    pdf_bytes = render_report(
        branding,
        punchlist,
        items,
        logo_fetcher=lambda url: fetch_logo(url, timeout=config.logo_timeout_seconds),
    )
    return _binary_response(200, pdf_bytes, PDF_CONTENT_TYPE, filename=report_filename(punchlist["id"]))


def lambda_handler(event: Dict[str, Any], _context: Any) -> Dict[str, Any]:
    method, path = _path_method(event)
    if method == "OPTIONS":
        return _options_response()

    logger.info("[INFO] route method=%s path=%s", method, path)
    if method not in ("GET", "POST"):
        return _text_response(405, "Use GET or POST")

    try:
        return _handle_pdf(event, method)
    except PunchlistError as exc:
        message = exc.message
        if exc.status_code >= 500:
            logger.error("[ERROR] punchlist_pdf failed: %s", exc.message)
            if exc.details:
                message = f"{message}: {exc.details}"
        return _text_response(exc.status_code, f"Error: {message}")
    except Exception as exc:
        logger.exception("[ERROR] punchlist_pdf failed")
        return _text_response(500, f"Error: {exc}")
