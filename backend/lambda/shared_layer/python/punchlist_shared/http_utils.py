"""punchlist_shared.http_utils — HTTP response helpers with CORS.

Standard response envelope, error formatting and request parsing used by
all punchlist Lambda functions (API Gateway proxy integration, v1 and v2
event shapes).
"""

from __future__ import annotations

import base64
import json
import logging
import os
from typing import Any, Dict, Optional, Tuple

from punchlist_shared.errors import PunchlistError, ValidationError
from punchlist_shared.serialization import _json_default

logger = logging.getLogger(__name__)

__all__ = [
    "CORS_HEADERS",
    "_binary_response",
    "_error",
    "_error_from_exc",
    "_options_response",
    "_parse_body",
    "_path_method",
    "_query_params",
    "_response",
    "_text_response",
]

CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "*")
CORS_HEADERS = {
    "Access-Control-Allow-Origin": CORS_ORIGIN,
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}


def _response(status_code: int, payload: Any) -> Dict[str, Any]:
    """Build a standard API Gateway JSON response with CORS headers."""
    return {
        "statusCode": status_code,
        "headers": {**CORS_HEADERS, "Content-Type": "application/json"},
        "body": json.dumps(payload, default=_json_default),
    }


def _error(status_code: int, message: str, **extra: Any) -> Dict[str, Any]:
    """Build a standard error response.

    Args:
        status_code: HTTP status code.
        message: Human-readable error message.
        **extra: Additional fields merged into the response payload. ``code``
            overrides the derived error code.
    """
    code = str(extra.pop("code", "") or "").strip().upper()
    if not code:
        if status_code == 400:
            code = "INVALID_INPUT"
        elif status_code == 404:
            code = "NOT_FOUND"
        elif status_code == 405:
            code = "METHOD_NOT_ALLOWED"
        else:
            code = "INTERNAL_ERROR"
    retryable = bool(extra.pop("retryable", code == "UPSTREAM_ERROR"))
    details = dict(extra)
    body: Dict[str, Any] = {
        "success": False,
        "error": message,
        "error_envelope": {
            "code": code,
            "message": message,
            "retryable": retryable,
            "details": details,
        },
    }
    body.update(details)
    return _response(status_code, body)


def _error_from_exc(exc: PunchlistError) -> Dict[str, Any]:
    return _error(exc.status_code, exc.message, **exc.extra())


def _text_response(status_code: int, text: str) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {**CORS_HEADERS, "Content-Type": "text/plain; charset=utf-8"},
        "body": text,
    }


def _binary_response(
    status_code: int,
    body: bytes,
    content_type: str,
    filename: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a base64-encoded binary response (inline disposition)."""
    headers = {**CORS_HEADERS, "Content-Type": content_type}
    if filename:
        headers["Content-Disposition"] = f'inline; filename="{filename}"'
    return {
        "statusCode": status_code,
        "headers": headers,
        "body": base64.b64encode(body).decode("ascii"),
        "isBase64Encoded": True,
    }


def _options_response() -> Dict[str, Any]:
    return {"statusCode": 204, "headers": dict(CORS_HEADERS), "body": ""}


def _parse_body(event: Dict[str, Any]) -> Any:
    """Parse the JSON body from an API Gateway event (handles base64).

    Returns ``None`` for an absent or blank body. Raises ValidationError when
    the body is present but is not valid JSON.
    """
    raw = event.get("body")
    if raw in (None, ""):
        return None
    if event.get("isBase64Encoded"):
        try:
            raw = base64.b64decode(raw).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            raise ValidationError(f"Invalid base64 body: {exc}") from exc
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if not str(raw).strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Invalid JSON body: {exc}") from exc


def _path_method(event: Dict[str, Any]) -> Tuple[str, str]:
    """Extract HTTP method and path from an API Gateway v1/v2 event."""
    rc = event.get("requestContext") or {}
    http = rc.get("http") or {}
    method = (http.get("method") or event.get("httpMethod") or "GET").upper()
    path = http.get("path") or event.get("rawPath") or event.get("path") or "/"
    return method, path


def _query_params(event: Dict[str, Any]) -> Dict[str, str]:
    qs = event.get("queryStringParameters") or {}
    return {str(k): str(v) for k, v in qs.items() if v is not None}
