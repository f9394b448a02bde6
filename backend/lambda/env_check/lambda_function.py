"""env_check/lambda_function.py

Deployment probe: reports whether the backend settings are present without
echoing them.

Routes (via API Gateway proxy):
    GET /api/v1/env-check

Response:
    {"ok", "has_url", "has_service_key", "service_key_role"}

``service_key_role`` is the ``role`` claim of the service key JWT, read
without signature verification (the key is ours; only its shape is checked).
It is null when the key is absent or not a JWT. A key whose role is not
``service_role`` usually means the anon key was deployed by mistake.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import jwt

from punchlist_shared.config import resolve_service_role_key
from punchlist_shared.errors import ConfigError
from punchlist_shared.http_utils import _options_response, _path_method, _response

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _key_role(key: str) -> Optional[str]:
    if not key:
        return None
    try:
        claims = jwt.decode(key, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    role = claims.get("role") if isinstance(claims, dict) else None
    return str(role) if role else None


def lambda_handler(event: Dict[str, Any], _context: Any) -> Dict[str, Any]:
    method, _ = _path_method(event)
    if method == "OPTIONS":
        return _options_response()

    has_url = bool(os.environ.get("SUPABASE_URL"))
    key = ""
    try:
        key = resolve_service_role_key()
    except ConfigError as exc:
        logger.warning("[WARNING] env check: %s", exc.message)

    has_key = bool(key)
    return _response(200, {
        "ok": has_url and has_key,
        "has_url": has_url,
        "has_service_key": has_key,
        "service_key_role": _key_role(key),
    })
