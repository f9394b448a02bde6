"""punchlist_shared.local_ai — Pass-through chat completion on a local model server.

Targets an OpenAI-compatible ``/v1/chat/completions`` endpoint (LM Studio by
default, which ignores the bearer value).

Environment variables:
    LOCAL_AI_URL   default: http://localhost:1234
"""

from __future__ import annotations

import json
import logging
import os
import socket
import urllib.error
import urllib.request
from typing import Any, Optional

from punchlist_shared.errors import BackendError

logger = logging.getLogger(__name__)

LOCAL_MODEL = "local-model"
LOCAL_API_TOKEN = "lm-studio"
DEFAULT_LOCAL_AI_URL = "http://localhost:1234"
LOCAL_AI_URL = os.environ.get("LOCAL_AI_URL", DEFAULT_LOCAL_AI_URL)


def _first_message(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message") or {}
    content = message.get("content") if isinstance(message, dict) else None
    return str(content).strip() if content else ""


def chat(prompt: str, *, base_url: Optional[str] = None, timeout: float = 60) -> str:
    """Send one user prompt and return the trimmed reply ('' when empty).

    ``base_url`` defaults to ``LOCAL_AI_URL``.
    """
    base_url = base_url or LOCAL_AI_URL
    body = {
        "model": LOCAL_MODEL,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": 0.2,
    }
    req = urllib.request.Request(
        f"{base_url.rstrip('/')}/v1/chat/completions",
        method="POST",
        data=json.dumps(body).encode("utf-8"),
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {LOCAL_API_TOKEN}",
        },
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as exc:
        text = exc.read().decode("utf-8", errors="replace")
        logger.error("[ERROR] local chat completion failed: %s %s", exc.code, text[:400])
        raise BackendError(f"Local chat completion failed ({exc.code})", status=exc.code, details=text) from exc
    except (urllib.error.URLError, socket.timeout, TimeoutError) as exc:
        reason = getattr(exc, "reason", exc)
        raise BackendError(f"Local chat completion unreachable: {reason}") from exc

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise BackendError("Local chat completion returned invalid JSON", details=raw[:400]) from exc
    return _first_message(payload)
