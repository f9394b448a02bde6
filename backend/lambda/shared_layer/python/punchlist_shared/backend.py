"""punchlist_shared.backend — Supabase PostgREST accessor.

Thin wrapper over ``/rest/v1`` covering the four calls the punchlist
Lambdas make: filtered select, insert-with-return, upsert-with-merge and
RPC. Every call carries the service role key as both the ``apikey`` header
and a bearer token. There are no retries: any non-2xx is terminal for the
calling step.
"""

from __future__ import annotations

import json
import logging
import socket
import urllib.error
import urllib.request
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote, urlencode

from punchlist_shared.config import PunchlistConfig
from punchlist_shared.errors import BackendError
from punchlist_shared.serialization import _json_default

logger = logging.getLogger(__name__)

__all__ = ["SupabaseClient"]

_PREFER_RETURN = "return=representation"
_PREFER_MERGE = "resolution=merge-duplicates, return=representation"


def _eq(value: Any) -> str:
    if value is None:
        return "is.null"
    return f"eq.{value}"


class SupabaseClient:
    """PostgREST client bound to one configuration."""

    def __init__(self, config: PunchlistConfig) -> None:
        self.base_url = config.supabase_url
        self.timeout = config.http_timeout_seconds
        self._key = config.service_role_key

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Sequence[tuple]] = None,
        body: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        url = f"{self.base_url}/rest/v1/{path.lstrip('/')}"
        if params:
            url = f"{url}?{urlencode(list(params), safe=',.*()', quote_via=quote)}"
        data = None
        if body is not None:
            data = json.dumps(body, default=_json_default).encode("utf-8")

        req = urllib.request.Request(url, method=method, data=data, headers=self._headers(prefer))
        logger.info("[INFO] supabase %s /rest/v1/%s", method, path.lstrip("/"))
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read()
                content_type = resp.headers.get("Content-Type", "") if resp.headers else ""
        except urllib.error.HTTPError as exc:
            text = exc.read().decode("utf-8", errors="replace")
            logger.error("[ERROR] supabase %s %s failed: %s %s", method, path, exc.code, text[:400])
            raise BackendError(
                f"Supabase error {exc.code}",
                status=exc.code,
                details=text,
            ) from exc
        except urllib.error.URLError as exc:
            logger.error("[ERROR] supabase %s %s unreachable: %s", method, path, exc.reason)
            raise BackendError(f"Supabase unreachable: {exc.reason}") from exc
        except (socket.timeout, TimeoutError) as exc:
            logger.error("[ERROR] supabase %s %s timed out after %ss", method, path, self.timeout)
            raise BackendError(f"Supabase request timed out after {self.timeout}s") from exc

        text = raw.decode("utf-8", errors="replace") if raw else ""
        if not text.strip():
            return None
        if "json" in content_type or text.lstrip()[:1] in ("[", "{"):
            try:
                return json.loads(text)
            except json.JSONDecodeError as exc:
                raise BackendError("Supabase returned invalid JSON", details=text[:400]) from exc
        return text

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        *,
        select: str = "*",
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """GET rows from a table or view. ``filters`` are equality filters."""
        params: List[tuple] = [("select", select)]
        for column, value in (filters or {}).items():
            params.append((column, _eq(value)))
        if order:
            params.append(("order", order))
        if limit is not None:
            params.append(("limit", str(int(limit))))
        rows = self._request("GET", table, params=params)
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise BackendError(f"Unexpected select payload from {table}", details=str(rows)[:400])
        return rows

    def insert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        return_rows: bool = True,
    ) -> List[Dict[str, Any]]:
        """POST new rows; returns the inserted rows when ``return_rows``."""
        prefer = _PREFER_RETURN if return_rows else "return=minimal"
        result = self._request("POST", table, body=[dict(r) for r in rows], prefer=prefer)
        return result if isinstance(result, list) else []

    def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        on_conflict: Sequence[str],
    ) -> List[Dict[str, Any]]:
        """Insert-or-merge rows keyed on the ``on_conflict`` columns."""
        params = [("on_conflict", ",".join(on_conflict))]
        result = self._request(
            "POST",
            table,
            params=params,
            body=[dict(r) for r in rows],
            prefer=_PREFER_MERGE,
        )
        return result if isinstance(result, list) else []

    def rpc(self, function: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return self._request("POST", f"rpc/{function}", body=dict(params or {}))
