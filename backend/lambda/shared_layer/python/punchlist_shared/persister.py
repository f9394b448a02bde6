"""punchlist_shared.persister — Punchlist header + item persistence and reads.

A punchlist is written in two sequential steps: the header row, then the
item batch carrying the header id. A header is written even when no items
qualify; an empty punchlist is the audit record of a clean diff run. When
the item batch fails the header stays in place (no compensating delete).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from punchlist_shared.backend import SupabaseClient
from punchlist_shared.errors import BackendError, NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

__all__ = [
    "ITEMS_TABLE",
    "PUNCHLISTS_TABLE",
    "PunchlistRecord",
    "WORK_ORDERS_TABLE",
    "create_punchlist",
    "fetch_items",
    "fetch_latest_punchlist",
    "fetch_punchlist",
    "fetch_work_order",
]

PUNCHLISTS_TABLE = "punchlists"
ITEMS_TABLE = "punchlist_items"
WORK_ORDERS_TABLE = "work_orders"
DRAFT_STATUS = "draft"

_PUNCHLIST_COLUMNS = "id,work_order_id,created_at,status"
_ITEM_COLUMNS = "*"
_ITEM_ORDER = "manufacturer.asc,model.asc,room.asc"
# branding columns are optional per deployment
_WORK_ORDER_COLUMNS = "*"


@dataclass
class PunchlistRecord:
    punchlist_id: Any
    work_order_id: Optional[Any]
    items: List[Dict[str, Any]] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "punchlist_id": self.punchlist_id,
            "work_order_id": self.work_order_id,
            "items_count": len(self.items),
            "items": self.items,
        }


def create_punchlist(
    client: SupabaseClient,
    work_order_id: Optional[Any],
    items: Sequence[Dict[str, Any]],
) -> PunchlistRecord:
    """Create the punchlist header, then insert its items in one batch."""
    try:
        created = client.insert(PUNCHLISTS_TABLE, [{"work_order_id": work_order_id, "status": DRAFT_STATUS}])
    except BackendError as exc:
        raise PersistenceError("Failed to create punchlist", status=exc.status, details=exc.details) from exc
    if not created or created[0].get("id") is None:
        raise PersistenceError("Failed to create punchlist", details="insert returned no row")

    punchlist_id = created[0]["id"]
    logger.info("[INFO] created punchlist %s work_order=%s items=%d", punchlist_id, work_order_id, len(items))

    if not items:
        return PunchlistRecord(punchlist_id=punchlist_id, work_order_id=work_order_id, items=[])

    payload = [{**item, "punchlist_id": punchlist_id} for item in items]
    try:
        inserted = client.insert(ITEMS_TABLE, payload)
    except BackendError as exc:
        logger.error("[ERROR] punchlist %s left without items: %s", punchlist_id, exc.message)
        raise PersistenceError(
            "Failed to insert punchlist items",
            status=exc.status,
            details=exc.details,
        ) from exc
    return PunchlistRecord(punchlist_id=punchlist_id, work_order_id=work_order_id, items=inserted)


def fetch_punchlist(client: SupabaseClient, punchlist_id: Any) -> Dict[str, Any]:
    rows = client.select(PUNCHLISTS_TABLE, select=_PUNCHLIST_COLUMNS, filters={"id": punchlist_id}, limit=1)
    if not rows:
        raise NotFoundError(f"Punchlist '{punchlist_id}' not found")
    return rows[0]


def fetch_latest_punchlist(client: SupabaseClient, work_order_id: Any) -> Dict[str, Any]:
    rows = client.select(
        PUNCHLISTS_TABLE,
        select=_PUNCHLIST_COLUMNS,
        filters={"work_order_id": work_order_id},
        order="created_at.desc",
        limit=1,
    )
    if not rows:
        raise NotFoundError(f"No punchlist found for work order '{work_order_id}'")
    return rows[0]


def fetch_items(client: SupabaseClient, punchlist_id: Any) -> List[Dict[str, Any]]:
    return client.select(
        ITEMS_TABLE,
        select=_ITEM_COLUMNS,
        filters={"punchlist_id": punchlist_id},
        order=_ITEM_ORDER,
    )


def fetch_work_order(client: SupabaseClient, work_order_id: Optional[Any]) -> Optional[Dict[str, Any]]:
    if work_order_id in (None, ""):
        return None
    rows = client.select(WORK_ORDERS_TABLE, select=_WORK_ORDER_COLUMNS, filters={"id": work_order_id}, limit=1)
    return rows[0] if rows else None
