"""punchlist_shared.diff — Expected vs received vs damaged discrepancy calculation.

Input rows come from the ``v_manifest_vs_received`` view:

    {manufacturer, model, room, expected_qty, total_received, total_damaged}

A row becomes a punchlist item only when something is actionable, i.e.
units are missing or units arrived damaged.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping

from punchlist_shared.serialization import _to_int

__all__ = ["compute_item", "compute_items", "describe_issue"]


def describe_issue(missing_qty: int, damaged_qty: int) -> str:
    parts = []
    if missing_qty > 0:
        parts.append("missing")
    if damaged_qty > 0:
        parts.append("damaged")
    return ", ".join(parts)


def compute_item(row: Mapping[str, Any]) -> Dict[str, Any]:
    expected = _to_int(row.get("expected_qty"))
    received = _to_int(row.get("total_received"))
    damaged = _to_int(row.get("total_damaged"))
    missing = max(expected - received, 0)

    item: Dict[str, Any] = {
        "manufacturer": row.get("manufacturer"),
        "model": row.get("model"),
        "room": row.get("room"),
        "expected_qty": expected,
        "received_qty": received,
        "missing_qty": missing,
        "damaged_qty": damaged,
        "issue": describe_issue(missing, damaged) or None,
    }
    if row.get("notes"):
        item["notes"] = row["notes"]
    return item


def compute_items(diff_rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Map diff rows to punchlist items, keeping only missing or damaged ones.

    Input order is preserved. Rows that are not mappings are skipped.
    """
    items = []
    for row in diff_rows or []:
        if not isinstance(row, Mapping):
            continue
        item = compute_item(row)
        if item["missing_qty"] > 0 or item["damaged_qty"] > 0:
            items.append(item)
    return items
