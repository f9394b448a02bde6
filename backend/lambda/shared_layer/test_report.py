"""test_report.py — Unit tests for the punchlist domain modules.

Covers diff calculation, persistence against a mocked client, branding
resolution and PDF rendering.

Run from shared_layer directory:
    PYTHONPATH=python python3 -m pytest test_report.py -v
"""

from __future__ import annotations

import datetime as dt
import http.client
import io
import os
import re
import sys
import tempfile
import unittest
import urllib.error
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "python"))

from PIL import Image
from reportlab.pdfbase.pdfmetrics import getDescent, stringWidth

from punchlist_shared.backend import SupabaseClient
from punchlist_shared.branding import Branding, resolve_branding
from punchlist_shared.config import BrandDefaults
from punchlist_shared.diff import compute_item, compute_items, describe_issue
from punchlist_shared.errors import BackendError, NotFoundError, PersistenceError, RenderError
from punchlist_shared.persister import (
    create_punchlist,
    fetch_items,
    fetch_latest_punchlist,
    fetch_punchlist,
    fetch_work_order,
)
from punchlist_shared.report import (
    BODY_SIZE,
    COLUMNS,
    CELL_CLAMP,
    DEFAULT_GEOMETRY,
    FONT,
    META_LEADING,
    META_OFFSET,
    SIGNATURE_OFFSET,
    PageGeometry,
    clamp_text,
    detect_image_format,
    fetch_logo,
    _NumberedCanvas,
    paginate,
    render_report,
    report_filename,
)

PAGE_RE = re.compile(rb"/Type /Page(?!s)")


def _diff_row(manufacturer="Acme", model="X1", room="101", expected=5, received=3, damaged=1):
    return {
        "manufacturer": manufacturer,
        "model": model,
        "room": room,
        "expected_qty": expected,
        "total_received": received,
        "total_damaged": damaged,
    }


def _png_bytes(width=40, height=20):
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


def _items(n):
    return [
        {
            "manufacturer": "Acme",
            "model": f"X{i}",
            "room": "101",
            "expected_qty": 2,
            "received_qty": 1,
            "missing_qty": 1,
            "damaged_qty": 0,
            "issue": "missing",
        }
        for i in range(n)
    ]


def _render(items, branding=None, **kwargs):
    kwargs.setdefault("logo_fetcher", lambda url: None)
    kwargs.setdefault("page_compression", False)
    kwargs.setdefault("generated_at", dt.datetime(2026, 3, 2, 14, 5, tzinfo=dt.timezone.utc))
    return render_report(branding or Branding(company_name="WPUSA"), {"id": "pl-1"}, items, **kwargs)


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------


class DiffTests(unittest.TestCase):
    def test_missing_and_damaged(self):
        item = compute_item(_diff_row(expected=5, received=3, damaged=1))
        self.assertEqual(item["missing_qty"], 2)
        self.assertEqual(item["damaged_qty"], 1)
        self.assertEqual(item["received_qty"], 3)
        self.assertEqual(item["issue"], "missing, damaged")

    def test_over_received_is_not_missing(self):
        item = compute_item(_diff_row(expected=2, received=4, damaged=0))
        self.assertEqual(item["missing_qty"], 0)
        self.assertIsNone(item["issue"])

    def test_describe_issue(self):
        self.assertEqual(describe_issue(1, 0), "missing")
        self.assertEqual(describe_issue(0, 2), "damaged")
        self.assertEqual(describe_issue(0, 0), "")

    def test_filters_clean_rows_and_keeps_order(self):
        rows = [
            _diff_row(model="A", expected=1, received=1, damaged=0),
            _diff_row(model="B", expected=3, received=1, damaged=0),
            "garbage",
            _diff_row(model="C", expected=1, received=1, damaged=1),
        ]
        items = compute_items(rows)
        self.assertEqual([i["model"] for i in items], ["B", "C"])
        for item in items:
            self.assertTrue(item["missing_qty"] > 0 or item["damaged_qty"] > 0)
            self.assertGreaterEqual(item["missing_qty"], 0)

    def test_null_quantities_count_as_zero(self):
        row = {"manufacturer": "Acme", "model": "X1", "room": None, "expected_qty": None,
               "total_received": None, "total_damaged": "2"}
        item = compute_item(row)
        self.assertEqual(item["expected_qty"], 0)
        self.assertEqual(item["damaged_qty"], 2)
        self.assertEqual(item["issue"], "damaged")

    def test_notes_pass_through(self):
        row = dict(_diff_row(), notes="crate crushed")
        self.assertEqual(compute_item(row)["notes"], "crate crushed")
        self.assertNotIn("notes", compute_item(_diff_row()))

    def test_empty_input(self):
        self.assertEqual(compute_items([]), [])
        self.assertEqual(compute_items(None), [])


# ---------------------------------------------------------------------------
# Persister
# ---------------------------------------------------------------------------


class PersisterTests(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock(spec=SupabaseClient)

    def test_header_then_items(self):
        items = compute_items([_diff_row()])
        self.client.insert.side_effect = [
            [{"id": "pl-1", "work_order_id": "wo-1", "status": "draft"}],
            [dict(items[0], id="it-1", punchlist_id="pl-1")],
        ]
        record = create_punchlist(self.client, "wo-1", items)

        header_call, items_call = self.client.insert.call_args_list
        self.assertEqual(header_call[0], ("punchlists", [{"work_order_id": "wo-1", "status": "draft"}]))
        self.assertEqual(items_call[0][0], "punchlist_items")
        self.assertTrue(all(row["punchlist_id"] == "pl-1" for row in items_call[0][1]))
        payload = record.to_payload()
        self.assertEqual(payload["punchlist_id"], "pl-1")
        self.assertEqual(payload["items_count"], 1)
        self.assertEqual(payload["items"][0]["id"], "it-1")

    def test_empty_items_still_creates_header(self):
        self.client.insert.return_value = [{"id": "pl-2"}]
        record = create_punchlist(self.client, None, [])
        self.assertEqual(self.client.insert.call_count, 1)
        self.assertEqual(record.to_payload(), {
            "punchlist_id": "pl-2", "work_order_id": None, "items_count": 0, "items": [],
        })

    def test_header_failure(self):
        self.client.insert.side_effect = BackendError("Supabase error 400", status=400, details="bad column")
        with self.assertRaises(PersistenceError) as ctx:
            create_punchlist(self.client, None, _items(1))
        self.assertEqual(ctx.exception.message, "Failed to create punchlist")
        self.assertEqual(ctx.exception.details, "bad column")

    def test_header_without_id(self):
        self.client.insert.return_value = []
        with self.assertRaises(PersistenceError):
            create_punchlist(self.client, None, _items(1))

    def test_item_failure_keeps_header(self):
        self.client.insert.side_effect = [
            [{"id": "pl-3"}],
            BackendError("Supabase error 409", status=409, details="conflict"),
        ]
        with self.assertRaises(PersistenceError) as ctx:
            create_punchlist(self.client, None, _items(2))
        self.assertEqual(ctx.exception.message, "Failed to insert punchlist items")
        self.assertEqual(ctx.exception.details, "conflict")
        self.assertEqual(self.client.insert.call_count, 2)

    def test_fetch_punchlist_not_found(self):
        self.client.select.return_value = []
        with self.assertRaises(NotFoundError):
            fetch_punchlist(self.client, "nope")

    def test_fetch_latest_orders_by_created_at(self):
        self.client.select.return_value = [{"id": "pl-9", "work_order_id": "wo-1"}]
        row = fetch_latest_punchlist(self.client, "wo-1")
        self.assertEqual(row["id"], "pl-9")
        kwargs = self.client.select.call_args[1]
        self.assertEqual(kwargs["order"], "created_at.desc")
        self.assertEqual(kwargs["limit"], 1)
        self.assertEqual(kwargs["filters"], {"work_order_id": "wo-1"})

    def test_fetch_items_sorted(self):
        self.client.select.return_value = []
        fetch_items(self.client, "pl-1")
        self.assertEqual(self.client.select.call_args[1]["order"], "manufacturer.asc,model.asc,room.asc")

    def test_fetch_work_order_none_without_id(self):
        self.assertIsNone(fetch_work_order(self.client, None))
        self.client.select.assert_not_called()
        self.client.select.return_value = []
        self.assertIsNone(fetch_work_order(self.client, "wo-x"))


# ---------------------------------------------------------------------------
# Branding
# ---------------------------------------------------------------------------


class BrandingTests(unittest.TestCase):
    def setUp(self):
        self.defaults = BrandDefaults(
            company_name="EnvCo",
            company_tagline="Env tagline",
            company_address="1 Env Rd",
            company_phone="(555) 000-0000",
            company_logo_url="https://env/logo.png",
        )

    def test_override_beats_work_order_beats_env(self):
        wo = {"company_display_name": "WoCo", "company_logo_url": "https://wo/logo.png", "code": "WO-17"}
        b = resolve_branding(self.defaults, wo, {"company_name": "OverrideCo"})
        self.assertEqual(b.company_name, "OverrideCo")
        self.assertEqual(b.company_logo_url, "https://wo/logo.png")
        self.assertEqual(b.work_order_code, "WO-17")

        b = resolve_branding(self.defaults, wo)
        self.assertEqual(b.company_name, "WoCo")

        b = resolve_branding(self.defaults, None)
        self.assertEqual(b.company_name, "EnvCo")
        self.assertEqual(b.company_logo_url, "https://env/logo.png")

    def test_blank_values_fall_through(self):
        blank = BrandDefaults(company_name="", company_tagline="", company_address="",
                              company_phone="", company_logo_url="")
        b = resolve_branding(blank, {"company_display_name": "  "}, {"company_name": ""})
        self.assertEqual(b.company_name, "WPUSA")
        self.assertEqual(b.company_logo_url, "")

    def test_unknown_override_keys_ignored(self):
        b = resolve_branding(self.defaults, None, {"work_order_code": "HACK", "client_name": "Bigco"})
        self.assertEqual(b.work_order_code, "")
        self.assertEqual(b.client_name, "Bigco")

    def test_project_name_falls_back_to_project(self):
        b = resolve_branding(self.defaults, {"project": "Tower B"})
        self.assertEqual(b.project_name, "Tower B")

    def test_address_line(self):
        b = resolve_branding(self.defaults)
        self.assertEqual(b.address_line, "1 Env Rd • (555) 000-0000")


# ---------------------------------------------------------------------------
# Report layout
# ---------------------------------------------------------------------------


class LayoutTests(unittest.TestCase):
    def test_default_rows_per_page(self):
        self.assertEqual(DEFAULT_GEOMETRY.rows_per_page, 14)

    def test_paginate_counts(self):
        self.assertEqual(paginate([], 14), [[]])
        self.assertEqual(len(paginate(_items(14), 14)), 1)
        self.assertEqual(len(paginate(_items(15), 14)), 2)
        self.assertEqual(len(paginate(_items(29), 14)), 3)

    def test_paginate_concatenation_preserves_items(self):
        items = _items(31)
        pages = paginate(items, 14)
        self.assertEqual([row for page in pages for row in page], items)
        self.assertTrue(all(len(page) <= 14 for page in pages))

    def test_paginate_rejects_zero_rows(self):
        with self.assertRaises(RenderError):
            paginate(_items(1), 0)

    def test_clamp_text_fits_column(self):
        long_text = "Extremely Long Manufacturer Name Incorporated International"
        for _, _, width in COLUMNS:
            clamped = clamp_text(long_text, width - CELL_CLAMP)
            self.assertLessEqual(stringWidth(clamped, "Helvetica", 10), width - CELL_CLAMP)
            self.assertTrue(long_text.startswith(clamped))

    def test_clamp_text_keeps_short_text(self):
        self.assertEqual(clamp_text("X1", 100), "X1")

    def test_detect_image_format(self):
        self.assertEqual(detect_image_format(b"\x89PNG\r\n"), "png")
        self.assertEqual(detect_image_format(b"\xff\xd8\xff"), "jpeg")
        self.assertIsNone(detect_image_format(b"GIF89a"))
        self.assertIsNone(detect_image_format(b""))

    def test_report_filename(self):
        self.assertEqual(report_filename(42), "punchlist-42.pdf")

    def test_meta_block_clears_table_header(self):
        g = DEFAULT_GEOMETRY
        last_meta_baseline = g.top - META_OFFSET - 2 * META_LEADING
        band_top = g.top - g.header_block + g.table_header_height
        self.assertGreater(last_meta_baseline + getDescent(FONT, BODY_SIZE), band_top)

    def test_last_row_clears_signature_line(self):
        g = DEFAULT_GEOMETRY
        last_row_bottom = g.top - g.header_block - g.rows_per_page * g.row_height
        self.assertGreaterEqual(last_row_bottom, g.margin + SIGNATURE_OFFSET)

    def test_footer_follows_margin(self):
        c = _NumberedCanvas(io.BytesIO(), pagesize=(792, 612), footer_text="Generated by WPUSA", margin=60)
        c.drawString = MagicMock()
        c.drawRightString = MagicMock()
        c._draw_footer(3)
        c.drawString.assert_called_once_with(60, 46, "Generated by WPUSA")
        c.drawRightString.assert_called_once_with(732, 46, "Page 1 of 3")


# ---------------------------------------------------------------------------
# Logos
# ---------------------------------------------------------------------------


class FetchLogoTests(unittest.TestCase):
    @patch("urllib.request.urlopen")
    def test_http_404_returns_none(self, mock_urlopen):
        mock_urlopen.side_effect = urllib.error.HTTPError("https://cdn/x.png", 404, "nf", {}, io.BytesIO(b""))
        self.assertIsNone(fetch_logo("https://cdn/x.png"))

    @patch("urllib.request.urlopen")
    def test_unknown_format_returns_none(self, mock_urlopen):
        resp = MagicMock()
        resp.status = 200
        resp.read.return_value = b"GIF89a...."
        resp.__enter__.return_value = resp
        mock_urlopen.return_value = resp
        self.assertIsNone(fetch_logo("https://cdn/x.gif"))

    @patch("urllib.request.urlopen")
    def test_png_returned_with_timeout(self, mock_urlopen):
        png = _png_bytes()
        resp = MagicMock()
        resp.status = 200
        resp.read.return_value = png
        resp.__enter__.return_value = resp
        mock_urlopen.return_value = resp
        self.assertEqual(fetch_logo("https://cdn/x.png", timeout=3), png)
        self.assertEqual(mock_urlopen.call_args[1]["timeout"], 3)

    def test_empty_url(self):
        self.assertIsNone(fetch_logo(""))

    @patch("urllib.request.urlopen")
    def test_dropped_connection_returns_none(self, mock_urlopen):
        mock_urlopen.side_effect = http.client.RemoteDisconnected("Remote end closed connection without response")
        self.assertIsNone(fetch_logo("https://cdn/x.png"))

    @patch("urllib.request.urlopen")
    def test_truncated_body_returns_none(self, mock_urlopen):
        resp = MagicMock()
        resp.status = 200
        resp.read.side_effect = http.client.IncompleteRead(b"\x89PN", 120)
        resp.__enter__.return_value = resp
        mock_urlopen.return_value = resp
        self.assertIsNone(fetch_logo("https://cdn/x.png"))

    def test_local_file_url_is_not_read(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "logo.png")
            with open(path, "wb") as fh:
                fh.write(_png_bytes())
            self.assertIsNone(fetch_logo("file://" + path))

    @patch("urllib.request.urlopen")
    def test_non_http_schemes_rejected(self, mock_urlopen):
        for url in ("ftp://cdn/x.png", "data:image/png;base64,iVBORw0KGgo=", "/var/task/logo.png"):
            self.assertIsNone(fetch_logo(url), url)
        mock_urlopen.assert_not_called()


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class RenderReportTests(unittest.TestCase):
    def test_output_is_pdf(self):
        pdf = _render(_items(1))
        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertEqual(len(PAGE_RE.findall(pdf)), 1)

    def test_empty_items_one_page(self):
        pdf = _render([])
        self.assertEqual(len(PAGE_RE.findall(pdf)), 1)
        self.assertIn(b"No items.", pdf)
        self.assertIn(b"Page 1 of 1", pdf)

    def test_page_count_follows_rows_per_page(self):
        for count, pages in ((14, 1), (15, 2), (29, 3)):
            pdf = _render(_items(count))
            self.assertEqual(len(PAGE_RE.findall(pdf)), pages, count)

    def test_footer_shows_total_on_every_page(self):
        pdf = _render(_items(15))
        self.assertIn(b"Page 1 of 2", pdf)
        self.assertIn(b"Page 2 of 2", pdf)
        self.assertIn(b"2026-03-02 14:05 UTC", pdf)

    def test_header_meta_lines(self):
        branding = Branding(company_name="Acme Field", work_order_code="WO-17", project_name="Tower B",
                            client_name="Bigco")
        pdf = _render(_items(1), branding=branding)
        self.assertIn(b"Punchlist ID: pl-1", pdf)
        self.assertIn(b"Work Order: WO-17", pdf)
        self.assertIn(b"Project: Tower B", pdf)
        self.assertIn(b"Client: Bigco", pdf)
        self.assertIn(b"Technician Signature / Date", pdf)

    def test_failed_logo_is_omitted(self):
        branding = Branding(company_name="WPUSA", company_logo_url="https://cdn/missing.png")
        fetched = []

        def fetcher(url):
            fetched.append(url)
            return None

        pdf = _render(_items(1), branding=branding, logo_fetcher=fetcher)
        self.assertEqual(fetched, ["https://cdn/missing.png"])
        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertNotIn(b"/Subtype /Image", pdf)

    def test_undecodable_logo_is_omitted(self):
        branding = Branding(company_name="WPUSA", client_logo_url="https://cdn/broken.png")
        pdf = _render(_items(1), branding=branding, logo_fetcher=lambda url: b"\x89not really a png")
        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertNotIn(b"/Subtype /Image", pdf)

    def test_raising_fetcher_is_omitted(self):
        branding = Branding(company_name="WPUSA", company_logo_url="https://cdn/logo.png")

        def fetcher(url):
            raise http.client.RemoteDisconnected("Remote end closed connection without response")

        pdf = _render(_items(1), branding=branding, logo_fetcher=fetcher)
        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertNotIn(b"/Subtype /Image", pdf)

    @patch("urllib.request.urlopen")
    def test_default_fetcher_dropped_connection_still_renders(self, mock_urlopen):
        mock_urlopen.side_effect = http.client.RemoteDisconnected("Remote end closed connection without response")
        branding = Branding(company_name="WPUSA", company_logo_url="https://cdn/logo.png",
                            client_logo_url="https://cdn/client.png")
        pdf = render_report(branding, {"id": "pl-1"}, _items(1), page_compression=False)
        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertEqual(mock_urlopen.call_count, 2)

    def test_png_logo_embedded(self):
        branding = Branding(company_name="WPUSA", company_logo_url="https://cdn/logo.png")
        pdf = _render(_items(1), branding=branding, logo_fetcher=lambda url: _png_bytes())
        self.assertIn(b"/Subtype /Image", pdf)

    def test_geometry_without_room_raises(self):
        tiny = PageGeometry(height=300)
        with self.assertRaises(RenderError):
            _render(_items(1), geometry=tiny)


if __name__ == "__main__":
    unittest.main()
