"""punchlist_shared.report — Branded punchlist PDF rendering (reportlab).

Layout: landscape US letter, one header block per page (company logo and
name top-left, client logo top-right, punchlist meta lines), a fixed-column
item table with zebra striping, a two-line signature block and a footer
with the generation timestamp and "Page N of M".

The footer needs the final page count, so pages are buffered by
``_NumberedCanvas`` and the footer is drawn on each one when the document
is saved.

Logos are fetched over HTTP. A logo that cannot be fetched or decoded is
left out; it never fails the report.
"""

from __future__ import annotations

import datetime as dt
import http.client
import logging
import math
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from punchlist_shared.branding import Branding
from punchlist_shared.errors import RenderError

logger = logging.getLogger(__name__)

__all__ = [
    "COLUMNS",
    "DEFAULT_GEOMETRY",
    "PageGeometry",
    "clamp_text",
    "detect_image_format",
    "fetch_logo",
    "paginate",
    "render_report",
    "report_filename",
]

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_ITALIC = "Helvetica-Oblique"

TEXT_CLR = (0.0, 0.0, 0.0)
SUB_CLR = (0.35, 0.35, 0.35)
MUTED_CLR = (0.45, 0.45, 0.45)
HEADER_BG = (0.95, 0.95, 0.95)
BORDER_CLR = (0.7, 0.7, 0.7)
ZEBRA_BG = (0.965, 0.965, 0.965)
LINE_CLR = (0.2, 0.2, 0.2)

# (key, title, width in points)
COLUMNS: Tuple[Tuple[str, str, float], ...] = (
    ("manufacturer", "Manufacturer", 130),
    ("model", "Model", 110),
    ("room", "Room", 70),
    ("expected_qty", "Expected", 45),
    ("received_qty", "Received", 45),
    ("missing_qty", "Missing", 45),
    ("damaged_qty", "Damaged", 45),
    ("issue", "Issue", 140),
)
TABLE_WIDTH = sum(width for _, _, width in COLUMNS)
CELL_PAD_X = 8
CELL_CLAMP = 12
BODY_SIZE = 10
HEADER_SIZE = 9

COMPANY_LOGO_SCALE = 0.25
CLIENT_LOGO_SCALE = 0.22
LOGO_MAX_HEIGHT = 48

PNG_MAGIC = 0x89
JPEG_MAGIC = 0xFF
LOGO_SCHEMES = ("http", "https")

META_OFFSET = 90
META_LEADING = 14
SIGNATURE_OFFSET = 40
FOOTER_DROP = 14


@dataclass(frozen=True)
class PageGeometry:
    width: float = 792
    height: float = 612
    margin: float = 50
    # header block + signature + footer
    reserved: float = 180
    header_block: float = 150
    table_header_height: float = 24
    row_height: float = 22

    @property
    def rows_per_page(self) -> int:
        usable = self.height - self.margin * 2 - self.reserved
        return int(math.floor((usable - self.table_header_height) / self.row_height))

    @property
    def top(self) -> float:
        return self.height - self.margin


DEFAULT_GEOMETRY = PageGeometry()


# ---------------------------------------------------------------------------
# Pure layout helpers
# ---------------------------------------------------------------------------


def paginate(items: Sequence[Any], rows_per_page: int) -> List[List[Any]]:
    """Split items into consecutive page chunks; always at least one page."""
    if rows_per_page < 1:
        raise RenderError(f"Page geometry leaves no room for rows (rows_per_page={rows_per_page})")
    items = list(items)
    if not items:
        return [[]]
    return [items[i : i + rows_per_page] for i in range(0, len(items), rows_per_page)]


def clamp_text(text: str, max_width: float, font: str = FONT, size: float = BODY_SIZE) -> str:
    """Drop trailing characters until ``text`` fits ``max_width`` points."""
    while text and stringWidth(text, font, size) > max_width:
        text = text[:-1]
    return text


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def report_filename(punchlist_id: Any) -> str:
    return f"punchlist-{punchlist_id}.pdf"


# ---------------------------------------------------------------------------
# Logos
# ---------------------------------------------------------------------------


def detect_image_format(data: bytes) -> Optional[str]:
    if not data:
        return None
    if data[0] == PNG_MAGIC:
        return "png"
    if data[0] == JPEG_MAGIC:
        return "jpeg"
    return None


def fetch_logo(url: str, timeout: float = 5) -> Optional[bytes]:
    """Download logo bytes; returns None on any failure or unknown format."""
    if not url:
        return None
    if urllib.parse.urlsplit(url).scheme.lower() not in LOGO_SCHEMES:
        logger.warning("[WARNING] logo url scheme not allowed: %s", url)
        return None
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp:
            status = int(getattr(resp, "status", 200) or 200)
            data = resp.read()
    except urllib.error.HTTPError as exc:
        logger.warning("[WARNING] logo fetch failed (http_%s): %s", exc.code, url)
        return None
    except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as exc:
        logger.warning("[WARNING] logo fetch failed (%s): %s", exc, url)
        return None
    if status < 200 or status >= 300:
        logger.warning("[WARNING] logo fetch returned http_%s: %s", status, url)
        return None
    if detect_image_format(data) is None:
        logger.warning("[WARNING] logo is neither PNG nor JPEG: %s", url)
        return None
    return data


def _load_image(data: Optional[bytes]) -> Optional[ImageReader]:
    if not data:
        return None
    try:
        image = ImageReader(BytesIO(data))
        image.getSize()
    except Exception as exc:  # logo problems never fail the report
        logger.warning("[WARNING] logo could not be decoded: %s", exc)
        return None
    return image


def _logo(fetcher: Callable[[str], Optional[bytes]], url: str) -> Optional[ImageReader]:
    if not url:
        return None
    try:
        data = fetcher(url)
    except Exception as exc:  # logo problems never fail the report
        logger.warning("[WARNING] logo fetch failed (%s): %s", exc, url)
        return None
    return _load_image(data)


def _logo_size(image: ImageReader, scale: float) -> Tuple[float, float]:
    w, h = image.getSize()
    w, h = w * scale, h * scale
    if h > LOGO_MAX_HEIGHT:
        w, h = w * LOGO_MAX_HEIGHT / h, LOGO_MAX_HEIGHT
    return w, h


# ---------------------------------------------------------------------------
# Canvas
# ---------------------------------------------------------------------------


class _NumberedCanvas(canvas.Canvas):
    """Canvas that defers page output so the footer knows the page count."""

    def __init__(self, *args, footer_text: str = "", margin: float = DEFAULT_GEOMETRY.margin, **kwargs):
        canvas.Canvas.__init__(self, *args, **kwargs)
        self._saved_page_states: List[Dict[str, Any]] = []
        self._footer_text = footer_text
        self._margin = margin

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        page_count = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(page_count)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    def _draw_footer(self, page_count: int) -> None:
        width, _ = self._pagesize
        footer_y = self._margin - FOOTER_DROP
        self.setFont(FONT_ITALIC, 9)
        self.setFillColorRGB(*MUTED_CLR)
        self.drawString(self._margin, footer_y, self._footer_text)
        self.drawRightString(width - self._margin, footer_y, f"Page {self._pageNumber} of {page_count}")


def _text(c: canvas.Canvas, text: str, x: float, y: float, *, font: str = FONT, size: float = BODY_SIZE,
          color: Tuple[float, float, float] = TEXT_CLR, max_width: Optional[float] = None) -> None:
    if max_width is not None:
        text = clamp_text(text, max_width, font, size)
    c.setFont(font, size)
    c.setFillColorRGB(*color)
    c.drawString(x, y, text)


def _draw_header(
    c: canvas.Canvas,
    geometry: PageGeometry,
    branding: Branding,
    punchlist: Mapping[str, Any],
    company_logo: Optional[ImageReader],
    client_logo: Optional[ImageReader],
) -> None:
    left = geometry.margin
    right = geometry.width - geometry.margin
    top = geometry.top

    text_x = left
    if company_logo is not None:
        w, h = _logo_size(company_logo, COMPANY_LOGO_SCALE)
        c.drawImage(company_logo, left, top - 40, width=w, height=h, mask="auto")
        text_x += w + 10

    client_w = 0.0
    if client_logo is not None:
        client_w, client_h = _logo_size(client_logo, CLIENT_LOGO_SCALE)
        c.drawImage(client_logo, right - client_w, top - client_h, width=client_w, height=client_h, mask="auto")

    text_room = right - text_x - client_w - 10
    _text(c, branding.company_name, text_x, top - 10, font=FONT_BOLD, size=20, max_width=text_room)
    _text(c, branding.company_tagline, text_x, top - 28, color=SUB_CLR, max_width=text_room)
    _text(c, branding.address_line, text_x, top - 42, size=9, color=SUB_CLR, max_width=text_room)

    _text(c, f"{branding.company_name} — Punchlist", left, top - 70, font=FONT_BOLD, size=22)

    meta_y = top - META_OFFSET
    lines = [
        f"Punchlist ID: {_cell(punchlist.get('id'))}",
        f"Work Order: {branding.work_order_code}",
        f"Project: {branding.project_name}",
    ]
    if branding.client_name:
        lines.append(f"Client: {branding.client_name}")
    # client line sits beside the meta block to keep the table top fixed
    for idx, line in enumerate(lines[:3]):
        _text(c, line, left, meta_y - idx * META_LEADING, max_width=TABLE_WIDTH / 2)
    if len(lines) > 3:
        _text(c, lines[3], left + TABLE_WIDTH / 2, meta_y, max_width=TABLE_WIDTH / 2)


def _draw_table(c: canvas.Canvas, geometry: PageGeometry, rows: Sequence[Mapping[str, Any]]) -> None:
    x = geometry.margin
    header_h = geometry.table_header_height
    row_h = geometry.row_height
    y = geometry.top - geometry.header_block

    c.setFillColorRGB(*HEADER_BG)
    c.setStrokeColorRGB(*BORDER_CLR)
    c.setLineWidth(0.5)
    c.rect(x, y, TABLE_WIDTH, header_h, stroke=1, fill=1)
    cx = x + CELL_PAD_X
    for _, title, width in COLUMNS:
        _text(c, title, cx, y + header_h - 15, font=FONT_BOLD, max_width=width - CELL_CLAMP)
        cx += width

    if not rows:
        _text(c, "No items.", x + CELL_PAD_X, y - 14, size=11, color=MUTED_CLR)
        return

    for idx, row in enumerate(rows):
        y -= row_h
        if idx % 2 == 1:
            c.setFillColorRGB(*ZEBRA_BG)
            c.rect(x, y, TABLE_WIDTH, row_h, stroke=0, fill=1)
        cx = x + CELL_PAD_X
        for key, _, width in COLUMNS:
            _text(c, _cell(row.get(key)), cx, y + 7, max_width=width - CELL_CLAMP)
            cx += width


def _draw_signatures(c: canvas.Canvas, geometry: PageGeometry) -> None:
    left = geometry.margin
    sig_y = geometry.margin + SIGNATURE_OFFSET
    c.setStrokeColorRGB(*LINE_CLR)
    c.setLineWidth(0.5)
    c.line(left, sig_y, left + 220, sig_y)
    _text(c, "Technician Signature / Date", left, sig_y - 12, size=HEADER_SIZE, color=SUB_CLR)
    c.line(left + 280, sig_y, left + 500, sig_y)
    _text(c, "Client Signature / Date", left + 280, sig_y - 12, size=HEADER_SIZE, color=SUB_CLR)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def render_report(
    branding: Branding,
    punchlist: Mapping[str, Any],
    items: Sequence[Mapping[str, Any]],
    *,
    geometry: PageGeometry = DEFAULT_GEOMETRY,
    logo_fetcher: Optional[Callable[[str], Optional[bytes]]] = None,
    generated_at: Optional[dt.datetime] = None,
    page_compression: bool = True,
) -> bytes:
    """Render the punchlist report and return the PDF bytes.

    ``logo_fetcher`` maps a URL to image bytes (or None); it defaults to
    ``fetch_logo``. Any failure other than a logo problem raises RenderError.
    """
    pages = paginate(items, geometry.rows_per_page)
    fetcher = logo_fetcher or fetch_logo
    company_logo = _logo(fetcher, branding.company_logo_url)
    client_logo = _logo(fetcher, branding.client_logo_url)

    stamp = (generated_at or dt.datetime.now(dt.timezone.utc)).strftime("%Y-%m-%d %H:%M UTC")
    buf = BytesIO()
    try:
        c = _NumberedCanvas(
            buf,
            pagesize=(geometry.width, geometry.height),
            pageCompression=1 if page_compression else 0,
            footer_text=f"Generated by {branding.company_name} • {stamp}",
            margin=geometry.margin,
        )
        c.setTitle(f"Punchlist {_cell(punchlist.get('id'))}")
        c.setAuthor(branding.company_name)
        for page_rows in pages:
            _draw_header(c, geometry, branding, punchlist, company_logo, client_logo)
            _draw_table(c, geometry, page_rows)
            _draw_signatures(c, geometry)
            c.showPage()
        c.save()
    except RenderError:
        raise
    except Exception as exc:
        logger.error("[ERROR] PDF generation failed", exc_info=True)
        raise RenderError(f"PDF generation failed: {exc}") from exc

    logger.info("[INFO] rendered punchlist %s pages=%d items=%d", punchlist.get("id"), len(pages), len(items))
    return buf.getvalue()
