# eoffice/core/letter_pdf.py
"""
Web-mode letter template rendered with fpdf2 on a 215 x 330 mm (F4) page.

Layout, top to bottom:
  letterhead image | dual-calendar date block | Nomor / Lampiran / Perihal |
  recipient | body | Tembusan + signature column | paraf line | disclaimer
and the footer image pinned to the bottom of every page.

The whole letter is composed at 12pt; while it runs past the safe area the
font shrinks by 0.5pt and the letter is composed again, stopping at 9pt.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from fpdf import FPDF
from fpdf.enums import XPos, YPos
from PIL import Image

from eoffice.core.body_markup import Block, body_blocks
from eoffice.core.dual_calendar import DualDate, dual_date
from eoffice.core.errors import GenerationError
from eoffice.core.wording import (
    DRAFT_SIGNATURE_LABEL,
    LEGAL_DISCLAIMER,
    attachment_label,
    paraf_line,
)

logger = logging.getLogger(__name__)

PAGE_FORMAT_MM = (215, 330)
MARGIN_X_MM = 22.0
SAFE_HEIGHT_MM = 300.0

BASE_FONT_PT = 12.0
MIN_FONT_PT = 9.0
FONT_STEP_PT = 0.5

PT_TO_MM = 25.4 / 72
LINE_SPACING = 1.4

QR_SIZE_MM = 21.0
DRAFT_BOX_MM = (26.0, 16.0)
CORE_FAMILY = "Helvetica"
EMBED_FAMILY = "LetterFont"

_LATIN1_FALLBACKS = {
    "‘": "'", "’": "'", "“": '"', "”": '"',
    "–": "-", "—": "-", "…": "...", "•": "-",
}

T = TypeVar("T")


@dataclass
class LetterAssets:
    """Images and fonts for one render. Loaded per request, never cached."""
    header: Image.Image
    footer: Optional[Image.Image] = None
    fonts: Optional[Dict[str, str]] = None

    @classmethod
    def load(
        cls,
        header_path: Path,
        footer_path: Optional[Path] = None,
        fonts: Optional[Dict[str, str]] = None,
    ) -> "LetterAssets":
        return cls(
            header=_load_image(header_path, "header"),
            footer=_load_image(footer_path, "footer") if footer_path else None,
            fonts=fonts,
        )


def _load_image(path: Path, label: str) -> Image.Image:
    try:
        with Image.open(path) as img:
            return img.convert("RGB")
    except FileNotFoundError as e:
        raise GenerationError(f"Letter {label} image not found: {path}", code="ASSET_MISSING") from e
    except OSError as e:
        raise GenerationError(f"Letter {label} image unreadable: {path} ({e})", code="ASSET_MISSING") from e


@dataclass
class LetterView:
    """Everything printed on a web-mode letter, already resolved."""
    letter_number: str
    subject: str
    body: str
    signed_on: datetime
    city: str
    destination_title: str = ""
    destination_name: str = ""
    attachment_count: int = 0
    cc: List[str] = field(default_factory=list)
    approver_name: str = ""
    approver_job_title: str = ""
    approver_uid: str = ""
    approved: bool = False
    approved_reviewers: List[str] = field(default_factory=list)
    qr_image: Optional[Image.Image] = None


def shrink_to_fit(
    compose: Callable[[float], Tuple[T, float]],
    *,
    limit: float = SAFE_HEIGHT_MM,
    start: float = BASE_FONT_PT,
    floor: float = MIN_FONT_PT,
    step: float = FONT_STEP_PT,
) -> Tuple[T, float, int]:
    """
    Call `compose(size)` with decreasing font sizes until the content height
    it reports is within `limit` or `size` reaches `floor`.

    Returns (result of the last pass, chosen size, number of passes). The
    size strictly decreases every pass, so at most
    (start - floor) / step + 1 passes run.
    """
    size = start
    passes = 0
    while True:
        passes += 1
        result, height = compose(size)
        if height <= limit or size <= floor:
            return result, size, passes
        size = max(floor, size - step)


class _LetterPDF(FPDF):
    def __init__(self, footer_image: Optional[Image.Image]):
        super().__init__(orientation="P", unit="mm", format=PAGE_FORMAT_MM)
        self._footer_image = footer_image

    def footer(self):
        if self._footer_image is None:
            return
        img_w, img_h = self._footer_image.size
        if not img_w or not img_h:
            return
        h = self.w * img_h / img_w
        self.image(self._footer_image, x=0, y=self.h - h, w=self.w, h=h)


class _LetterBuilder:
    """
    One composition pass at a fixed font size. Every pass starts from a new
    FPDF object so nothing carries over between sizes.
    """

    def __init__(self, view: LetterView, assets: LetterAssets, calendar: DualDate, font_pt: float):
        self.view = view
        self.assets = assets
        self.calendar = calendar
        self.size = font_pt
        self.lh = font_pt * PT_TO_MM * LINE_SPACING

        self._pdf = _LetterPDF(assets.footer)
        self._pdf.set_margins(MARGIN_X_MM, 10, MARGIN_X_MM)
        self._pdf.set_auto_page_break(auto=True, margin=self._pdf.h - SAFE_HEIGHT_MM)
        self._pdf.set_title(view.subject or "Surat")
        self.family = self._setup_fonts(assets.fonts)
        self._unicode = self.family != CORE_FAMILY
        self._pdf.add_page()

        self.content_w = self._pdf.w - self._pdf.l_margin - self._pdf.r_margin

    # ---- helpers ----
    def _setup_fonts(self, fonts: Optional[Dict[str, str]]) -> str:
        if not fonts:
            return CORE_FAMILY
        for style, path in fonts.items():
            self._pdf.add_font(EMBED_FAMILY, style=style, fname=str(path))
        return EMBED_FAMILY

    def _text(self, text: str) -> str:
        text = text or ""
        if self._unicode:
            return text
        for src, dst in _LATIN1_FALLBACKS.items():
            text = text.replace(src, dst)
        return text.encode("latin-1", "replace").decode("latin-1")

    def _font(self, style: str = "", delta: float = 0.0):
        self._pdf.set_font(self.family, style, self.size + delta)

    def _line(self, text: str, style: str = "", align: str = "L"):
        self._font(style)
        self._pdf.multi_cell(0, self.lh, self._text(text), align=align,
                             new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    # ---- sections ----
    def letterhead(self):
        img = self.assets.header
        h = self._pdf.w * img.size[1] / img.size[0]
        self._pdf.image(img, x=0, y=0, w=self._pdf.w, h=h)
        self._pdf.set_y(h + 3)

    def date_block(self):
        pdf = self._pdf
        hijri, greg = self.calendar.hijri, self.calendar.gregorian
        self._font()

        city = self._text(f"{self.view.city},")
        city_w = pdf.get_string_width(city) + 2
        col_w = max(
            pdf.get_string_width(hijri.date_str) + pdf.get_string_width(hijri.year_str),
            pdf.get_string_width(greg.date_str) + pdf.get_string_width(greg.year_str),
        ) + 8
        right = pdf.w - pdf.r_margin
        col_x = right - col_w
        y = pdf.get_y()

        pdf.set_xy(col_x - city_w, y)
        pdf.cell(city_w, self.lh, city)
        for row, parts in enumerate((hijri, greg)):
            row_y = y + row * (self.lh + 0.8)
            pdf.set_xy(col_x, row_y)
            pdf.cell(col_w, self.lh, self._text(parts.date_str), align="L")
            pdf.set_xy(col_x, row_y)
            pdf.cell(col_w, self.lh, self._text(parts.year_str), align="R")
        # Rule between the Hijri and the Gregorian rows
        pdf.set_line_width(0.25)
        pdf.line(col_x, y + self.lh + 0.4, right, y + self.lh + 0.4)

        pdf.set_y(y + 2 * self.lh + 0.8 + 4)

    def metadata(self):
        pdf = self._pdf
        label_w, colon_w = 24.0, 4.0
        rows = [
            ("Nomor", self.view.letter_number, ""),
            ("Lampiran", attachment_label(self.view.attachment_count), ""),
            ("Perihal", self.view.subject or "-", "B"),
        ]
        for label, value, style in rows:
            self._font()
            pdf.set_x(pdf.l_margin)
            pdf.cell(label_w, self.lh, label)
            pdf.cell(colon_w, self.lh, ":")
            self._font(style)
            pdf.multi_cell(0, self.lh, self._text(value or "-"),
                           new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.ln(4)

    def recipient(self):
        self._line("Kepada Yth.")
        if self.view.destination_title:
            self._line(self.view.destination_title, "B")
        if self.view.destination_name:
            self._line(self.view.destination_name)
        self._line("di Tempat")
        self._pdf.ln(4)

    def body(self):
        pdf = self._pdf
        for block in body_blocks(self.view.body):
            self._body_block(block)
            pdf.ln(self.lh * 0.35)
        pdf.ln(2)

    def _body_block(self, block: Block):
        pdf = self._pdf
        self._font()
        if block.kind == "li":
            indent = 6.0 * (block.level + 1)
            bullet_w = 7.0
            pdf.set_x(pdf.l_margin + indent)
            pdf.cell(bullet_w, self.lh, self._text(block.prefix))
            pdf.multi_cell(0, self.lh, self._text(block.text), align=block.align, markdown=block.markdown,
                           new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        else:
            pdf.multi_cell(0, self.lh, self._text(block.text), align=block.align, markdown=block.markdown,
                           new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    def closing(self):
        pdf = self._pdf
        y_top = pdf.get_y() + 4
        col_w = self.content_w / 2
        right_x = pdf.l_margin + col_w

        y_right = self._signature_column(right_x, y_top, col_w)
        y_left = self._cc_column(pdf.l_margin, y_top, col_w, y_right)

        pdf.set_xy(pdf.l_margin, max(y_left, y_right) + 3)

    def _centered(self, x: float, y: float, w: float, text: str, style: str = "") -> float:
        self._font(style)
        self._pdf.set_xy(x, y)
        self._pdf.multi_cell(w, self.lh, self._text(text), align="C",
                             new_x=XPos.LEFT, new_y=YPos.NEXT)
        return self._pdf.get_y()

    def _signature_column(self, x: float, y: float, w: float) -> float:
        pdf = self._pdf
        view = self.view
        y = self._centered(x, y, w, "Hormat Kami,")
        y = self._centered(x, y, w, view.approver_job_title or "-", "B")

        if view.approved and view.qr_image is not None:
            bio = io.BytesIO()
            view.qr_image.save(bio, format="PNG")
            bio.seek(0)
            pdf.image(bio, x=x + (w - QR_SIZE_MM) / 2, y=y + 1, w=QR_SIZE_MM, h=QR_SIZE_MM)
            y += QR_SIZE_MM + 2
        else:
            box_w, box_h = DRAFT_BOX_MM
            box_x = x + (w - box_w) / 2
            box_y = y + 2
            pdf.set_draw_color(190, 190, 190)
            pdf.set_line_width(0.4)
            pdf.set_dash_pattern(dash=1.2, gap=0.8)
            pdf.rect(box_x, box_y, box_w, box_h)
            pdf.set_dash_pattern()
            pdf.set_draw_color(0, 0, 0)
            pdf.set_line_width(0.2)

            pdf.set_text_color(150, 150, 150)
            pdf.set_font(self.family, "B", 9)
            pdf.set_xy(box_x, box_y)
            pdf.cell(box_w, box_h, DRAFT_SIGNATURE_LABEL, align="C")
            pdf.set_text_color(0, 0, 0)
            y = box_y + box_h + 2

        y = self._centered(x, y, w, view.approver_name or "-", "BU")
        y = self._centered(x, y, w, f"NIP. {view.approver_uid or '-'}")
        return y

    def _cc_column(self, x: float, y: float, w: float, y_bottom: float) -> float:
        pdf = self._pdf
        cc = [c for c in self.view.cc if c and c.strip()]
        if not cc:
            return y
        # Tembusan sits at the foot of the signature block
        needed = self.lh * (len(cc) + 1)
        y = max(y, y_bottom - needed)

        self._font("BU")
        pdf.set_xy(x, y)
        pdf.cell(w, self.lh, "Tembusan:")
        y += self.lh
        self._font()
        for idx, name in enumerate(cc, start=1):
            pdf.set_xy(x, y)
            pdf.multi_cell(w - 4, self.lh, self._text(f"{idx}. {name.strip()}"),
                           new_x=XPos.LEFT, new_y=YPos.NEXT)
            y = pdf.get_y()
        return y

    def footnotes(self):
        if not self.view.approved:
            return
        paraf = paraf_line(self.view.approved_reviewers)
        self._font("I", -2.5)
        if paraf:
            self._pdf.multi_cell(0, self.lh * 0.8, self._text(paraf), align="C",
                                 new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self._pdf.multi_cell(0, self.lh * 0.8, self._text(LEGAL_DISCLAIMER), align="C",
                             new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    # ---- pass ----
    def compose(self) -> Tuple["_LetterBuilder", float]:
        self.letterhead()
        self.date_block()
        self.metadata()
        self.recipient()
        self.body()
        self.closing()
        self.footnotes()
        return self, self.content_height()

    def content_height(self) -> float:
        pages = self._pdf.page
        return (pages - 1) * SAFE_HEIGHT_MM + self._pdf.get_y()

    @property
    def page_count(self) -> int:
        return self._pdf.pages_count

    def build(self) -> bytes:
        data = self._pdf.output()
        if isinstance(data, str):
            return data.encode("latin-1")
        return bytes(data)


def render_letter_pdf(view: LetterView, assets: LetterAssets) -> bytes:
    """
    Compose `view` with shrink-to-fit and return the PDF bytes.

    Any layout, font or calendar failure is raised as GenerationError; a
    partial document is never returned.
    """
    try:
        calendar = dual_date(view.signed_on)
    except Exception as e:
        raise GenerationError(f"Date conversion failed: {e}", code="CALENDAR_FAILED") from e

    def _compose(size: float):
        return _LetterBuilder(view, assets, calendar, size).compose()

    try:
        builder, size, passes = shrink_to_fit(_compose)
        pdf_bytes = builder.build()
    except GenerationError:
        raise
    except Exception as e:
        raise GenerationError(f"Letter layout failed: {e}") from e

    if size < BASE_FONT_PT:
        logger.info(f"Letter shrunk to {size}pt after {passes} passes ({builder.page_count} page(s))")
    return pdf_bytes
