# eoffice/core/overlay_stamp.py
"""
Stamp QR codes, the letter number and captions onto an uploaded PDF.

Placements are captured on a client-side preview whose canvas was
`render_width` pixels wide; each one is rescaled to the real page width and
flipped from top-left to PDF bottom-left coordinates (models.placement).
Page geometry is the crop box with /Rotate applied, matching the preview
image; the overlay maps that visible frame back into unrotated user space.
Drawing happens on a reportlab overlay page merged onto the original page,
so the original content stream is left untouched.
"""
from __future__ import annotations

import io
import logging
import math
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError
from pypdf import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from eoffice.core.errors import GenerationError
from eoffice.core.pdf_merge import append_attachments, decode_base64_payload, write_pdf
from eoffice.core.qr import build_qr_image
from eoffice.core.wording import DRAFT_WATERMARK, LEGAL_DISCLAIMER, paraf_line
from eoffice.models import (
    DEFAULT_RENDER_WIDTH,
    OverlayPlacement,
    PageBox,
    PlacementKind,
    placement_to_pdf_rect,
    resolve_render_width,
)

logger = logging.getLogger(__name__)

NUMBER_FONT = "Helvetica-Bold"
NUMBER_FONT_RATIO = 0.65
NUMBER_FONT_MIN = 8
NUMBER_FONT_MAX = 36
# Baseline inset from the bottom of the number box, as a fraction of its height
NUMBER_BASELINE_INSET = 0.2

CAPTION_FONT = "Helvetica-Oblique"
CAPTION_FONT_SIZE = 7.5
CAPTION_MIN_FONT_SIZE = 5.0
CAPTION_SIDE_MARGIN = 20.0
PARAF_CAPTION_Y = 34.0
DISCLAIMER_CAPTION_Y = 22.0

WATERMARK_FONT = "Helvetica-Bold"
WATERMARK_FONT_SIZE = 18
WATERMARK_TOP_OFFSET = 36.0

QR_RENDER_PX = 300

VALID_ROTATIONS = (0, 90, 180, 270)

PlacementInput = Union[OverlayPlacement, Dict[str, Any]]


def number_font_size(box_height: float) -> int:
    """Font size for the number box: 65% of its height, clamped to [8, 36]."""
    size = int(math.floor(box_height * NUMBER_FONT_RATIO))
    return max(NUMBER_FONT_MIN, min(NUMBER_FONT_MAX, size))


def page_box(page) -> PageBox:
    """
    Visible geometry of `page`: its crop box (pypdf falls back to the media
    box) with /Rotate applied, matching what pdfium renders for the preview.
    """
    cb = page.cropbox
    rotation = int(page.rotation or 0) % 360
    if rotation not in VALID_ROTATIONS:
        logger.warning(f"Ignoring non-right-angle /Rotate {page.rotation}")
        rotation = 0

    width, height = float(cb.width), float(cb.height)
    if rotation in (90, 270):
        width, height = height, width
    return PageBox(
        width=width,
        height=height,
        left=float(cb.left),
        bottom=float(cb.bottom),
        rotation=rotation,
    )


def _parse_placements(raw: Iterable[PlacementInput]) -> List[Tuple[int, OverlayPlacement]]:
    parsed: List[Tuple[int, OverlayPlacement]] = []
    for idx, item in enumerate(raw or []):
        if isinstance(item, OverlayPlacement):
            parsed.append((idx, item))
            continue
        try:
            parsed.append((idx, OverlayPlacement.model_validate(item)))
        except ValidationError as e:
            logger.warning(f"Skip placement #{idx}: invalid record ({e.error_count()} errors)")
    return parsed


def _fit_caption(text: str, font: str, size: float, max_width: float) -> float:
    while size > CAPTION_MIN_FONT_SIZE and stringWidth(text, font, size) > max_width:
        size -= 0.5
    return size


def _draw_centered_caption(c: canvas.Canvas, box: PageBox, text: str, y: float) -> None:
    size = _fit_caption(text, CAPTION_FONT, CAPTION_FONT_SIZE, box.width - 2 * CAPTION_SIDE_MARGIN)
    c.setFont(CAPTION_FONT, size)
    c.setFillColorRGB(0, 0, 0)
    c.drawCentredString(box.width / 2, y, text)


def _draw_first_page_captions(
    c: canvas.Canvas,
    box: PageBox,
    *,
    approved: bool,
    approved_reviewers: Sequence[str],
) -> None:
    if approved:
        paraf = paraf_line(approved_reviewers)
        if paraf:
            _draw_centered_caption(c, box, paraf, PARAF_CAPTION_Y)
        _draw_centered_caption(c, box, LEGAL_DISCLAIMER, DISCLAIMER_CAPTION_Y)
    else:
        c.setFont(WATERMARK_FONT, WATERMARK_FONT_SIZE)
        c.setFillColorRGB(0.86, 0.1, 0.1)
        c.drawCentredString(
            box.width / 2,
            box.height - WATERMARK_TOP_OFFSET,
            DRAFT_WATERMARK,
        )


def _build_overlay(
    box: PageBox,
    items: Sequence[Tuple[int, OverlayPlacement]],
    *,
    render_width: float,
    letter_number: str,
    qr_reader: Optional[ImageReader],
    first_page: bool,
    approved: bool,
    approved_reviewers: Sequence[str],
):
    buf = io.BytesIO()
    w0, h0 = box.unrotated_size
    c = canvas.Canvas(buf, pagesize=(box.left + w0, box.bottom + h0))
    # Everything below is drawn in the visible (rotated crop box) frame
    c.transform(*box.user_space_transform())

    for idx, placement in items:
        try:
            rect = placement_to_pdf_rect(placement, box, render_width)
            if rect is None:
                logger.warning(f"Skip placement #{idx}: non-finite or empty box")
                continue

            if placement.kind == PlacementKind.QR:
                if qr_reader is None:
                    continue
                c.drawImage(qr_reader, rect.x, rect.y, width=rect.w, height=rect.h)
            else:
                c.setFont(NUMBER_FONT, number_font_size(rect.h))
                c.setFillColorRGB(0, 0, 0)
                c.drawString(rect.x, rect.y + rect.h * NUMBER_BASELINE_INSET, letter_number or "-")
        except Exception as e:
            logger.warning(f"Skip placement #{idx}: {e}")

    if first_page:
        _draw_first_page_captions(
            c, box, approved=approved, approved_reviewers=approved_reviewers
        )

    c.showPage()
    c.save()
    buf.seek(0)
    return PdfReader(buf).pages[0]


def stamp_pdf(
    source_pdf: Union[bytes, str],
    *,
    letter_number: str,
    qr_data: Optional[str],
    placements: Iterable[PlacementInput],
    render_width: Any = None,
    attachments: Iterable[Any] = (),
    approved_reviewers: Sequence[str] = (),
    approved: bool = False,
    logo_path: Optional[Union[str, Path]] = None,
    default_render_width: float = DEFAULT_RENDER_WIDTH,
) -> bytes:
    """
    Stamp `source_pdf` and return the finished PDF bytes.

    Args:
        source_pdf: raw PDF bytes or base64 / data-URI string.
        letter_number: text drawn into every `number` placement.
        qr_data: URL encoded in every `qr` placement; None draws no QR.
        placements: OverlayPlacement objects or raw dicts captured at `render_width`.
        render_width: preview canvas width in px; falls back to
            `default_render_width` when missing or <= 50.
        attachments: PDFs appended after the stamped document.
        approved_reviewers: names for the paraf caption (approved only).
        approved: approved letters get paraf + disclaimer captions, drafts a
            red watermark.

    Only an empty or unreadable source is fatal (GenerationError). Bad
    placements, pages, QR generation and attachments are logged and skipped.
    """
    pdf_bytes = decode_base64_payload(source_pdf)
    if not pdf_bytes:
        raise GenerationError("Source PDF is empty or not valid base64", code="SOURCE_PDF_EMPTY")

    try:
        reader = PdfReader(io.BytesIO(pdf_bytes))
        source_pages = list(reader.pages)
    except Exception as e:
        raise GenerationError(f"Source PDF could not be read: {e}", code="SOURCE_PDF_CORRUPT") from e
    if not source_pages:
        raise GenerationError("Source PDF has no pages", code="SOURCE_PDF_EMPTY")

    writer = PdfWriter()
    for page in source_pages:
        writer.add_page(page)

    width_px = resolve_render_width(render_width, default=default_render_width)

    qr_reader: Optional[ImageReader] = None
    if qr_data:
        try:
            qr_reader = ImageReader(build_qr_image(qr_data, size_px=QR_RENDER_PX, logo_path=logo_path))
        except Exception as e:
            logger.error(f"QR generation failed, stamping without QR: {e}")

    by_page: Dict[int, List[Tuple[int, OverlayPlacement]]] = defaultdict(list)
    for idx, placement in _parse_placements(placements):
        if not 0 <= placement.page_index < len(source_pages):
            logger.warning(
                f"Skip placement #{idx}: page {placement.page_index} out of range "
                f"(document has {len(source_pages)} pages)"
            )
            continue
        by_page[placement.page_index].append((idx, placement))

    # The first page always gets captions or the draft watermark
    target_pages = sorted(set(by_page) | {0})

    for page_index in target_pages:
        target = writer.pages[page_index]
        try:
            overlay = _build_overlay(
                page_box(target),
                by_page.get(page_index, []),
                render_width=width_px,
                letter_number=letter_number,
                qr_reader=qr_reader,
                first_page=(page_index == 0),
                approved=approved,
                approved_reviewers=approved_reviewers,
            )
            target.merge_page(overlay)
        except Exception as e:
            logger.warning(f"Skip overlay for page {page_index}: {e}")

    append_attachments(writer, attachments)

    try:
        return write_pdf(writer)
    except Exception as e:
        raise GenerationError(f"Failed to write stamped PDF: {e}") from e
