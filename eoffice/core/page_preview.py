# eoffice/core/page_preview.py

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Any

import pypdfium2 as pdfium
from PIL import Image

from eoffice.core.errors import GenerationError
from eoffice.core.pdf_merge import decode_base64_payload
from eoffice.models import DEFAULT_RENDER_WIDTH, resolve_render_width

logger = logging.getLogger(__name__)


@dataclass
class PagePreview:
    """
    A rasterized page at the width the placement editor draws on. Boxes the
    user drops on this image are sent back with `render_width = width_px`.
    """
    png: bytes
    page_index: int
    page_count: int
    width_px: int
    height_px: int
    page_width_pt: float
    page_height_pt: float


def render_page_preview(
    source_pdf: Any,
    *,
    page_index: int = 0,
    render_width: Any = None,
    default_render_width: float = DEFAULT_RENDER_WIDTH,
) -> PagePreview:
    """
    Render one page of an uploaded PDF to PNG, `render_width` pixels wide.

    Uses python-pdfium2; the page is rendered at scale = width / page width so
    the image has exactly the reference width the stamper later divides by.
    """
    pdf_bytes = decode_base64_payload(source_pdf)
    if not pdf_bytes:
        raise GenerationError("Source PDF is empty or not valid base64", code="SOURCE_PDF_EMPTY")

    width_px = resolve_render_width(render_width, default=default_render_width)

    try:
        doc = pdfium.PdfDocument(pdf_bytes)
    except Exception as e:
        raise GenerationError(f"Source PDF could not be read: {e}", code="SOURCE_PDF_CORRUPT") from e

    try:
        page_count = len(doc)
        if not 0 <= page_index < page_count:
            raise GenerationError(
                f"Page {page_index} out of range (document has {page_count} pages)",
                code="PAGE_OUT_OF_RANGE",
            )

        page = doc[page_index]
        page_w, page_h = page.get_size()
        scale = width_px / page_w
        pil_page: Image.Image = page.render(scale=scale).to_pil().convert("RGB")

        bio = io.BytesIO()
        pil_page.save(bio, format="PNG")
        return PagePreview(
            png=bio.getvalue(),
            page_index=page_index,
            page_count=page_count,
            width_px=pil_page.size[0],
            height_px=pil_page.size[1],
            page_width_pt=float(page_w),
            page_height_pt=float(page_h),
        )
    except GenerationError:
        raise
    except Exception as e:
        logger.error(f"Page preview failed: {e}")
        raise GenerationError(f"Page preview failed: {e}") from e
    finally:
        doc.close()
