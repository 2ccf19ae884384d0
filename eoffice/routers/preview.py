from __future__ import annotations

import base64
import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends

from eoffice.core.generate import generate_letter_pdf
from eoffice.core.page_preview import render_page_preview
from eoffice.core.workflow import ApprovalService
from eoffice.core.wording import PREVIEW_ID
from eoffice.deps import get_app_settings, get_service
from eoffice.models import LetterDraft
from eoffice.routers.letters import pdf_response
from eoffice.schemas import LetterPreview, PageImageOut, PageImageRequest
from eoffice.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["preview"])


@router.post("/preview-pdf")
def preview_pdf(
    body: Annotated[LetterPreview, Body(...)],
    service: ApprovalService = Depends(get_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Render an unsaved draft as it would look before approval: placeholder
    number, DRAFT signature box (web) or watermark (upload).
    """
    draft = LetterDraft(**body.model_dump(exclude={"maker_id"}))
    letter = service.build_letter(draft, maker_id=body.maker_id, letter_id=PREVIEW_ID)
    return pdf_response(generate_letter_pdf(letter, settings=settings), "preview.pdf")


@router.post("/preview/page-image", response_model=PageImageOut)
def preview_page_image(
    body: Annotated[PageImageRequest, Body(...)],
    settings: Settings = Depends(get_app_settings),
):
    """
    Rasterize one page of an uploaded PDF. The returned width is the
    render_width placements captured on this image must be sent with.
    """
    preview = render_page_preview(
        body.source_pdf,
        page_index=body.page_index,
        render_width=body.render_width,
        default_render_width=settings.default_render_width,
    )
    return PageImageOut(
        image="data:image/png;base64," + base64.b64encode(preview.png).decode("ascii"),
        page_index=preview.page_index,
        page_count=preview.page_count,
        width_px=preview.width_px,
        height_px=preview.height_px,
        page_width_pt=preview.page_width_pt,
        page_height_pt=preview.page_height_pt,
    )
