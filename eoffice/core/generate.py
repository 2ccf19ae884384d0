# eoffice/core/generate.py
"""
Single entry point for producing a letter PDF.

    creation_mode=web     -> letter_pdf.render_letter_pdf -> merge attachments
    creation_mode=upload  -> overlay_stamp.stamp_pdf (attachments appended there)

Drafts carry the placeholder number; approved letters carry the stored number
and a QR pointing at the public verification page.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from eoffice.core.errors import GenerationError
from eoffice.core.letter_pdf import LetterAssets, LetterView, render_letter_pdf
from eoffice.core.numbering import DRAFT_NUMBER
from eoffice.core.overlay_stamp import stamp_pdf
from eoffice.core.pdf_merge import merge_attachments
from eoffice.core.qr import build_qr_image
from eoffice.core.wording import PREVIEW_IDS, PREVIEW_QR_ID
from eoffice.models import CreationMode, Letter
from eoffice.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def display_number(letter: Letter) -> str:
    if letter.is_approved and letter.letter_number:
        return letter.letter_number
    return DRAFT_NUMBER


def qr_target(letter: Letter, settings: Settings) -> str:
    if letter.is_approved and letter.letter_id not in PREVIEW_IDS:
        return settings.verify_url(letter.letter_id)
    return settings.verify_url(PREVIEW_QR_ID)


def generate_letter_pdf(
    letter: Letter,
    *,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> bytes:
    """
    Render `letter` to PDF bytes in the pathway its creation mode selects.

    Every failure surfaces as GenerationError; no partial document is
    returned.
    """
    settings = settings or get_settings()
    try:
        if letter.creation_mode == CreationMode.UPLOAD:
            return _generate_upload(letter, settings)
        return _generate_web(letter, settings, now)
    except GenerationError:
        raise
    except Exception as e:
        logger.exception(f"PDF generation failed for letter {letter.letter_id}")
        raise GenerationError(f"PDF generation failed: {e}") from e


def _generate_upload(letter: Letter, settings: Settings) -> bytes:
    if not letter.source_pdf:
        raise GenerationError("Upload-mode letter has no source PDF", code="SOURCE_PDF_EMPTY")

    return stamp_pdf(
        letter.source_pdf,
        letter_number=display_number(letter),
        qr_data=qr_target(letter, settings),
        placements=letter.placements,
        render_width=letter.render_width,
        attachments=letter.attachments,
        approved_reviewers=letter.approved_reviewer_names(),
        approved=letter.is_approved,
        logo_path=settings.asset_path(settings.logo_image),
        default_render_width=settings.default_render_width,
    )


def _generate_web(letter: Letter, settings: Settings, now: Optional[datetime]) -> bytes:
    approved = letter.is_approved

    qr_image = None
    if approved:
        qr_image = build_qr_image(
            qr_target(letter, settings),
            logo_path=settings.asset_path(settings.logo_image),
        )

    signed_on = (letter.approver.signed_at if approved else None) or now or settings.local_now()

    view = LetterView(
        letter_number=display_number(letter),
        subject=letter.subject,
        body=letter.body,
        signed_on=signed_on,
        city=settings.letter_city,
        destination_title=letter.destination_title,
        destination_name=letter.destination_name,
        attachment_count=len(letter.attachments),
        cc=list(letter.cc),
        approver_name=letter.approver.name,
        approver_job_title=letter.approver.job_title,
        approver_uid=letter.approver.uid,
        approved=approved,
        approved_reviewers=letter.approved_reviewer_names(),
        qr_image=qr_image,
    )
    assets = LetterAssets.load(
        settings.asset_path(settings.header_image),
        settings.asset_path(settings.footer_image),
        fonts=settings.font_files(),
    )

    pdf_bytes = render_letter_pdf(view, assets)
    return merge_attachments(pdf_bytes, letter.attachments)
