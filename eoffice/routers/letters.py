from __future__ import annotations

import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import Response

from eoffice.core.generate import generate_letter_pdf
from eoffice.core.validation import ensure_unique_reviewers
from eoffice.core.workflow import ApprovalService
from eoffice.deps import get_app_settings, get_service, get_storage
from eoffice.models import LetterDraft
from eoffice.schemas import ApproveRequest, LetterOut, LetterSubmit, ParafRequest, RejectRequest
from eoffice.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/letters", tags=["letters"])


def pdf_response(pdf_bytes: bytes, filename: str) -> Response:
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


def safe_filename(text: str, fallback: str = "surat") -> str:
    cleaned = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in (text or ""))
    return cleaned.strip("_") or fallback


@router.post("", response_model=LetterOut, status_code=201)
def submit_letter(
    body: Annotated[LetterSubmit, Body(...)],
    service: ApprovalService = Depends(get_service),
):
    """
    Create a letter (no letter_id) or resubmit one after revision.
    Resubmission restarts the paraf chain from the first reviewer.
    """
    ensure_unique_reviewers(body.reviewer_ids, body.approver_id)

    draft = LetterDraft(**body.model_dump(exclude={"maker_id", "letter_id"}))
    letter = service.submit(draft, maker_id=body.maker_id, letter_id=body.letter_id)
    return LetterOut.from_letter(letter)


@router.get("", response_model=List[LetterOut])
def list_letters(unit_code: Optional[str] = None, storage=Depends(get_storage)):
    """Newest first, optionally limited to one unit."""
    return [LetterOut.from_letter(letter) for letter in storage.list_letters(unit_code=unit_code)]


@router.get("/{letter_id}", response_model=LetterOut)
def get_letter(letter_id: str, service: ApprovalService = Depends(get_service)):
    return LetterOut.from_letter(service.get(letter_id))


@router.post("/{letter_id}/paraf", response_model=LetterOut)
def paraf_letter(
    letter_id: str,
    body: Annotated[ParafRequest, Body(...)],
    service: ApprovalService = Depends(get_service),
):
    return LetterOut.from_letter(service.paraf(letter_id, body.reviewer_id))


@router.post("/{letter_id}/approve", response_model=LetterOut)
def approve_letter(
    letter_id: str,
    body: Annotated[ApproveRequest, Body(...)],
    service: ApprovalService = Depends(get_service),
):
    return LetterOut.from_letter(service.approve(letter_id, body.approver_id))


@router.post("/{letter_id}/reject", response_model=LetterOut)
def reject_letter(
    letter_id: str,
    body: Annotated[RejectRequest, Body(...)],
    service: ApprovalService = Depends(get_service),
):
    return LetterOut.from_letter(service.reject(letter_id, body.actor_id, body.note))


@router.get("/{letter_id}/download")
def download_letter(
    letter_id: str,
    service: ApprovalService = Depends(get_service),
    settings: Settings = Depends(get_app_settings),
):
    """Current rendering of the letter: numbered and QR-stamped once approved, draft otherwise."""
    letter = service.get(letter_id)
    pdf_bytes = generate_letter_pdf(letter, settings=settings)
    name = safe_filename(letter.letter_number or f"draft_{letter.letter_id}")
    return pdf_response(pdf_bytes, f"{name}.pdf")
