"""
Pydantic schemas for API request/response validation.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from eoffice.models import (
    CreationMode,
    Letter,
    LetterDraft,
    LetterStatus,
    OverlayPlacement,
    Party,
    ReviewerStep,
)

# ============ Letter Schemas ============


class LetterSubmit(LetterDraft):
    """Create (no letter_id) or resubmit (letter_id set) a letter."""
    maker_id: str = Field(..., min_length=1, description="User id of the letter maker")
    letter_id: Optional[str] = Field(None, description="Existing letter to resubmit")


class LetterPreview(LetterDraft):
    """Render an unsaved draft. Nothing is persisted."""
    maker_id: str = Field(..., min_length=1)


class ParafRequest(BaseModel):
    reviewer_id: str = Field(..., min_length=1)


class ApproveRequest(BaseModel):
    approver_id: str = Field(..., min_length=1)


class RejectRequest(BaseModel):
    actor_id: str = Field(..., min_length=1)
    note: str = Field("", max_length=2000, description="Revision note shown to the maker")


class LetterOut(BaseModel):
    """Letter as returned by the API. Source PDF and attachment payloads are omitted."""
    letter_id: str
    status: LetterStatus
    unit_code: str
    letter_type: str = ""
    subject: str = ""
    destination_title: str = ""
    destination_name: str = ""
    creation_mode: CreationMode = CreationMode.WEB
    maker: Party
    approver: Party
    reviewers: List[ReviewerStep] = []
    current_step: int = 0
    letter_number: Optional[str] = None
    fiscal_year: Optional[str] = None
    revision_note: Optional[str] = None
    rejected_by: Optional[str] = None
    attachment_count: int = 0
    placements: List[OverlayPlacement] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    @classmethod
    def from_letter(cls, letter: Letter) -> "LetterOut":
        data = letter.model_dump(exclude={"source_pdf", "attachments", "body"})
        return cls(**data, attachment_count=len(letter.attachments))


# ============ Preview Schemas ============


class PageImageRequest(BaseModel):
    source_pdf: str = Field(..., min_length=1, description="Base64 or data-URI PDF")
    page_index: int = Field(0, ge=0, description="0-based page index")
    render_width: Optional[float] = Field(
        None, description="Target image width in px; <= 50 or missing uses the default"
    )


class PageImageOut(BaseModel):
    image: str = Field(..., description="data:image/png;base64,...")
    page_index: int
    page_count: int
    width_px: int
    height_px: int
    page_width_pt: float
    page_height_pt: float
