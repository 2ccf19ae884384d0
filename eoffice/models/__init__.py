from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from .placement import (
    DEFAULT_RENDER_WIDTH,
    OverlayPlacement,
    PageBox,
    PdfRect,
    PlacementKind,
    placement_to_pdf_rect,
    resolve_render_width,
)


logger = logging.getLogger(__name__)


class LetterStatus(str, Enum):
    PROSES = "PROSES"
    REVISION = "REVISION"
    APPROVED = "APPROVED"


class StepStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REVISION = "REVISION"


class CreationMode(str, Enum):
    WEB = "web"
    UPLOAD = "upload"


class Profile(BaseModel):
    """
    Canonical identity record. Built by models.converters from whatever
    shape the user directory stores.
    """
    uid: str
    prefix_title: str = ""
    name: str = ""
    suffix_title: str = ""
    job_title: str = "Staff"
    unit_code: str = ""

    @property
    def display_name(self) -> str:
        parts = [self.prefix_title, self.name, self.suffix_title]
        return " ".join(" ".join(p for p in parts if p and p.strip()).split())


class LetterType(BaseModel):
    """Letter-type reference row."""
    code: str
    name: str = ""
    format_code: str = ""
    requires_activity_code: bool = False


class Party(BaseModel):
    """Snapshot of the maker or the final signatory on a letter."""
    uid: str
    name: str = ""
    job_title: str = ""
    unit_code: str = ""
    status: StepStatus = StepStatus.PENDING
    signed_at: Optional[datetime] = None

    @classmethod
    def from_profile(cls, profile: Profile) -> "Party":
        return cls(
            uid=profile.uid,
            name=profile.display_name,
            job_title=profile.job_title,
            unit_code=profile.unit_code,
        )


class ReviewerStep(BaseModel):
    """One paraf reviewer in the sign-off chain."""
    uid: str
    name: str = ""
    job_title: str = ""
    status: StepStatus = StepStatus.PENDING
    approved_at: Optional[datetime] = None


Attachment = Union[str, Dict[str, Any]]


class LetterDraft(BaseModel):
    """
    Fields the maker controls. For creation_mode=upload the rendered body is
    the uploaded PDF and `placements` say where the QR and number go.
    """
    unit_code: str
    letter_type: str = ""
    manual_format_code: str = ""
    activity_code: str = ""

    subject: str = ""
    destination_title: str = ""
    destination_name: str = ""
    body: str = ""
    cc: List[str] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)

    creation_mode: CreationMode = CreationMode.WEB
    source_pdf: Optional[str] = None
    placements: List[OverlayPlacement] = Field(default_factory=list)
    render_width: Optional[float] = None

    reviewer_ids: List[str] = Field(default_factory=list)
    approver_id: str = ""

    @field_validator("placements", mode="before")
    @classmethod
    def _skip_bad_placements(cls, v: Any) -> Any:
        # Stray client records are dropped; the rest of the letter stands
        if not isinstance(v, list):
            return v
        kept = []
        for idx, item in enumerate(v):
            if isinstance(item, OverlayPlacement):
                kept.append(item)
                continue
            try:
                kept.append(OverlayPlacement.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Dropping placement #{idx}: invalid record ({e.error_count()} errors)")
        return kept


class Letter(LetterDraft):
    """Persisted letter with workflow state."""
    letter_id: str
    status: LetterStatus = LetterStatus.PROSES

    maker: Party
    approver: Party
    reviewers: List[ReviewerStep] = Field(default_factory=list)
    current_step: int = 0

    letter_number: Optional[str] = None
    fiscal_year: Optional[str] = None
    revision_note: Optional[str] = None
    rejected_by: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Optimistic concurrency token, bumped by the repository on every save
    version: int = 0

    @property
    def is_approved(self) -> bool:
        return self.status == LetterStatus.APPROVED

    @property
    def review_complete(self) -> bool:
        return self.current_step == len(self.reviewers)

    def approved_reviewer_names(self) -> List[str]:
        return [r.name or r.uid for r in self.reviewers if r.status == StepStatus.APPROVED]


class VerificationSummary(BaseModel):
    """What the public QR verification page shows."""
    letter_id: str
    letter_number: Optional[str] = None
    status: LetterStatus
    subject: str = ""
    destination: str = ""
    unit_code: str = ""
    approver_name: str = ""
    approver_job_title: str = ""
    signed_at: Optional[datetime] = None
    signed_on: str = ""
    body_snippet: str = ""


__all__ = [
    "Attachment",
    "CreationMode",
    "DEFAULT_RENDER_WIDTH",
    "Letter",
    "LetterDraft",
    "LetterStatus",
    "LetterType",
    "OverlayPlacement",
    "PageBox",
    "Party",
    "PdfRect",
    "PlacementKind",
    "Profile",
    "ReviewerStep",
    "StepStatus",
    "VerificationSummary",
    "placement_to_pdf_rect",
    "resolve_render_width",
]
