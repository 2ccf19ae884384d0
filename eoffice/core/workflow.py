# eoffice/core/workflow.py
"""
Letter approval workflow.

    submit ──> PROSES ──paraf (reviewer at current_step)──> PROSES ...
                 │
                 ├── reject (approver or reviewer) ──> REVISION ──submit──> PROSES
                 └── approve (approver, chain complete) ──> APPROVED (numbered)

Every precondition is checked before anything is written. The letter number
is formatted only after the counter increment has committed.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional
from uuid import uuid4

from eoffice.adapters.base import StorageAdapter
from eoffice.core.body_markup import strip_markup
from eoffice.core.dual_calendar import gregorian_long, hijri_long
from eoffice.core.errors import NotFoundError, PreconditionError
from eoffice.core.numbering import (
    MANUAL_TYPE,
    counter_key,
    fiscal_year,
    format_letter_number,
    resolve_format_code,
)
from eoffice.core.wording import PREVIEW_ID, PREVIEW_IDS
from eoffice.models import (
    CreationMode,
    Letter,
    LetterDraft,
    LetterStatus,
    Party,
    Profile,
    ReviewerStep,
    StepStatus,
    VerificationSummary,
)
from eoffice.settings import Settings, get_settings

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 150


class ApprovalService:
    def __init__(
        self,
        storage: StorageAdapter,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.settings = settings or get_settings()
        self._clock = clock or self.settings.local_now

    # ---------- lookups ----------

    def _profile(self, uid: str) -> Profile:
        profile = self.storage.get_profile(uid) if uid else None
        if profile is None:
            raise NotFoundError(f"User '{uid}' not found", code="USER_NOT_FOUND")
        return profile

    def get(self, letter_id: str) -> Letter:
        letter = self.storage.get_letter(letter_id) if letter_id else None
        if letter is None:
            raise NotFoundError(f"Letter '{letter_id}' not found", code="LETTER_NOT_FOUND")
        return letter

    # ---------- submit ----------

    def _validate_draft(self, draft: LetterDraft) -> None:
        if not (draft.subject or "").strip():
            raise PreconditionError("Subject (perihal) is required", code="SUBJECT_REQUIRED")
        if draft.creation_mode == CreationMode.UPLOAD and not draft.source_pdf:
            raise PreconditionError(
                "Upload mode requires a source PDF", code="SOURCE_PDF_REQUIRED"
            )

    def build_letter(self, draft: LetterDraft, *, maker_id: str, letter_id: str = PREVIEW_ID) -> Letter:
        """
        Resolve identities for `draft` into an unsaved PROSES letter.
        Used directly for previews, and by submit before persisting.
        """
        maker = Party.from_profile(self._profile(maker_id))
        approver = Party.from_profile(self._profile(draft.approver_id))
        reviewers: List[ReviewerStep] = []
        for uid in draft.reviewer_ids:
            p = self._profile(uid)
            reviewers.append(ReviewerStep(uid=p.uid, name=p.display_name, job_title=p.job_title))

        return Letter(
            **draft.model_dump(),
            letter_id=letter_id,
            status=LetterStatus.PROSES,
            maker=maker,
            approver=approver,
            reviewers=reviewers,
            current_step=0,
        )

    def submit(self, draft: LetterDraft, *, maker_id: str, letter_id: Optional[str] = None) -> Letter:
        """
        Create a letter, or resubmit an existing one (after REVISION or while
        still PROSES). Resubmission restarts the reviewer chain and clears
        the revision note.
        """
        self._validate_draft(draft)

        existing: Optional[Letter] = None
        if letter_id:
            existing = self.get(letter_id)
            if existing.is_approved:
                raise PreconditionError(
                    f"Letter {letter_id} is already approved and cannot be edited",
                    code="LETTER_ALREADY_APPROVED",
                )
            if existing.maker.uid != maker_id:
                raise PreconditionError(
                    f"User '{maker_id}' is not the maker of letter {letter_id}",
                    code="NOT_A_PARTICIPANT",
                )

        letter = self.build_letter(draft, maker_id=maker_id, letter_id=letter_id or str(uuid4()))

        if existing is None:
            saved = self.storage.create_letter(letter.model_copy(update={"created_at": self._clock()}))
            logger.info(f"Letter {saved.letter_id} submitted by {maker_id} ({len(saved.reviewers)} reviewers)")
            return saved

        letter = letter.model_copy(update={"version": existing.version, "created_at": existing.created_at})
        saved = self.storage.save_letter(letter)
        logger.info(f"Letter {saved.letter_id} resubmitted by {maker_id}; review chain restarted")
        return saved

    # ---------- paraf ----------

    def paraf(self, letter_id: str, reviewer_id: str) -> Letter:
        letter = self.get(letter_id)
        if letter.status != LetterStatus.PROSES:
            raise PreconditionError(
                f"Letter {letter_id} is {letter.status.value}, not in review",
                code="LETTER_NOT_IN_REVIEW",
            )

        step = letter.current_step
        if step >= len(letter.reviewers) or letter.reviewers[step].uid != reviewer_id:
            expected = letter.reviewers[step].uid if step < len(letter.reviewers) else None
            raise PreconditionError(
                f"It is not reviewer '{reviewer_id}''s turn (expected: {expected or 'none'})",
                code="NOT_REVIEWER_TURN",
            )

        reviewers = [r.model_copy() for r in letter.reviewers]
        reviewers[step] = reviewers[step].model_copy(
            update={"status": StepStatus.APPROVED, "approved_at": self._clock()}
        )
        saved = self.storage.save_letter(
            letter.model_copy(update={"reviewers": reviewers, "current_step": step + 1})
        )
        logger.info(f"Letter {letter_id}: paraf {step + 1}/{len(reviewers)} by {reviewer_id}")
        return saved

    # ---------- approve ----------

    def approve(self, letter_id: str, approver_id: str) -> Letter:
        letter = self.get(letter_id)
        if letter.is_approved:
            raise PreconditionError(f"Letter {letter_id} is already approved", code="LETTER_ALREADY_APPROVED")
        if letter.status != LetterStatus.PROSES:
            raise PreconditionError(
                f"Letter {letter_id} is {letter.status.value}, not in review",
                code="LETTER_NOT_IN_REVIEW",
            )
        if letter.approver.uid != approver_id:
            raise PreconditionError(
                f"User '{approver_id}' is not the approver of letter {letter_id}",
                code="NOT_APPROVER",
            )
        if not letter.review_complete:
            raise PreconditionError(
                f"Review chain incomplete ({letter.current_step}/{len(letter.reviewers)})",
                code="REVIEW_CHAIN_INCOMPLETE",
            )

        letter_type = None
        if (letter.letter_type or "").strip().lower() != MANUAL_TYPE and letter.letter_type:
            letter_type = self.storage.get_letter_type(letter.letter_type)
        fmt = resolve_format_code(
            letter_type_code=letter.letter_type,
            manual_format_code=letter.manual_format_code,
            activity_code=letter.activity_code,
            letter_type=letter_type,
        )

        now = self._clock()
        fiscal = fiscal_year(now)
        key = counter_key(letter.unit_code, fmt.format_code, fiscal)

        # Claim the letter first: a concurrent approval loses the version
        # check here, before any sequence value is consumed.
        approver = letter.approver.model_copy(update={"status": StepStatus.APPROVED, "signed_at": now})
        claimed = self.storage.save_letter(
            letter.model_copy(
                update={
                    "status": LetterStatus.APPROVED,
                    "approver": approver,
                    "revision_note": None,
                    "rejected_by": None,
                    "fiscal_year": fiscal,
                }
            )
        )

        try:
            sequence = self.storage.next_value(key)
        except Exception:
            logger.error(f"Letter {letter_id}: counter {key} failed, reverting approval")
            self.storage.save_letter(
                claimed.model_copy(
                    update={"status": LetterStatus.PROSES, "approver": letter.approver, "fiscal_year": None}
                )
            )
            raise

        number = format_letter_number(
            sequence=sequence,
            format_code=fmt.format_code,
            committee_code=fmt.committee_code,
            unit_code=letter.unit_code,
            root_code=self.settings.root_unit_code,
            month=now.month,
            year=now.year,
        )
        saved = self.storage.save_letter(claimed.model_copy(update={"letter_number": number}))
        logger.info(f"Letter {letter_id} approved by {approver_id}: {number} (counter {key})")
        return saved

    # ---------- reject ----------

    def reject(self, letter_id: str, actor_id: str, note: str = "") -> Letter:
        letter = self.get(letter_id)
        if letter.status != LetterStatus.PROSES:
            raise PreconditionError(
                f"Letter {letter_id} is {letter.status.value}, not in review",
                code="LETTER_NOT_IN_REVIEW",
            )
        participants = {letter.approver.uid} | {r.uid for r in letter.reviewers}
        if actor_id not in participants:
            raise PreconditionError(
                f"User '{actor_id}' is neither approver nor reviewer of letter {letter_id}",
                code="NOT_A_PARTICIPANT",
            )

        saved = self.storage.save_letter(
            letter.model_copy(
                update={
                    "status": LetterStatus.REVISION,
                    "revision_note": (note or "").strip() or None,
                    "rejected_by": actor_id,
                }
            )
        )
        logger.info(f"Letter {letter_id} returned for revision by {actor_id}")
        return saved

    # ---------- public verification ----------

    def verify(self, letter_id: str) -> VerificationSummary:
        """
        Public summary for the QR landing page. Sentinel preview ids are
        rejected without touching storage.
        """
        if not letter_id or letter_id in PREVIEW_IDS:
            raise NotFoundError(f"Letter '{letter_id}' not found", code="LETTER_NOT_FOUND")
        letter = self.get(letter_id)

        signed_at = letter.approver.signed_at if letter.is_approved else None
        signed_on = ""
        if signed_at is not None:
            signed_on = f"{gregorian_long(signed_at)} / {hijri_long(signed_at)}"

        text = strip_markup(letter.body)
        snippet = text[:SNIPPET_LENGTH] + ("..." if len(text) > SNIPPET_LENGTH else "")

        destination = " ".join(p for p in (letter.destination_title, letter.destination_name) if p)
        return VerificationSummary(
            letter_id=letter.letter_id,
            letter_number=letter.letter_number if letter.is_approved else None,
            status=letter.status,
            subject=letter.subject,
            destination=destination,
            unit_code=letter.unit_code,
            approver_name=letter.approver.name,
            approver_job_title=letter.approver.job_title,
            signed_at=signed_at,
            signed_on=signed_on,
            body_snippet=snippet,
        )
