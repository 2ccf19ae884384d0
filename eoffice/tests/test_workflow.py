"""
Tests for the paraf / approval workflow and letter numbering.

Run with: pytest eoffice/tests/test_workflow.py -v
"""
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import FIXED_NOW
from eoffice.adapters.sqlite import SqliteAdapter
from eoffice.core.errors import NotFoundError, PreconditionError
from eoffice.core.workflow import ApprovalService
from eoffice.models import CreationMode, LetterStatus, StepStatus


def _approve_chain(service, letter):
    for reviewer in letter.reviewers:
        letter = service.paraf(letter.letter_id, reviewer.uid)
    return service.approve(letter.letter_id, letter.approver.uid)


class TestSubmit:
    def test_creates_proses_letter(self, service, draft):
        letter = service.submit(draft(), maker_id="u-maker")
        assert letter.status == LetterStatus.PROSES
        assert letter.current_step == 0
        assert [r.uid for r in letter.reviewers] == ["u-rev1", "u-rev2"]
        assert letter.reviewers[0].name == "Drs. Budi Santoso"
        assert letter.approver.name == "Dr. Ahmad Fauzi M.Pd."
        assert letter.approver.job_title == "Kepala Sekolah"
        assert letter.maker.job_title == "Staf TU"
        assert letter.version == 1

    def test_subject_required(self, service, draft):
        with pytest.raises(PreconditionError) as exc:
            service.submit(draft(subject="   "), maker_id="u-maker")
        assert exc.value.code == "SUBJECT_REQUIRED"

    def test_upload_requires_source(self, service, draft):
        with pytest.raises(PreconditionError) as exc:
            service.submit(draft(creation_mode=CreationMode.UPLOAD), maker_id="u-maker")
        assert exc.value.code == "SOURCE_PDF_REQUIRED"

    def test_unknown_reviewer(self, service, draft):
        with pytest.raises(NotFoundError) as exc:
            service.submit(draft(reviewer_ids=["u-ghost"]), maker_id="u-maker")
        assert exc.value.code == "USER_NOT_FOUND"

    def test_unknown_approver(self, service, draft):
        with pytest.raises(NotFoundError):
            service.submit(draft(approver_id=""), maker_id="u-maker")


class TestParaf:
    def test_turn_enforced_without_mutation(self, service, storage, draft):
        letter = service.submit(draft(), maker_id="u-maker")

        with pytest.raises(PreconditionError) as exc:
            service.paraf(letter.letter_id, "u-rev2")
        assert exc.value.code == "NOT_REVIEWER_TURN"

        stored = storage.get_letter(letter.letter_id)
        assert stored.current_step == 0
        assert stored.version == letter.version
        assert all(r.status == StepStatus.PENDING for r in stored.reviewers)

    def test_in_order(self, service, draft):
        letter = service.submit(draft(), maker_id="u-maker")
        letter = service.paraf(letter.letter_id, "u-rev1")
        assert letter.current_step == 1
        assert letter.reviewers[0].status == StepStatus.APPROVED
        assert letter.reviewers[0].approved_at is not None

        letter = service.paraf(letter.letter_id, "u-rev2")
        assert letter.current_step == 2
        assert letter.review_complete

    def test_no_turn_left(self, service, draft):
        letter = service.submit(draft(reviewer_ids=["u-rev1"]), maker_id="u-maker")
        service.paraf(letter.letter_id, "u-rev1")
        with pytest.raises(PreconditionError) as exc:
            service.paraf(letter.letter_id, "u-rev1")
        assert exc.value.code == "NOT_REVIEWER_TURN"

    def test_not_in_review(self, service, draft):
        letter = service.submit(draft(), maker_id="u-maker")
        service.reject(letter.letter_id, "u-rev1", "Perbaiki lampiran")
        with pytest.raises(PreconditionError) as exc:
            service.paraf(letter.letter_id, "u-rev1")
        assert exc.value.code == "LETTER_NOT_IN_REVIEW"


class TestApprove:
    def test_numbers_and_postconditions(self, service, draft):
        letter = service.submit(draft(), maker_id="u-maker")
        approved = _approve_chain(service, letter)

        assert approved.status == LetterStatus.APPROVED
        assert approved.letter_number == "001/SK/KB/MIJ/XI/2025"
        assert approved.fiscal_year == "2025/2026"
        assert approved.approver.status == StepStatus.APPROVED
        assert approved.approver.signed_at == FIXED_NOW
        assert approved.revision_note is None

        second = _approve_chain(service, service.submit(draft(), maker_id="u-maker"))
        assert second.letter_number == "002/SK/KB/MIJ/XI/2025"

    def test_root_unit_and_separate_bucket(self, service, draft):
        letter = _approve_chain(service, service.submit(draft(unit_code="MIJ"), maker_id="u-maker"))
        assert letter.letter_number == "001/SK/MIJ/XI/2025"

    def test_activity_code_type(self, service, draft):
        letter = service.submit(draft(letter_type="UND", activity_code="PHBI"), maker_id="u-maker")
        assert _approve_chain(service, letter).letter_number == "001/UND/Pan.PHBI/KB/MIJ/XI/2025"

    def test_manual_format(self, service, draft):
        letter = service.submit(
            draft(letter_type="manual", manual_format_code="ST.KEP", reviewer_ids=[]), maker_id="u-maker"
        )
        assert service.approve(letter.letter_id, "u-head").letter_number == "001/ST.KEP/KB/MIJ/XI/2025"

    def test_chain_incomplete(self, service, storage, draft):
        letter = service.submit(draft(), maker_id="u-maker")
        service.paraf(letter.letter_id, "u-rev1")
        with pytest.raises(PreconditionError) as exc:
            service.approve(letter.letter_id, "u-head")
        assert exc.value.code == "REVIEW_CHAIN_INCOMPLETE"
        assert storage.peek_value("count_KB_SK_2025-2026") == 0

    def test_wrong_approver(self, service, draft):
        letter = service.submit(draft(reviewer_ids=[]), maker_id="u-maker")
        with pytest.raises(PreconditionError) as exc:
            service.approve(letter.letter_id, "u-rev1")
        assert exc.value.code == "NOT_APPROVER"

    def test_already_approved(self, service, draft):
        letter = _approve_chain(service, service.submit(draft(), maker_id="u-maker"))
        with pytest.raises(PreconditionError) as exc:
            service.approve(letter.letter_id, "u-head")
        assert exc.value.code == "LETTER_ALREADY_APPROVED"

    def test_unknown_letter_type(self, service, storage, draft):
        letter = service.submit(draft(letter_type="XX", reviewer_ids=[]), maker_id="u-maker")
        with pytest.raises(NotFoundError) as exc:
            service.approve(letter.letter_id, "u-head")
        assert exc.value.code == "LETTER_TYPE_NOT_FOUND"
        assert storage.get_letter(letter.letter_id).status == LetterStatus.PROSES

    def test_counter_crash_reverts_claim(self, service, storage, draft, monkeypatch):
        letter = service.submit(draft(reviewer_ids=[]), maker_id="u-maker")

        def broken_counter(self, key):
            raise RuntimeError("disk I/O error")

        with monkeypatch.context() as m:
            m.setattr(SqliteAdapter, "next_value", broken_counter)
            with pytest.raises(RuntimeError):
                service.approve(letter.letter_id, "u-head")

        stored = storage.get_letter(letter.letter_id)
        assert stored.status == LetterStatus.PROSES
        assert stored.letter_number is None
        assert stored.fiscal_year is None
        assert stored.approver.status == StepStatus.PENDING

        # Once the counter works again the letter can still be approved
        assert service.approve(letter.letter_id, "u-head").letter_number == "001/SK/KB/MIJ/XI/2025"


class TestRejectAndResubmit:
    def test_reject_keeps_progress(self, service, draft):
        letter = service.submit(draft(), maker_id="u-maker")
        service.paraf(letter.letter_id, "u-rev1")
        rejected = service.reject(letter.letter_id, "u-head", "Tanggal salah")

        assert rejected.status == LetterStatus.REVISION
        assert rejected.revision_note == "Tanggal salah"
        assert rejected.rejected_by == "u-head"
        assert rejected.current_step == 1
        assert rejected.letter_number is None

    def test_outsider_cannot_reject(self, service, draft):
        letter = service.submit(draft(), maker_id="u-maker")
        with pytest.raises(PreconditionError) as exc:
            service.reject(letter.letter_id, "u-outsider", "x")
        assert exc.value.code == "NOT_A_PARTICIPANT"

    def test_resubmission_restarts_chain(self, service, draft):
        letter = service.submit(draft(), maker_id="u-maker")
        service.paraf(letter.letter_id, "u-rev1")
        service.reject(letter.letter_id, "u-rev2", "Perbaiki isi")

        again = service.submit(draft(subject="Pengangkatan Panitia (rev)"), maker_id="u-maker",
                               letter_id=letter.letter_id)
        assert again.status == LetterStatus.PROSES
        assert again.current_step == 0
        assert again.revision_note is None
        assert all(r.status == StepStatus.PENDING for r in again.reviewers)
        assert again.subject.endswith("(rev)")

    def test_approved_letter_cannot_be_edited(self, service, draft):
        letter = _approve_chain(service, service.submit(draft(), maker_id="u-maker"))
        with pytest.raises(PreconditionError) as exc:
            service.submit(draft(), maker_id="u-maker", letter_id=letter.letter_id)
        assert exc.value.code == "LETTER_ALREADY_APPROVED"


class TestVerify:
    def test_summary(self, service, draft):
        letter = _approve_chain(service, service.submit(draft(body="<p>" + "isi " * 100 + "</p>"),
                                                        maker_id="u-maker"))
        summary = service.verify(letter.letter_id)
        assert summary.letter_number == letter.letter_number
        assert summary.destination == "Kepala Yayasan Bapak Hasan"
        assert summary.signed_on.startswith("26 November 2025 M / ")
        assert len(summary.body_snippet) == 153
        assert "<p>" not in summary.body_snippet

    def test_draft_summary_has_no_number(self, service, draft):
        letter = service.submit(draft(), maker_id="u-maker")
        summary = service.verify(letter.letter_id)
        assert summary.letter_number is None
        assert summary.signed_at is None

    @pytest.mark.parametrize("letter_id", ["PREVIEW", "PREVIEW_QR"])
    def test_preview_ids_never_looked_up(self, settings, letter_id):
        class ExplodingStorage:
            def get_letter(self, _):
                raise AssertionError("storage must not be queried")

        with pytest.raises(NotFoundError):
            ApprovalService(ExplodingStorage(), settings=settings).verify(letter_id)

    def test_unknown(self, service):
        with pytest.raises(NotFoundError) as exc:
            service.verify("missing")
        assert exc.value.code == "LETTER_NOT_FOUND"


class TestConcurrency:
    def test_counter_values_unique_and_contiguous(self, storage):
        key = "count_KB_SK_2025-2026"
        with ThreadPoolExecutor(max_workers=8) as pool:
            values = list(pool.map(lambda _: storage.next_value(key), range(40)))
        assert sorted(values) == list(range(1, 41))
        assert storage.peek_value(key) == 40

    def test_concurrent_approvals_get_distinct_numbers(self, service, draft):
        letters = [service.submit(draft(reviewer_ids=[]), maker_id="u-maker") for _ in range(12)]
        with ThreadPoolExecutor(max_workers=6) as pool:
            approved = list(pool.map(lambda l: service.approve(l.letter_id, "u-head"), letters))

        sequences = sorted(int(a.letter_number.split("/")[0]) for a in approved)
        assert sequences == list(range(1, 13))

    def test_double_approval_of_one_letter_consumes_one_number(self, service, storage, draft):
        letter = service.submit(draft(reviewer_ids=[]), maker_id="u-maker")

        def attempt(_):
            try:
                return service.approve(letter.letter_id, "u-head")
            except PreconditionError as e:
                return e.code

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(attempt, range(4)))

        winners = [r for r in results if not isinstance(r, str)]
        assert len(winners) == 1
        assert set(r for r in results if isinstance(r, str)) <= {"LETTER_MODIFIED", "LETTER_ALREADY_APPROVED"}
        assert storage.peek_value("count_KB_SK_2025-2026") == 1

    def test_stale_save_rejected(self, service, storage, draft):
        letter = service.submit(draft(), maker_id="u-maker")
        service.paraf(letter.letter_id, "u-rev1")
        with pytest.raises(PreconditionError) as exc:
            storage.save_letter(letter.model_copy(update={"subject": "stale"}))
        assert exc.value.code == "LETTER_MODIFIED"
