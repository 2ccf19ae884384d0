"""
HTTP surface tests (FastAPI TestClient).
"""
import base64
import io

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfReader

from conftest import FIXED_NOW, data_uri, make_pdf
from eoffice.core.workflow import ApprovalService
from eoffice.main import create_app


@pytest.fixture
def client(storage, settings):
    app = create_app(storage=storage, settings=settings)
    app.state.service = ApprovalService(app.state.storage, settings=settings, clock=lambda: FIXED_NOW)
    with TestClient(app) as c:
        yield c


def _submit_body(**overrides):
    body = {
        "maker_id": "u-maker",
        "unit_code": "KB",
        "letter_type": "SK",
        "subject": "Surat Tugas",
        "destination_title": "Guru Kelas",
        "body": "Dengan hormat,\n\nMohon hadir.",
        "reviewer_ids": ["u-rev1"],
        "approver_id": "u-head",
    }
    body.update(overrides)
    return body


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"
        assert "X-Request-ID" in r.headers


class TestLetterFlow:
    def test_submit_paraf_approve_download_verify(self, client):
        r = client.post("/letters", json=_submit_body())
        assert r.status_code == 201, r.text
        letter = r.json()
        letter_id = letter["letter_id"]
        assert letter["status"] == "PROSES"
        assert "source_pdf" not in letter

        # Approver cannot jump the queue
        r = client.post(f"/letters/{letter_id}/approve", json={"approver_id": "u-head"})
        assert r.status_code == 409
        assert r.json()["code"] == "REVIEW_CHAIN_INCOMPLETE"

        r = client.post(f"/letters/{letter_id}/paraf", json={"reviewer_id": "u-rev1"})
        assert r.status_code == 200
        assert r.json()["current_step"] == 1

        r = client.post(f"/letters/{letter_id}/approve", json={"approver_id": "u-head"})
        assert r.status_code == 200
        number = r.json()["letter_number"]
        assert number == "001/SK/KB/MIJ/XI/2025"

        r = client.get(f"/letters/{letter_id}/download")
        assert r.status_code == 200
        assert r.headers["content-type"] == "application/pdf"
        assert r.content[:4] == b"%PDF"

        r = client.get(f"/public/verify/{letter_id}")
        assert r.status_code == 200
        assert r.json()["letter_number"] == number
        assert r.json()["status"] == "APPROVED"

    def test_wrong_reviewer_turn(self, client):
        letter_id = client.post("/letters", json=_submit_body(reviewer_ids=["u-rev1", "u-rev2"])).json()["letter_id"]
        r = client.post(f"/letters/{letter_id}/paraf", json={"reviewer_id": "u-rev2"})
        assert r.status_code == 409
        assert r.json()["code"] == "NOT_REVIEWER_TURN"

    def test_reject(self, client):
        letter_id = client.post("/letters", json=_submit_body()).json()["letter_id"]
        r = client.post(f"/letters/{letter_id}/reject", json={"actor_id": "u-head", "note": "Revisi"})
        assert r.status_code == 200
        assert r.json()["status"] == "REVISION"
        assert r.json()["revision_note"] == "Revisi"


class TestListings:
    def test_list_letters_by_unit(self, client):
        client.post("/letters", json=_submit_body())
        client.post("/letters", json=_submit_body(unit_code="SD"))
        assert len(client.get("/letters").json()) == 2
        only_sd = client.get("/letters", params={"unit_code": "SD"}).json()
        assert [row["unit_code"] for row in only_sd] == ["SD"]

    def test_letter_types(self, client):
        codes = {row["code"]: row for row in client.get("/letter-types").json()}
        assert set(codes) == {"SK", "UND"}
        assert codes["UND"]["requires_activity_code"] is True

        assert client.get("/letter-types/SK").json()["format_code"] == "SK"
        r = client.get("/letter-types/XX")
        assert r.status_code == 404
        assert r.json()["code"] == "LETTER_TYPE_NOT_FOUND"


class TestErrors:
    def test_unknown_letter(self, client):
        r = client.get("/letters/does-not-exist")
        assert r.status_code == 404
        assert r.json()["code"] == "LETTER_NOT_FOUND"

    def test_preview_id_not_verifiable(self, client):
        assert client.get("/public/verify/PREVIEW_QR").status_code == 404

    def test_duplicate_reviewers(self, client):
        r = client.post("/letters", json=_submit_body(reviewer_ids=["u-rev1", "u-rev1"]))
        assert r.status_code == 400

    def test_missing_subject(self, client):
        r = client.post("/letters", json=_submit_body(subject=""))
        assert r.status_code == 409
        assert r.json()["code"] == "SUBJECT_REQUIRED"

    def test_unknown_user(self, client):
        r = client.post("/letters", json=_submit_body(approver_id="u-ghost"))
        assert r.status_code == 404
        assert r.json()["code"] == "USER_NOT_FOUND"

    def test_request_validation(self, client):
        r = client.post("/letters", json={"subject": "no maker"})
        assert r.status_code == 422


class TestPreview:
    def test_preview_pdf_draft(self, client):
        r = client.post("/preview-pdf", json=_submit_body())
        assert r.status_code == 200
        assert r.content[:4] == b"%PDF"

    def test_preview_upload(self, client):
        body = _submit_body(
            creation_mode="upload",
            source_pdf=data_uri(make_pdf()),
            placements=[{"page_index": 0, "kind": "qr", "x": 10, "y": 10, "w": 80, "h": 80}],
        )
        r = client.post("/preview-pdf", json=body)
        assert r.status_code == 200
        assert r.content[:4] == b"%PDF"

    def test_preview_bad_source(self, client):
        body = _submit_body(creation_mode="upload", source_pdf="bm90IGEgcGRm")
        r = client.post("/preview-pdf", json=body)
        assert r.status_code == 500
        assert r.json()["code"].startswith("SOURCE_PDF")

    def test_page_image(self, client):
        r = client.post("/preview/page-image", json={"source_pdf": data_uri(make_pdf())})
        assert r.status_code == 200
        data = r.json()
        assert data["image"].startswith("data:image/png;base64,")
        assert abs(data["width_px"] - 600) <= 1
        png = base64.b64decode(data["image"].split(",", 1)[1])
        assert png[:4] == b"\x89PNG"

    def test_stray_placement_does_not_block_letter(self, client):
        body = _submit_body(
            creation_mode="upload",
            source_pdf=data_uri(make_pdf()),
            reviewer_ids=[],
            render_width=600,
            placements=[
                {"page_index": 0, "kind": "signature", "x": 10, "y": 10},
                {"page_index": 0, "kind": "qr", "x": -5, "y": 10, "w": 80, "h": 80},
                {"page_index": 0, "kind": "number", "x": 10, "y": -3, "w": 200, "h": 30},
            ],
        )
        assert client.post("/preview-pdf", json=body).status_code == 200

        r = client.post("/letters", json=body)
        assert r.status_code == 201, r.text
        letter = r.json()
        assert [p["kind"] for p in letter["placements"]] == ["qr", "number"]

        r = client.post(f"/letters/{letter['letter_id']}/approve", json={"approver_id": "u-head"})
        assert r.status_code == 200
        number = r.json()["letter_number"]

        r = client.get(f"/letters/{letter['letter_id']}/download")
        assert r.status_code == 200
        text = PdfReader(io.BytesIO(r.content)).pages[0].extract_text()
        assert number in text
