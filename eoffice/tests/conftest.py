"""
Shared fixtures: a throwaway SQLite adapter seeded with users and letter
types, generated letterhead assets, a fixed clock and a PDF factory.
"""
import base64
import io
import os
import tempfile
from datetime import datetime
from zoneinfo import ZoneInfo

# Importing eoffice.main builds a module-level app; keep its database out of the repo
os.environ.setdefault(
    "EOFFICE_DB_URL", "sqlite:///" + os.path.join(tempfile.mkdtemp(prefix="eoffice-"), "app.db")
)

import pytest
from PIL import Image
from reportlab.pdfgen import canvas

from eoffice.adapters.sqlite import SqliteAdapter
from eoffice.core.workflow import ApprovalService
from eoffice.models import LetterDraft
from eoffice.settings import Settings

JAKARTA = ZoneInfo("Asia/Jakarta")
FIXED_NOW = datetime(2025, 11, 26, 9, 30, tzinfo=JAKARTA)

USERS = {
    "u-maker": {"nama": "Siti Aminah", "jabatan_struktural": "Staf TU", "unit_homebase": "KB"},
    "u-rev1": {"GELAR_DEPAN": "Drs.", "NAMA": "Budi Santoso", "JABATAN_STRUKTURAL": "Wakil Kepala"},
    "u-rev2": {"profile": {"full_name": "Rina Wati", "gelar_belakang": "S.Pd."}},
    "u-head": {
        "gelar_depan": "Dr.",
        "full_name": "Ahmad Fauzi",
        "gelar_belakang": "M.Pd.",
        "jabatan_struktural": "Kepala Sekolah",
    },
    "u-outsider": {"nama": "Orang Lain"},
}

LETTER_TYPES = [
    {"code": "SK", "name": "Surat Keputusan", "format_code": "SK"},
    {"Kode Tipe": "UND", "Nama Tipe": "Undangan Kegiatan",
     "Format Kode Penomoran": "UND", "Keterangan": "Untuk kegiatan panitia"},
]


@pytest.fixture
def assets_dir(tmp_path):
    d = tmp_path / "assets"
    d.mkdir()
    Image.new("RGB", (1000, 160), (20, 90, 40)).save(d / "Kop_Surat_Resmi.png")
    Image.new("RGB", (1000, 60), (200, 200, 200)).save(d / "Footer_Surat.png")
    Image.new("RGBA", (120, 120), (0, 100, 0, 255)).save(d / "logo-mij.png")
    return d


@pytest.fixture
def settings(tmp_path, assets_dir):
    return Settings(
        db_url=f"sqlite:///{tmp_path / 'eoffice.db'}",
        public_base_url="https://eoffice.test",
        root_unit_code="MIJ",
        letter_city="Jakarta",
        assets_dir=str(assets_dir),
        counter_max_attempts=50,
        counter_retry_backoff_s=0.001,
    )


@pytest.fixture
def storage(settings):
    adapter = SqliteAdapter.from_url(
        settings.db_url,
        counter_max_attempts=settings.counter_max_attempts,
        counter_retry_backoff_s=settings.counter_retry_backoff_s,
    )
    for uid, record in USERS.items():
        adapter.upsert_user(uid, record)
    for record in LETTER_TYPES:
        adapter.upsert_letter_type(record)
    yield adapter
    adapter.engine.dispose()


@pytest.fixture
def service(storage, settings):
    return ApprovalService(storage, settings=settings, clock=lambda: FIXED_NOW)


@pytest.fixture
def draft():
    def _make(**overrides) -> LetterDraft:
        data = dict(
            unit_code="KB",
            letter_type="SK",
            subject="Pengangkatan Panitia",
            destination_title="Kepala Yayasan",
            destination_name="Bapak Hasan",
            body="Dengan hormat,\n\nBersama surat ini kami sampaikan susunan panitia.",
            cc=["Arsip"],
            reviewer_ids=["u-rev1", "u-rev2"],
            approver_id="u-head",
        )
        data.update(overrides)
        return LetterDraft(**data)
    return _make


def make_pdf(sizes=((595, 842),), label="page") -> bytes:
    """PDF with one page per (width, height), each carrying a short text."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf)
    for idx, (w, h) in enumerate(sizes):
        c.setPageSize((w, h))
        c.setFont("Helvetica", 12)
        c.drawString(40, h - 60, f"{label} {idx + 1}")
        c.showPage()
    c.save()
    return buf.getvalue()


def data_uri(pdf_bytes: bytes) -> str:
    return "data:application/pdf;base64," + base64.b64encode(pdf_bytes).decode("ascii")


@pytest.fixture
def pdf_factory():
    return make_pdf
