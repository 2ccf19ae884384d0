# eoffice/core/wording.py
"""Fixed texts printed on letters. Both PDF pathways use the same wording."""

LEGAL_DISCLAIMER = (
    "Dokumen ini telah ditandatangani secara elektronik dan dapat "
    "diverifikasi keasliannya melalui pemindaian QR Code."
)

DRAFT_WATERMARK = "DRAFT — PREVIEW MODE"
DRAFT_SIGNATURE_LABEL = "DRAFT"

PARAF_PREFIX = "Paraf: "

# Sentinel letter ids used for renders of unsaved drafts. A verifier must
# never look these up.
PREVIEW_ID = "PREVIEW"
PREVIEW_QR_ID = "PREVIEW_QR"
PREVIEW_IDS = frozenset({PREVIEW_ID, PREVIEW_QR_ID})

_NUMBER_WORDS = [
    "nol", "satu", "dua", "tiga", "empat", "lima",
    "enam", "tujuh", "delapan", "sembilan", "sepuluh",
]


def attachment_label(count: int) -> str:
    """'-' / '1 (satu) Berkas' / '12 Berkas'."""
    if count <= 0:
        return "-"
    if count < len(_NUMBER_WORDS):
        return f"{count} ({_NUMBER_WORDS[count]}) Berkas"
    return f"{count} Berkas"


def paraf_line(names) -> str:
    names = [n for n in names if n]
    if not names:
        return ""
    return PARAF_PREFIX + ", ".join(names)
