# eoffice/core/pdf_merge.py
"""
Attachment handling shared by both PDF pathways.

Attachments arrive from the client as base64, usually wrapped in a data URI
("data:application/pdf;base64,....") and sometimes inside {"data": ...}.
"""
from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from typing import Any, Iterable, Optional

from pypdf import PdfReader, PdfWriter

logger = logging.getLogger(__name__)

PDF_SIGNATURE = b"%PDF"

_DATA_URI_PREFIX = re.compile(r"^data:[^,]*,", re.IGNORECASE)


def decode_base64_payload(payload: Any) -> Optional[bytes]:
    """
    Turn an attachment/source payload into raw bytes.

    Accepts raw bytes, a {"data": ...} dict, a data-URI string or a bare
    base64 string. Returns None for empty or undecodable input.
    """
    if isinstance(payload, dict):
        payload = payload.get("data")

    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload) or None

    if not isinstance(payload, str):
        return None

    cleaned = _DATA_URI_PREFIX.sub("", payload.strip())
    cleaned = "".join(cleaned.split())
    if not cleaned:
        return None

    try:
        return base64.b64decode(cleaned, validate=True) or None
    except (binascii.Error, ValueError):
        return None


def looks_like_pdf(data: Optional[bytes]) -> bool:
    return bool(data) and data[:4] == PDF_SIGNATURE


def append_attachments(writer: PdfWriter, attachments: Iterable[Any]) -> int:
    """
    Append every page of every valid attachment to `writer`, in order.

    Bad attachments (undecodable, not a PDF, broken structure) are logged and
    skipped; they never abort the document. Returns the number of
    attachments actually appended.
    """
    appended = 0
    for idx, att in enumerate(attachments or []):
        data = decode_base64_payload(att)
        if not looks_like_pdf(data):
            logger.warning(f"Skipping attachment #{idx}: not a decodable PDF")
            continue
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = list(reader.pages)
        except Exception as e:
            logger.warning(f"Skipping attachment #{idx}: {e}")
            continue

        for page in pages:
            writer.add_page(page)
        appended += 1

    return appended


def merge_attachments(base_pdf: bytes, attachments: Iterable[Any]) -> bytes:
    """
    Return `base_pdf` with all valid attachments appended as trailing pages:
    [base 1..K][A 1..N][B 1..N]...
    """
    attachments = list(attachments or [])
    if not attachments:
        return base_pdf

    writer = PdfWriter()
    for page in PdfReader(io.BytesIO(base_pdf)).pages:
        writer.add_page(page)

    append_attachments(writer, attachments)
    return write_pdf(writer)


def write_pdf(writer: PdfWriter) -> bytes:
    out = io.BytesIO()
    writer.write(out)
    return out.getvalue()
