from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from . import LetterType, Profile


def _bool_from_record(v: Any) -> bool:
    """
    Convert spreadsheet/Firestore style booleans to Python bool.
    Accepts: TRUE/FALSE, 1/0, yes/no, y/n (case-insensitive).
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    s = str(v).strip().upper()
    return s in ("TRUE", "1", "YES", "Y")


def _first(row: Mapping[str, Any], *keys: str) -> str:
    """First non-empty value among `keys`, stripped; "" when none."""
    for k in keys:
        v = row.get(k)
        if v is None:
            continue
        s = str(v).strip()
        if s:
            return s
    return ""


def profile_from_record(uid: str, row: Optional[Mapping[str, Any]]) -> Profile:
    """
    Normalize a user-directory record into a Profile.

    The directory was seeded from several CSV generations, so the same field
    shows up as snake_case, UPPER_CASE or nested under "profile".
    """
    row = row or {}
    p: Mapping[str, Any] = row.get("profile") if isinstance(row.get("profile"), Mapping) else row

    return Profile(
        uid=str(uid),
        prefix_title=_first(p, "prefix_title", "gelar_depan", "GELAR_DEPAN"),
        name=_first(p, "name", "full_name", "nama", "NAMA"),
        suffix_title=_first(p, "suffix_title", "gelar_belakang", "GELAR_BELAKANG"),
        job_title=_first(p, "job_title", "jabatan_struktural", "JABATAN_STRUKTURAL") or "Staff",
        unit_code=_first(p, "unit_code", "unit_homebase", "UNIT_HOMEBASE"),
    )


def letter_type_from_record(row: Mapping[str, Any]) -> LetterType:
    """
    Normalize a letter-type reference row.

    "requires activity code" was historically expressed either as a flag or as
    the word "kegiatan" in the free-text Keterangan column.
    """
    flag = row.get("requires_activity_code")
    if flag is None:
        flag = row.get("need_activity_code")
    if flag is None:
        flag = row.get("need_activity")

    needs_activity = _bool_from_record(flag)
    if not needs_activity:
        needs_activity = "kegiatan" in str(row.get("Keterangan") or "").lower()

    return LetterType(
        code=_first(row, "code", "id", "Kode Tipe (ID Database)", "Kode Tipe"),
        name=_first(row, "name", "Nama Tipe Surat (Untuk Dropdown)", "Nama Tipe"),
        format_code=_first(row, "format_code", "format", "Format Kode Penomoran"),
        requires_activity_code=needs_activity,
    )


def letter_type_to_record(letter_type: LetterType) -> Dict[str, Any]:
    return letter_type.model_dump()
