# eoffice/core/numbering.py
"""
Letter number composition.

    NNN/<format>[/Pan.<committee>][/<unit>]/<ROOT>/<ROMAN-MONTH>/<YYYY>

The sequence value NNN comes from the counter store (see core.workflow);
everything here is pure.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from eoffice.core.errors import NotFoundError, PreconditionError
from eoffice.models import LetterType

# Shown in the number field of every letter that is not APPROVED yet
DRAFT_NUMBER = "Draft/......../........"

MANUAL_TYPE = "manual"
NO_FORMAT_CODE = "NOCODE"

ROMAN_MONTHS = ["", "I", "II", "III", "IV", "V", "VI", "VII", "VIII", "IX", "X", "XI", "XII"]

# Fiscal year starts in July
FISCAL_START_MONTH = 7

_KEY_UNSAFE = re.compile(r"[^A-Za-z0-9.\-]+")


def to_roman_month(month: int) -> str:
    if 1 <= month <= 12:
        return ROMAN_MONTHS[month]
    return ""


def fiscal_year(when: Union[date, datetime]) -> str:
    """'2025/2026' for any date from July 2025 through June 2026."""
    if when.month >= FISCAL_START_MONTH:
        return f"{when.year}/{when.year + 1}"
    return f"{when.year - 1}/{when.year}"


def sanitize_key_part(value: str) -> str:
    """Make a value safe for use inside a counter key (no slashes etc.)."""
    cleaned = _KEY_UNSAFE.sub("-", (value or "").strip()).strip("-")
    return cleaned or NO_FORMAT_CODE


def counter_key(unit_code: str, format_code: str, fiscal: str) -> str:
    """
    Counter bucket id for (unit, format, fiscal year), e.g.
    count_KB_SK_2025-2026
    """
    return "count_{}_{}_{}".format(
        sanitize_key_part(unit_code),
        sanitize_key_part(format_code),
        sanitize_key_part(fiscal),
    )


@dataclass(frozen=True)
class NumberFormat:
    format_code: str
    committee_code: str = ""


def resolve_format_code(
    *,
    letter_type_code: str,
    manual_format_code: str,
    activity_code: str,
    letter_type: Optional[LetterType],
) -> NumberFormat:
    """
    Pick the format segment of the number.

    - letter_type "manual" (or no type but a manual code): the manual code
    - otherwise the type's format code, plus the committee code when the
      type requires one and the letter carries it
    """
    type_code = (letter_type_code or "").strip()
    manual = (manual_format_code or "").strip()

    if type_code.lower() == MANUAL_TYPE or (not type_code and manual):
        if not manual:
            raise PreconditionError(
                "Manual letter type requires a format code",
                code="FORMAT_CODE_REQUIRED",
            )
        return NumberFormat(format_code=manual)

    if letter_type is None:
        raise NotFoundError(f"Letter type '{type_code}' not found", code="LETTER_TYPE_NOT_FOUND")

    committee = (activity_code or "").strip() if letter_type.requires_activity_code else ""
    return NumberFormat(
        format_code=letter_type.format_code.strip() or NO_FORMAT_CODE,
        committee_code=committee,
    )


def format_letter_number(
    *,
    sequence: int,
    format_code: str,
    unit_code: str,
    root_code: str,
    month: int,
    year: int,
    committee_code: str = "",
) -> str:
    """
    >>> format_letter_number(sequence=3, format_code="SK", unit_code="KB",
    ...                      root_code="MIJ", month=11, year=2025)
    '003/SK/KB/MIJ/XI/2025'
    """
    parts = [f"{sequence:03d}", format_code]
    if committee_code:
        parts.append(f"Pan.{committee_code}")
    if unit_code and unit_code != root_code:
        parts.append(unit_code)
    parts.extend([root_code, to_roman_month(month), str(year)])
    return "/".join(parts)
