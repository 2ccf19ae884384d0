# eoffice/core/dual_calendar.py
"""
Gregorian + Hijri (Umm al-Qura) date parts for the letter header.

Each calendar is split into a date portion and a year portion so the
renderer can left-align "5 Jumadil Akhir" and right-align "1447 H" on the
same row.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Union

from hijridate import Gregorian

GREGORIAN_MONTHS = [
    "Januari", "Februari", "Maret", "April", "Mei", "Juni", "Juli",
    "Agustus", "September", "Oktober", "November", "Desember",
]

HIJRI_MONTHS = [
    "Muharram", "Safar", "Rabi'ul Awal", "Rabi'ul Akhir", "Jumadil Awal",
    "Jumadil Akhir", "Rajab", "Sya'ban", "Ramadhan", "Syawal",
    "Dzulqa'dah", "Dzulhijjah",
]


@dataclass(frozen=True)
class DateParts:
    date_str: str
    year_str: str

    def joined(self) -> str:
        return f"{self.date_str} {self.year_str}"


@dataclass(frozen=True)
class DualDate:
    hijri: DateParts
    gregorian: DateParts


def _month_name(names: list, month: int) -> str:
    # Out-of-range months fall back to the first name
    if 1 <= month <= 12:
        return names[month - 1]
    return names[0]


def _as_date(when: Union[date, datetime]) -> date:
    return when.date() if isinstance(when, datetime) else when


def gregorian_parts(when: Union[date, datetime]) -> DateParts:
    d = _as_date(when)
    return DateParts(
        date_str=f"{d.day} {_month_name(GREGORIAN_MONTHS, d.month)}",
        year_str=f"{d.year} M",
    )


def hijri_parts(when: Union[date, datetime]) -> DateParts:
    """
    Umm al-Qura conversion. Raises ValueError/OverflowError for dates outside
    the supported table (1343-1500 AH).
    """
    d = _as_date(when)
    h = Gregorian(d.year, d.month, d.day).to_hijri()
    return DateParts(
        date_str=f"{h.day} {_month_name(HIJRI_MONTHS, h.month)}",
        year_str=f"{h.year} H",
    )


def dual_date(when: Union[date, datetime]) -> DualDate:
    return DualDate(hijri=hijri_parts(when), gregorian=gregorian_parts(when))


def gregorian_long(when: Union[date, datetime]) -> str:
    """Full Gregorian string, e.g. 26 November 2025 M."""
    return gregorian_parts(when).joined()


def hijri_long(when: Union[date, datetime]) -> str:
    return hijri_parts(when).joined()
