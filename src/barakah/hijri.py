"""Arithmetic (tabular) Islamic calendar.

The civil tabular calendar can differ by a day or two from dates fixed by
moon sighting; it is meant for display and planning, not for rulings.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import math
from typing import Literal

ISLAMIC_MONTHS = (
    "Muharram",
    "Safar",
    "Rabi' al-Awwal",
    "Rabi' al-Thani",
    "Jumada al-Awwal",
    "Jumada al-Thani",
    "Rajab",
    "Sha'ban",
    "Ramadan",
    "Shawwal",
    "Dhu al-Qi'dah",
    "Dhu al-Hijjah",
)

RAMADAN = 9

ISLAMIC_HOLIDAYS: tuple[tuple[str, int, int], ...] = (
    ("New Year (Muharram)", 1, 1),
    ("Day of Ashura", 1, 10),
    ("Mawlid an-Nabi", 3, 12),
    ("Laylat al-Mi'raj", 7, 27),
    ("Laylat al-Bara'ah", 8, 15),
    ("Start of Ramadan", 9, 1),
    ("Laylat al-Qadr", 9, 27),
    ("Eid al-Fitr", 10, 1),
    ("Eid al-Adha", 12, 10),
)

_ISLAMIC_EPOCH = 1948439.5
# Julian day of 0001-01-01 minus its proleptic ordinal
_ORDINAL_TO_JD = 1721424.5


@dataclass(frozen=True, slots=True)
class HijriDate:
    day: int
    month: int
    year: int

    @property
    def month_name(self) -> str:
        return ISLAMIC_MONTHS[self.month - 1]

    @property
    def formatted(self) -> str:
        return self.format("long")

    def format(self, style: Literal["long", "short"] = "long") -> str:
        if style == "short":
            return f"{self.day}/{self.month}/{self.year}"
        return f"{self.day} {self.month_name} {self.year}"


@dataclass(frozen=True, slots=True)
class Holiday:
    name: str
    hijri: HijriDate
    gregorian: date


def _hijri_to_jd(year: int, month: int, day: int) -> float:
    return (
        day
        + math.ceil(29.5 * (month - 1))
        + (year - 1) * 354
        + math.floor((3 + 11 * year) / 30)
        + _ISLAMIC_EPOCH
        - 1
    )


def gregorian_to_hijri(value: date) -> HijriDate:
    jd = value.toordinal() + _ORDINAL_TO_JD
    year = math.floor((30 * (jd - _ISLAMIC_EPOCH) + 10646) / 10631)
    month = min(12, math.ceil((jd - (29 + _hijri_to_jd(year, 1, 1))) / 29.5) + 1)
    day = int(jd - _hijri_to_jd(year, month, 1)) + 1
    return HijriDate(day=day, month=month, year=year)


def hijri_to_gregorian(year: int, month: int, day: int) -> date:
    if not 1 <= month <= 12:
        raise ValueError(f"Hijri month out of range: {month}")
    if not 1 <= day <= 30:
        raise ValueError(f"Hijri day out of range: {day}")
    return date.fromordinal(int(_hijri_to_jd(year, month, day) - _ORDINAL_TO_JD))


def is_ramadan(hijri: HijriDate | None = None) -> bool:
    current = hijri or gregorian_to_hijri(date.today())
    return current.month == RAMADAN


def ramadan_progress(hijri: HijriDate | None = None) -> dict[str, int]:
    current = hijri or gregorian_to_hijri(date.today())
    total = 30
    if current.month != RAMADAN:
        return {"day": 0, "total": total, "percentage": 0}
    return {"day": current.day, "total": total, "percentage": round(current.day / total * 100)}


def holidays_for_year(hijri_year: int) -> list[Holiday]:
    return [
        Holiday(
            name=name,
            hijri=HijriDate(day=day, month=month, year=hijri_year),
            gregorian=hijri_to_gregorian(hijri_year, month, day),
        )
        for name, month, day in ISLAMIC_HOLIDAYS
    ]
