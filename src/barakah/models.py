from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Mapping

from .timeutils import FormatError, hhmm_to_minutes

ANCHOR_NAMES = ("fajr", "sunrise", "dhuhr", "asr", "maghrib", "isha")


class InvalidAnchorTime(FormatError):
    """An anchor time is missing, malformed or out of chronological order."""

    def __init__(self, anchor: str, value: object, reason: str) -> None:
        super().__init__(f"Invalid anchor '{anchor}' ({value!r}): {reason}")
        self.anchor = anchor
        self.value = value


class PrayerType(str, Enum):
    FARD = "fard"
    SUNNAH = "sunnah"
    NAFL = "nafl"
    WITR = "witr"


class PrayerCategory(str, Enum):
    TAHAJJUD = "tahajjud"
    BEFORE_FAJR = "before_fajr"
    FAJR = "fajr"
    DUHA = "duha"
    BEFORE_DHUHR = "before_dhuhr"
    DHUHR = "dhuhr"
    AFTER_DHUHR = "after_dhuhr"
    BEFORE_ASR = "before_asr"
    ASR = "asr"
    MAGHRIB = "maghrib"
    AFTER_MAGHRIB = "after_maghrib"
    BEFORE_ISHA = "before_isha"
    ISHA = "isha"
    AFTER_ISHA = "after_isha"
    WITR = "witr"


@dataclass(frozen=True, slots=True)
class AnchorTimes:
    """The six externally supplied clock times for one date and location."""

    fajr: str
    sunrise: str
    dhuhr: str
    asr: str
    maghrib: str
    isha: str

    @classmethod
    def from_dict(cls, values: Mapping[str, object]) -> "AnchorTimes":
        collected: dict[str, str] = {}
        for name in ANCHOR_NAMES:
            raw = values.get(name)
            if raw is None or raw == "":
                raise InvalidAnchorTime(name, raw, "missing")
            collected[name] = str(raw).strip()
        anchors = cls(**collected)
        anchors.validate()
        return anchors

    def to_dict(self) -> dict[str, str]:
        return {item.name: getattr(self, item.name) for item in fields(self)}

    def validate(self, *, strict: bool = False) -> None:
        minutes: list[tuple[str, int]] = []
        for name in ANCHOR_NAMES:
            value = getattr(self, name)
            try:
                minutes.append((name, hhmm_to_minutes(value)))
            except FormatError as exc:
                raise InvalidAnchorTime(name, value, str(exc)) from exc
        if not strict:
            return
        for (prev_name, prev), (name, current) in zip(minutes, minutes[1:]):
            if current <= prev:
                raise InvalidAnchorTime(
                    name,
                    getattr(self, name),
                    f"must be later than {prev_name} ({getattr(self, prev_name)})",
                )


@dataclass(frozen=True, slots=True)
class PrayerEvent:
    name: str
    display_name: str
    type: PrayerType
    category: PrayerCategory
    time: str
    rakats: int
    description: str
    is_optional: bool
    priority: int
    day_offset: int = 0

    @property
    def wrapped(self) -> bool:
        return self.day_offset != 0

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "type": self.type.value,
            "category": self.category.value,
            "time": self.time,
            "rakats": self.rakats,
            "description": self.description,
            "is_optional": self.is_optional,
            "priority": self.priority,
            "day_offset": self.day_offset,
        }


@dataclass(frozen=True, slots=True)
class DailyPrayerSchedule:
    date: str
    prayers: tuple[PrayerEvent, ...]
    anchors: AnchorTimes

    def __len__(self) -> int:
        return len(self.prayers)

    def __iter__(self):
        return iter(self.prayers)

    def get(self, name: str) -> PrayerEvent:
        for prayer in self.prayers:
            if prayer.name == name:
                return prayer
        raise KeyError(f"Prayer '{name}' not in schedule for {self.date}")

    def by_type(self, prayer_type: PrayerType) -> list[PrayerEvent]:
        return [prayer for prayer in self.prayers if prayer.type is prayer_type]

    def counts(self) -> dict[str, int]:
        totals = {"total": len(self.prayers)}
        for prayer_type in PrayerType:
            totals[prayer_type.value] = len(self.by_type(prayer_type))
        return totals

    def wrapped_events(self) -> list[PrayerEvent]:
        return [prayer for prayer in self.prayers if prayer.wrapped]

    def is_chronological(self) -> bool:
        return not self.wrapped_events()

    def to_dict(self) -> dict[str, object]:
        return {
            "date": self.date,
            "prayers": [prayer.to_dict() for prayer in self.prayers],
            "anchors": self.anchors.to_dict(),
        }
