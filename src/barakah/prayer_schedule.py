"""Derive the full daily prayer schedule from the six anchor times.

Every day has the same fifteen prayers. Only their clock times depend on
the anchors; the rest of each row is fixed metadata kept in
:data:`PRAYER_TABLE`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from collections.abc import Mapping

from .models import AnchorTimes, DailyPrayerSchedule, InvalidAnchorTime, PrayerCategory, PrayerEvent, PrayerType
from .timeutils import offset_with_day, parse_iso_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PrayerRule:
    name: str
    display_name: str
    type: PrayerType
    category: PrayerCategory
    anchor: str
    offset_minutes: int
    rakats: int
    description: str
    is_optional: bool
    priority: int

    def build(self, anchors: AnchorTimes) -> PrayerEvent:
        clock, day_offset = offset_with_day(getattr(anchors, self.anchor), self.offset_minutes)
        return PrayerEvent(
            name=self.name,
            display_name=self.display_name,
            type=self.type,
            category=self.category,
            time=clock,
            rakats=self.rakats,
            description=self.description,
            is_optional=self.is_optional,
            priority=self.priority,
            day_offset=day_offset,
        )


PRAYER_TABLE: tuple[PrayerRule, ...] = (
    PrayerRule("tahajjud", "Tahajjud", PrayerType.NAFL, PrayerCategory.TAHAJJUD, "fajr", -90, 8,
               "Night prayer - highly recommended voluntary prayer", True, 5),
    PrayerRule("fajr_sunnah", "Fajr Sunnah", PrayerType.SUNNAH, PrayerCategory.BEFORE_FAJR, "fajr", -15, 2,
               "Sunnah prayer before Fajr - highly emphasized", False, 2),
    PrayerRule("fajr_fard", "Fajr", PrayerType.FARD, PrayerCategory.FAJR, "fajr", 0, 2,
               "Dawn prayer - obligatory", False, 1),
    PrayerRule("duha", "Duha", PrayerType.NAFL, PrayerCategory.DUHA, "sunrise", 30, 2,
               "Forenoon prayer - recommended voluntary prayer", True, 6),
    PrayerRule("dhuhr_sunnah_before", "Dhuhr Sunnah (Before)", PrayerType.SUNNAH, PrayerCategory.BEFORE_DHUHR,
               "dhuhr", -15, 4, "Sunnah prayer before Dhuhr", False, 3),
    PrayerRule("dhuhr_fard", "Dhuhr", PrayerType.FARD, PrayerCategory.DHUHR, "dhuhr", 0, 4,
               "Midday prayer - obligatory", False, 1),
    PrayerRule("dhuhr_sunnah_after", "Dhuhr Sunnah (After)", PrayerType.SUNNAH, PrayerCategory.AFTER_DHUHR,
               "dhuhr", 10, 2, "Sunnah prayer after Dhuhr", False, 3),
    PrayerRule("asr_sunnah_before", "Asr Sunnah (Before)", PrayerType.SUNNAH, PrayerCategory.BEFORE_ASR,
               "asr", -15, 4, "Sunnah prayer before Asr - optional", True, 7),
    PrayerRule("asr_fard", "Asr", PrayerType.FARD, PrayerCategory.ASR, "asr", 0, 4,
               "Afternoon prayer - obligatory", False, 1),
    PrayerRule("maghrib_fard", "Maghrib", PrayerType.FARD, PrayerCategory.MAGHRIB, "maghrib", 0, 3,
               "Sunset prayer - obligatory", False, 1),
    PrayerRule("maghrib_sunnah_after", "Maghrib Sunnah", PrayerType.SUNNAH, PrayerCategory.AFTER_MAGHRIB,
               "maghrib", 10, 2, "Sunnah prayer after Maghrib", False, 3),
    PrayerRule("isha_sunnah_before", "Isha Sunnah (Before)", PrayerType.SUNNAH, PrayerCategory.BEFORE_ISHA,
               "isha", -15, 4, "Sunnah prayer before Isha - optional", True, 7),
    PrayerRule("isha_fard", "Isha", PrayerType.FARD, PrayerCategory.ISHA, "isha", 0, 4,
               "Night prayer - obligatory", False, 1),
    PrayerRule("isha_sunnah_after", "Isha Sunnah", PrayerType.SUNNAH, PrayerCategory.AFTER_ISHA,
               "isha", 10, 2, "Sunnah prayer after Isha", False, 3),
    PrayerRule("witr", "Witr", PrayerType.WITR, PrayerCategory.WITR, "isha", 30, 3,
               "Witr prayer - strongly recommended", False, 2),
)

_RULES_BY_NAME = {rule.name: rule for rule in PRAYER_TABLE}


def rule_for(name: str) -> PrayerRule:
    try:
        return _RULES_BY_NAME[name]
    except KeyError:
        raise KeyError(f"Unknown prayer '{name}'") from None


def _coerce_anchors(anchors: AnchorTimes | Mapping[str, object], *, strict: bool) -> AnchorTimes:
    if isinstance(anchors, AnchorTimes):
        resolved = anchors
    elif isinstance(anchors, Mapping):
        resolved = AnchorTimes.from_dict(anchors)
    else:
        raise InvalidAnchorTime("anchors", anchors, "expected a mapping of anchor names to HH:MM times")
    resolved.validate(strict=strict)
    return resolved


def generate_daily_schedule(
    day: date | str,
    anchors: AnchorTimes | Mapping[str, object],
    *,
    strict: bool = False,
) -> DailyPrayerSchedule:
    """Build the ordered fifteen-prayer schedule for ``day``.

    Raises :class:`~barakah.models.InvalidAnchorTime` when an anchor is
    missing or malformed (or, with ``strict``, out of order). Offsets that
    cross midnight keep the wrapped clock time; such events carry a
    non-zero ``day_offset`` and sort by their clock time.
    """
    day_label = parse_iso_date(day).isoformat()
    resolved = _coerce_anchors(anchors, strict=strict)
    prayers = sorted((rule.build(resolved) for rule in PRAYER_TABLE), key=lambda prayer: prayer.time)
    for prayer in prayers:
        if prayer.wrapped:
            logger.warning(
                "[SCHEDULE] %s on %s wrapped past midnight to %s (day offset %+d)",
                prayer.name,
                day_label,
                prayer.time,
                prayer.day_offset,
            )
    return DailyPrayerSchedule(date=day_label, prayers=tuple(prayers), anchors=resolved)
