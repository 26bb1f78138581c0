from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from pathlib import Path
import logging
import tomllib

from .models import ANCHOR_NAMES, AnchorTimes
from .timeutils import FormatError, format_hhmm, parse_hhmm

logger = logging.getLogger(__name__)

DEFAULT_ANCHORS = {
    "fajr": "05:00",
    "sunrise": "06:30",
    "dhuhr": "12:30",
    "asr": "15:30",
    "maghrib": "18:05",
    "isha": "19:45",
}


def _default_config_root() -> Path:
    return Path.home() / ".config" / "barakah"


def _default_cache_root() -> Path:
    return Path.home() / ".cache" / "barakah"


@dataclass(slots=True)
class LocationSettings:
    city: str = ""
    country: str = ""
    latitude: float | None = None
    longitude: float | None = None
    timezone: str | None = None

    @property
    def label(self) -> str:
        return ", ".join(part for part in (self.city, self.country) if part)


@dataclass(slots=True)
class PrayerSettings:
    provider: str = "aladhan"
    calculation_method: int = 2
    madhab: int = 1
    cache_days: int = 90
    prefetch_days: int = 7


@dataclass(slots=True)
class PlannerPreferences:
    day_start: time = field(default_factory=lambda: parse_hhmm("04:00"))
    include_optional: bool = False
    prayer_block_minutes: int = 15
    blocks_template: Path | None = None


@dataclass(slots=True)
class BarakahConfig:
    location: LocationSettings
    prayer_settings: PrayerSettings
    anchors: AnchorTimes
    planner: PlannerPreferences

    @classmethod
    def default(cls) -> "BarakahConfig":
        return cls(
            location=LocationSettings(),
            prayer_settings=PrayerSettings(),
            anchors=AnchorTimes.from_dict(DEFAULT_ANCHORS),
            planner=PlannerPreferences(),
        )

    def to_dict(self) -> dict:
        return {
            "location": {
                "city": self.location.city,
                "country": self.location.country,
                "latitude": self.location.latitude,
                "longitude": self.location.longitude,
                "timezone": self.location.timezone,
            },
            "prayer_settings": {
                "provider": self.prayer_settings.provider,
                "calculation_method": self.prayer_settings.calculation_method,
                "madhab": self.prayer_settings.madhab,
                "cache_days": self.prayer_settings.cache_days,
                "prefetch_days": self.prayer_settings.prefetch_days,
            },
            "anchors": self.anchors.to_dict(),
            "planner": {
                "day_start": format_hhmm(self.planner.day_start),
                "include_optional": self.planner.include_optional,
                "prayer_block_minutes": self.planner.prayer_block_minutes,
                "blocks_template": str(self.planner.blocks_template) if self.planner.blocks_template else "",
            },
        }


class ConfigManager:
    """Simple TOML configuration loader."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_path = config_path or (_default_config_root() / "config.toml")
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self._errors: list[str] = []

    def errors(self) -> list[str]:
        return list(self._errors)

    def load(self) -> BarakahConfig:
        self._errors.clear()
        if not self.config_path.exists():
            config = BarakahConfig.default()
            self._write(config)
            logger.info("[CONFIG] Wrote default configuration to %s", self.config_path)
            return config

        try:
            with self.config_path.open("rb") as handle:
                raw = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            self._error(f"Unreadable config file: {exc}")
            return BarakahConfig.default()

        def _section(name: str) -> dict:
            value = raw.get(name, {})
            if not isinstance(value, dict):
                self._error(f"Section [{name}] must be a table, got {value!r}")
                return {}
            return value

        location_cfg = _section("location")
        settings_cfg = _section("prayer_settings")
        anchors_cfg = _section("anchors")
        planner_cfg = _section("planner")

        def _float_or_none(value: float | str | None) -> float | None:
            if value in (None, "", "nan"):
                return None
            try:
                return float(value)
            except (TypeError, ValueError):
                self._error(f"Invalid coordinate in config: {value!r}")
                return None

        def _int_or_default(section: dict, key: str, default: int) -> int:
            value = section.get(key, default)
            try:
                return int(value)
            except (TypeError, ValueError):
                self._error(f"Invalid {key} in config: {value!r}")
                return default

        try:
            anchors = AnchorTimes.from_dict({**DEFAULT_ANCHORS, **anchors_cfg})
        except FormatError as exc:
            self._error(f"Invalid anchor time in config: {exc}")
            anchors = AnchorTimes.from_dict(DEFAULT_ANCHORS)

        try:
            day_start = parse_hhmm(planner_cfg.get("day_start", "04:00"))
        except FormatError as exc:
            self._error(f"Invalid planner.day_start: {exc}")
            day_start = parse_hhmm("04:00")

        include_optional = planner_cfg.get("include_optional", False)
        if not isinstance(include_optional, bool):
            self._error(f"Invalid planner.include_optional: {include_optional!r} is not true or false")
            include_optional = False

        template_value = planner_cfg.get("blocks_template") or ""
        if not isinstance(template_value, str):
            self._error(f"Invalid planner.blocks_template: {template_value!r}")
            template_value = ""
        return BarakahConfig(
            location=LocationSettings(
                city=location_cfg.get("city", ""),
                country=location_cfg.get("country", ""),
                latitude=_float_or_none(location_cfg.get("latitude")),
                longitude=_float_or_none(location_cfg.get("longitude")),
                timezone=location_cfg.get("timezone") or None,
            ),
            prayer_settings=PrayerSettings(
                provider=settings_cfg.get("provider", "aladhan"),
                calculation_method=_int_or_default(settings_cfg, "calculation_method", 2),
                madhab=_int_or_default(settings_cfg, "madhab", 1),
                cache_days=_int_or_default(settings_cfg, "cache_days", 90),
                prefetch_days=_int_or_default(settings_cfg, "prefetch_days", 7),
            ),
            anchors=anchors,
            planner=PlannerPreferences(
                day_start=day_start,
                include_optional=include_optional,
                prayer_block_minutes=_int_or_default(planner_cfg, "prayer_block_minutes", 15),
                blocks_template=Path(template_value).expanduser() if template_value else None,
            ),
        )

    def _error(self, message: str) -> None:
        logger.warning("[CONFIG] %s", message)
        self._errors.append(message)

    def _write(self, config: BarakahConfig) -> None:
        data = config.to_dict()
        lines = ["[location]"]
        lines.append(f"city = \"{data['location']['city']}\"")
        lines.append(f"country = \"{data['location']['country']}\"")
        if data["location"]["latitude"] is not None:
            lines.append(f"latitude = {data['location']['latitude']}")
        if data["location"]["longitude"] is not None:
            lines.append(f"longitude = {data['location']['longitude']}")
        lines.append(f"timezone = \"{data['location']['timezone'] or ''}\"")
        lines.extend([
            "",
            "[prayer_settings]",
            f"provider = \"{data['prayer_settings']['provider']}\"",
            f"calculation_method = {data['prayer_settings']['calculation_method']}",
            f"madhab = {data['prayer_settings']['madhab']}",
            f"cache_days = {data['prayer_settings']['cache_days']}",
            f"prefetch_days = {data['prayer_settings']['prefetch_days']}",
            "",
            "[anchors]",
        ])
        for name in ANCHOR_NAMES:
            lines.append(f"{name} = \"{data['anchors'][name]}\"")
        lines.extend([
            "",
            "[planner]",
            f"day_start = \"{data['planner']['day_start']}\"",
            f"include_optional = {str(data['planner']['include_optional']).lower()}",
            f"prayer_block_minutes = {data['planner']['prayer_block_minutes']}",
            f"blocks_template = \"{data['planner']['blocks_template']}\"",
        ])
        self.config_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def save(self, config: BarakahConfig) -> None:
        self._write(config)
