from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor, Executor
import json
import logging
import os
from pathlib import Path
from threading import Lock
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx  # type: ignore[import]
from pyIslam.praytimes import Prayer as PyIslamPrayer, PrayerConf  # type: ignore[import]

from ..config import BarakahConfig, LocationSettings, PrayerSettings, _default_cache_root
from ..models import AnchorTimes, DailyPrayerSchedule
from ..prayer_schedule import generate_daily_schedule
from ..timeutils import FormatError

logger = logging.getLogger(__name__)

ALADHAN_BASE_URL = "https://api.aladhan.com/v1"

PRAYER_METHODS = {
    "SHIA_ITHNA_ANSARI": 0,
    "UNIVERSITY_OF_ISLAMIC_SCIENCES_KARACHI": 1,
    "ISLAMIC_SOCIETY_OF_NORTH_AMERICA": 2,
    "MUSLIM_WORLD_LEAGUE": 3,
    "UMM_AL_QURA_MAKKAH": 4,
    "EGYPTIAN_GENERAL_AUTHORITY": 5,
    "INSTITUTE_OF_GEOPHYSICS_TEHRAN": 7,
    "GULF_REGION": 8,
    "KUWAIT": 9,
    "QATAR": 10,
    "MAJLIS_UGAMA_ISLAM_SINGAPORE": 11,
    "UNION_DES_ORGANISATIONS_ISLAMIQUES_DE_FRANCE": 12,
    "DIYANET_TURKEY": 13,
    "SPIRITUAL_ADMINISTRATION_OF_MUSLIMS_RUSSIA": 14,
    "MOONSIGHTING_COMMITTEE_WORLDWIDE": 15,
    "DUBAI": 16,
    "JAKIM_MALAYSIA": 17,
    "TUNISIA": 18,
    "ALGERIA": 19,
    "KEMENAG_INDONESIA": 20,
}

MADHAB_SCHOOLS = {
    "SHAFI": 0,
    "HANAFI": 1,
}

# Al-Adhan method id -> pyIslam fajr/isha angle reference
PYISLAM_METHODS = {
    0: 2,
    1: 1,
    2: 5,
    3: 2,
    4: 4,
    5: 3,
    7: 2,
    8: 4,
    9: 4,
    10: 4,
    11: 7,
    12: 6,
    13: 4,
    14: 8,
    15: 2,
    16: 4,
    17: 7,
    18: 2,
    19: 2,
    20: 7,
}


class UpstreamUnavailable(RuntimeError):
    """The prayer-time source failed or returned unusable data."""


def validate_coordinates(latitude: float, longitude: float) -> bool:
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def validate_method(method: int) -> bool:
    return method in PRAYER_METHODS.values()


def validate_madhab(madhab: int) -> bool:
    return madhab in MADHAB_SCHOOLS.values()


def _humanize(key: str) -> str:
    text = key.replace("_", " ").lower()
    return text[:1].upper() + text[1:]


def method_name(method_id: int) -> str:
    for key, value in PRAYER_METHODS.items():
        if value == method_id:
            return _humanize(key)
    return f"Method {method_id}"


def madhab_name(madhab_id: int) -> str:
    for key, value in MADHAB_SCHOOLS.items():
        if value == madhab_id:
            return _humanize(key)
    return f"School {madhab_id}"


def settings_options() -> dict[str, list[dict[str, object]]]:
    return {
        "methods": [
            {"id": value, "name": _humanize(key), "value": value} for key, value in PRAYER_METHODS.items()
        ],
        "madhabs": [
            {"id": value, "name": _humanize(key), "value": value} for key, value in MADHAB_SCHOOLS.items()
        ],
    }


class PrayerProvider(Protocol):
    name: str

    def fetch(self, day: date, location: LocationSettings, settings: PrayerSettings) -> AnchorTimes:
        ...


class AladhanProvider:
    name = "aladhan"

    def __init__(
        self,
        client: httpx.Client | None = None,
        base_url: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.client = client
        self.base_url = (base_url or os.environ.get("ALADHAN_BASE_URL") or ALADHAN_BASE_URL).rstrip("/")
        self.timeout = timeout

    def fetch(self, day: date, location: LocationSettings, settings: PrayerSettings) -> AnchorTimes:
        url = f"{self.base_url}/timings/{day.strftime('%d-%m-%Y')}"
        params = {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "method": settings.calculation_method,
            "school": settings.madhab,
        }
        headers = {"Accept": "application/json", "User-Agent": "Barakah/1.0"}
        logger.info("[PRAYER] Fetching prayer times from Al-Adhan for %s (%s)", day.isoformat(), location.label)
        try:
            if self.client is not None:
                response = self.client.get(url, params=params, headers=headers, timeout=self.timeout)
            else:
                response = httpx.get(url, params=params, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamUnavailable(f"Al-Adhan request failed: {exc}") from exc
        if not isinstance(payload, dict):
            raise UpstreamUnavailable("Unexpected response from Al-Adhan API")
        if payload.get("code") != 200:
            raise UpstreamUnavailable(f"Al-Adhan API error: {payload.get('status', 'unknown status')}")
        timings = payload.get("data", {}).get("timings", {})
        try:
            return AnchorTimes.from_dict(
                {
                    "fajr": _sanitize_time(timings.get("Fajr", "")),
                    "sunrise": _sanitize_time(timings.get("Sunrise", "")),
                    "dhuhr": _sanitize_time(timings.get("Dhuhr", "")),
                    "asr": _sanitize_time(timings.get("Asr", "")),
                    "maghrib": _sanitize_time(timings.get("Maghrib", "")),
                    "isha": _sanitize_time(timings.get("Isha", "")),
                }
            )
        except FormatError as exc:
            raise UpstreamUnavailable(f"Invalid time format from Al-Adhan API: {exc}") from exc


class PyIslamProvider:
    name = "pyislam"

    def fetch(self, day: date, location: LocationSettings, settings: PrayerSettings) -> AnchorTimes:
        tz = _resolve_timezone(location.timezone)
        summer_time = _is_dst(tz, day)
        # pyIslam adds the summer hour itself, so pass the standard offset
        standard_minutes = _offset_minutes(tz, day) - (60 if summer_time else 0)
        conf = PrayerConf(
            longitude=location.longitude or 0.0,
            latitude=location.latitude or 0.0,
            timezone=standard_minutes / 60,
            angle_ref=PYISLAM_METHODS.get(settings.calculation_method, 2),
            asr_madhab=2 if settings.madhab == MADHAB_SCHOOLS["HANAFI"] else 1,
            enable_summer_time=summer_time,
        )
        try:
            calculator = PyIslamPrayer(conf, datetime(day.year, day.month, day.day))
            return AnchorTimes.from_dict(
                {
                    "fajr": _format_pyislam_time(calculator.fajr_time()),
                    "sunrise": _format_pyislam_time(calculator.sherook_time()),
                    "dhuhr": _format_pyislam_time(calculator.dohr_time()),
                    "asr": _format_pyislam_time(calculator.asr_time()),
                    "maghrib": _format_pyislam_time(calculator.maghreb_time()),
                    "isha": _format_pyislam_time(calculator.ishaa_time()),
                }
            )
        except (ValueError, ArithmeticError) as exc:
            raise UpstreamUnavailable(f"pyIslam could not compute prayer times: {exc}") from exc


class PrayerCache:
    def __init__(self, path: Path, max_days: int) -> None:
        self.path = path
        self.max_days = max(1, max_days)
        self._lock = Lock()
        self._executor: ThreadPoolExecutor | None = ThreadPoolExecutor(max_workers=1)
        self._pending: Future | None = None
        self._cache = self._load()
        with self._lock:
            self._prune_locked()

    def _load(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("[CACHE] Ignoring unreadable prayer cache %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _persist_async(self, snapshot: str) -> None:
        def _write(payload: str) -> None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(payload, encoding="utf-8")

        executor = self._executor
        if executor is None:
            _write(snapshot)
            return
        self._pending = executor.submit(_write, snapshot)

    def _key(self, provider: str, day: date, location: LocationSettings, settings: PrayerSettings) -> str:
        lat = location.latitude or 0.0
        lon = location.longitude or 0.0
        return f"{provider}:{day.isoformat()}:{lat:.3f}:{lon:.3f}:{settings.calculation_method}:{settings.madhab}"

    def _prune_locked(self) -> None:
        buckets: dict[str, list[tuple[date, str]]] = defaultdict(list)
        for key in list(self._cache.keys()):
            parts = key.split(":")
            if len(parts) != 6:
                self._cache.pop(key, None)
                continue
            provider, day_str, lat, lon, method, madhab = parts
            try:
                day_value = date.fromisoformat(day_str)
            except ValueError:
                self._cache.pop(key, None)
                continue
            buckets[f"{provider}:{lat}:{lon}:{method}:{madhab}"].append((day_value, key))
        for entries in buckets.values():
            entries.sort(key=lambda item: item[0], reverse=True)
            for _, key in entries[self.max_days:]:
                self._cache.pop(key, None)

    def get(
        self, provider: str, day: date, location: LocationSettings, settings: PrayerSettings
    ) -> AnchorTimes | None:
        key = self._key(provider, day, location, settings)
        with self._lock:
            entry = self._cache.get(key)
            if not entry:
                return None
            try:
                return AnchorTimes.from_dict(entry["times"])
            except (KeyError, TypeError, FormatError):
                logger.warning("[CACHE] Dropping malformed cache entry %s", key)
                self._cache.pop(key, None)
                return None

    def put(
        self,
        provider: str,
        day: date,
        location: LocationSettings,
        settings: PrayerSettings,
        anchors: AnchorTimes,
    ) -> None:
        key = self._key(provider, day, location, settings)
        record = {
            "day": day.isoformat(),
            "fetched_at": datetime.now(timezone.utc).isoformat(),
            "times": anchors.to_dict(),
        }
        with self._lock:
            self._cache[key] = record
            self._prune_locked()
            snapshot = json.dumps(self._cache, indent=2)
        self._persist_async(snapshot)

    def wait_for_io(self) -> None:
        pending = self._pending
        if pending is not None:
            pending.result()
            self._pending = None

    def close(self) -> None:
        executor = self._executor
        if executor is None:
            return
        self.wait_for_io()
        executor.shutdown(wait=False, cancel_futures=False)
        self._executor = None


class PrayerService:
    """Resolves anchor times for a day and turns them into a prayer schedule."""

    def __init__(
        self,
        config: BarakahConfig,
        cache: PrayerCache | None = None,
        prefetch_executor: Executor | None = None,
        providers: dict[str, PrayerProvider] | None = None,
    ) -> None:
        self.config = config
        cache_days = max(1, self.config.prayer_settings.cache_days)
        self.cache = cache or PrayerCache(_default_cache_root() / "prayer_times.json", cache_days)
        self._prefetch_executor = prefetch_executor or ThreadPoolExecutor(max_workers=1)
        self._prefetch_executor_owned = prefetch_executor is None
        self._prefetch_future: Future | None = None
        self.providers: dict[str, PrayerProvider] = providers or {
            "aladhan": AladhanProvider(),
            "pyislam": PyIslamProvider(),
        }

    @property
    def provider(self) -> PrayerProvider:
        name = self.config.prayer_settings.provider
        provider = self.providers.get(name)
        if provider is None:
            raise UpstreamUnavailable(f"Unknown prayer time provider '{name}'")
        return provider

    def get_anchors(self, day: date) -> AnchorTimes:
        provider = self.provider
        location = self._checked_location()
        settings = self.config.prayer_settings
        cached = self.cache.get(provider.name, day, location, settings)
        if cached:
            logger.debug("[CACHE] Hit for %s on %s", provider.name, day.isoformat())
            return cached
        try:
            anchors = provider.fetch(day, location, settings)
        except UpstreamUnavailable as exc:
            logger.error("[PRAYER] Failed to fetch prayer times for %s: %s", day.isoformat(), exc)
            raise
        self.cache.put(provider.name, day, location, settings, anchors)
        self._ensure_prefetch(provider, location, day)
        return anchors

    def fetch_range(self, start_day: date, days: int = 7) -> list[tuple[date, AnchorTimes]]:
        provider = self.provider
        location = self._checked_location()
        settings = self.config.prayer_settings
        results: list[tuple[date, AnchorTimes]] = []
        for offset in range(max(0, days)):
            target_day = start_day + timedelta(days=offset)
            anchors = provider.fetch(target_day, location, settings)
            self.cache.put(provider.name, target_day, location, settings, anchors)
            results.append((target_day, anchors))
        logger.info("[PRAYER] Stored prayer times for %d day(s) from %s", len(results), start_day.isoformat())
        return results

    def get_daily_schedule(self, day: date, *, strict: bool = False) -> DailyPrayerSchedule:
        return generate_daily_schedule(day, self.get_anchors(day), strict=strict)

    def estimated_anchors(self) -> AnchorTimes:
        return self.config.anchors

    def _checked_location(self) -> LocationSettings:
        location = self.config.location
        settings = self.config.prayer_settings
        if location.latitude is None or location.longitude is None:
            raise UpstreamUnavailable("No coordinates configured for prayer time lookup")
        if not validate_coordinates(location.latitude, location.longitude):
            raise UpstreamUnavailable(
                "Invalid coordinates. Latitude must be -90 to 90, longitude must be -180 to 180"
            )
        if not validate_method(settings.calculation_method):
            raise UpstreamUnavailable(f"Unsupported calculation method {settings.calculation_method}")
        if not validate_madhab(settings.madhab):
            raise UpstreamUnavailable(
                "Invalid madhab. Use 0 for Shafi/Maliki/Hanbali or 1 for Hanafi"
            )
        return location

    def _ensure_prefetch(self, provider: PrayerProvider, location: LocationSettings, start_day: date) -> None:
        settings = self.config.prayer_settings
        horizon = max(1, min(settings.prefetch_days, settings.cache_days))
        to_fetch: list[date] = []
        for offset in range(1, horizon):
            target_day = start_day + timedelta(days=offset)
            if self.cache.get(provider.name, target_day, location, settings):
                continue
            to_fetch.append(target_day)
        if not to_fetch:
            return
        if self._prefetch_future and not self._prefetch_future.done():
            return

        def _prefetch() -> None:
            for target_day in to_fetch:
                try:
                    anchors = provider.fetch(target_day, location, settings)
                except UpstreamUnavailable as exc:
                    logger.warning("[PRAYER] Prefetch stopped at %s: %s", target_day.isoformat(), exc)
                    break
                self.cache.put(provider.name, target_day, location, settings, anchors)

        self._prefetch_future = self._prefetch_executor.submit(_prefetch)

    def close(self) -> None:
        self.cache.close()
        if self._prefetch_executor_owned and isinstance(self._prefetch_executor, ThreadPoolExecutor):
            self._prefetch_executor.shutdown(wait=False, cancel_futures=False)


def _sanitize_time(value: str) -> str:
    # Al-Adhan appends the zone, e.g. "05:22 (+04)"
    return str(value).strip().split(" ", 1)[0]


def _resolve_timezone(tz_name: str | None) -> timezone | ZoneInfo:
    if tz_name:
        try:
            return ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("[PRAYER] Unknown timezone %r, using the local zone", tz_name)
    return datetime.now().astimezone().tzinfo or timezone.utc


def _offset_minutes(tz: timezone | ZoneInfo, day: date) -> int:
    dt = datetime(day.year, day.month, day.day, tzinfo=tz)
    offset = dt.utcoffset() or timedelta()
    return int(offset.total_seconds() // 60)


def _is_dst(tz: timezone | ZoneInfo, day: date) -> bool:
    dt = datetime(day.year, day.month, day.day, tzinfo=tz)
    delta = dt.dst()
    return bool(delta and delta.total_seconds())


def _format_pyislam_time(value: time | datetime | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        value = value.time()
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return str(value).strip()
