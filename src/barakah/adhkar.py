from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime, timedelta
import json
import logging
from pathlib import Path
from uuid import uuid4

from .config import _default_config_root

logger = logging.getLogger(__name__)

ADHKAR_CATEGORIES = ("morning", "evening", "prayer", "sleep", "general")


@dataclass(slots=True)
class Dhikr:
    dhikr_id: str
    title_en: str
    text_ar: str
    text_en: str
    category: str
    repetitions: int = 1
    title_ar: str | None = None
    transliteration: str | None = None
    published: bool = True

    def to_dict(self) -> dict[str, object]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> "Dhikr":
        return cls(
            dhikr_id=str(payload["dhikr_id"]),
            title_en=str(payload.get("title_en", "")),
            text_ar=str(payload.get("text_ar", "")),
            text_en=str(payload.get("text_en", "")),
            category=str(payload.get("category", "general")),
            repetitions=max(1, int(payload.get("repetitions", 1) or 1)),
            title_ar=payload.get("title_ar") or None,
            transliteration=payload.get("transliteration") or None,
            published=bool(payload.get("published", True)),
        )


DEFAULT_ADHKAR: tuple[Dhikr, ...] = (
    Dhikr(
        dhikr_id="ayat-al-kursi",
        title_en="Ayat al-Kursi",
        title_ar="آية الكرسي",
        text_ar="اللَّهُ لَا إِلَٰهَ إِلَّا هُوَ الْحَيُّ الْقَيُّومُ ۚ لَا تَأْخُذُهُ سِنَةٌ وَلَا نَوْمٌ ۚ لَّهُ مَا فِي السَّمَاوَاتِ وَمَا فِي الْأَرْضِ",
        text_en=(
            "Allah - there is no deity except Him, the Ever-Living, the Sustainer of existence. "
            "Neither drowsiness overtakes Him nor sleep."
        ),
        transliteration="Allahu la ilaha illa Huwa, Al-Hayyul-Qayyum...",
        category="morning",
        repetitions=1,
    ),
    Dhikr(
        dhikr_id="tasbih",
        title_en="Tasbih",
        title_ar="التسبيح",
        text_ar="سُبْحَانَ اللَّهِ",
        text_en="Glory be to Allah",
        transliteration="Subhan Allah",
        category="morning",
        repetitions=33,
    ),
    Dhikr(
        dhikr_id="evening-protection",
        title_en="Evening Protection",
        title_ar="دعاء المساء",
        text_ar="بِسْمِ اللَّهِ الَّذِي لَا يَضُرُّ مَعَ اسْمِهِ شَيْءٌ فِي الْأَرْضِ وَلَا فِي السَّمَاءِ وَهُوَ السَّمِيعُ الْعَلِيمُ",
        text_en=(
            "In the name of Allah with whose name nothing can harm on earth or in heaven, "
            "and He is the All-Hearing, All-Knowing"
        ),
        category="evening",
        repetitions=3,
    ),
)


class AdhkarLibrary:
    """Catalogue of adhkar persisted as JSON, seeded with the built-in set."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or (_default_config_root() / "adhkar.json")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._items: dict[str, Dhikr] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            self._items = {item.dhikr_id: replace(item) for item in DEFAULT_ADHKAR}
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("[ADHKAR] Could not read %s, using built-in adhkar: %s", self.path, exc)
            self._items = {item.dhikr_id: replace(item) for item in DEFAULT_ADHKAR}
            return
        entries = data.get("adhkar") if isinstance(data, Mapping) else None
        if not isinstance(entries, list):
            logger.warning("[ADHKAR] %s has no adhkar list, using built-in adhkar", self.path)
            self._items = {item.dhikr_id: replace(item) for item in DEFAULT_ADHKAR}
            return
        self._items = {}
        for payload in entries:
            if not isinstance(payload, Mapping) or "dhikr_id" not in payload:
                continue
            try:
                item = Dhikr.from_dict(payload)
            except (TypeError, ValueError) as exc:
                logger.warning("[ADHKAR] Skipping invalid entry %r: %s", payload.get("dhikr_id"), exc)
                continue
            self._items[item.dhikr_id] = item

    def save(self) -> None:
        serialised = {"adhkar": [item.to_dict() for item in self._items.values()]}
        self.path.write_text(json.dumps(serialised, indent=2, ensure_ascii=False), encoding="utf-8")

    def all(self) -> list[Dhikr]:
        return [item for item in self._items.values() if item.published]

    def by_category(self, category: str) -> list[Dhikr]:
        return [item for item in self.all() if item.category == category]

    def get(self, dhikr_id: str) -> Dhikr:
        item = self._items.get(dhikr_id)
        if item is None:
            raise KeyError(f"Dhikr '{dhikr_id}' not found")
        return item

    def add(
        self,
        *,
        title_en: str,
        text_ar: str,
        text_en: str,
        category: str,
        repetitions: int = 1,
        **extra: object,
    ) -> Dhikr:
        if category not in ADHKAR_CATEGORIES:
            raise ValueError(f"Unknown adhkar category '{category}'")
        item = Dhikr(
            dhikr_id=uuid4().hex,
            title_en=title_en,
            text_ar=text_ar,
            text_en=text_en,
            category=category,
            repetitions=max(1, repetitions),
            **extra,
        )
        self._items[item.dhikr_id] = item
        self.save()
        return item

    def update(self, dhikr_id: str, **changes: object) -> Dhikr:
        changes.pop("dhikr_id", None)
        category = changes.get("category")
        if category is not None and category not in ADHKAR_CATEGORIES:
            raise ValueError(f"Unknown adhkar category '{category}'")
        item = replace(self.get(dhikr_id), **changes)
        self._items[dhikr_id] = item
        self.save()
        return item

    def remove(self, dhikr_id: str) -> bool:
        removed = self._items.pop(dhikr_id, None) is not None
        if removed:
            self.save()
        return removed


@dataclass(slots=True)
class DhikrProgress:
    count: int = 0
    completed: bool = False
    completed_at: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"count": self.count, "completed": self.completed}
        if self.completed_at is not None:
            payload["completed_at"] = self.completed_at.isoformat()
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> "DhikrProgress":
        try:
            count = int(payload.get("count", 0))
        except (TypeError, ValueError):
            count = 0
        raw_completed_at = payload.get("completed_at")
        completed_at: datetime | None = None
        if isinstance(raw_completed_at, str) and raw_completed_at:
            try:
                completed_at = datetime.fromisoformat(raw_completed_at)
            except ValueError:
                completed_at = None
        return cls(count=max(0, count), completed=bool(payload.get("completed", False)), completed_at=completed_at)


@dataclass(slots=True)
class DhikrStatus:
    dhikr: Dhikr
    count: int
    completed: bool


@dataclass(slots=True)
class DaySummary:
    day: date
    items: list[DhikrStatus] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return sum(1 for item in self.items if item.completed)

    @property
    def total(self) -> int:
        return len(self.items)


class AdhkarProgressStore:
    """Persists per-day repetition counts under the user's config directory."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or (_default_config_root() / "adhkar_progress.json")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._records: dict[str, dict[str, DhikrProgress]] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            self._records.clear()
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("[ADHKAR] Ignoring unreadable progress file %s: %s", self.path, exc)
            self._records.clear()
            return
        days_payload = data.get("days", {}) if isinstance(data, Mapping) else {}
        self._records = {
            day_key: {
                dhikr_id: DhikrProgress.from_dict(payload)
                for dhikr_id, payload in entries.items()
                if isinstance(dhikr_id, str) and isinstance(payload, Mapping)
            }
            for day_key, entries in days_payload.items()
            if isinstance(day_key, str) and isinstance(entries, Mapping)
        }

    def save(self) -> None:
        serialised = {
            "days": {
                day_key: {dhikr_id: progress.to_dict() for dhikr_id, progress in entries.items()}
                for day_key, entries in self._records.items()
            }
        }
        self.path.write_text(json.dumps(serialised, indent=2, sort_keys=True), encoding="utf-8")

    def progress(self, day: date, dhikr_id: str) -> DhikrProgress:
        current = self._records.get(day.isoformat(), {}).get(dhikr_id)
        if current is None:
            return DhikrProgress()
        return replace(current)

    def count(self, day: date, dhikr_id: str) -> int:
        return self.progress(day, dhikr_id).count

    def is_completed(self, day: date, dhikr_id: str) -> bool:
        return self.progress(day, dhikr_id).completed

    def increment(self, day: date, dhikr: Dhikr, step: int = 1) -> DhikrProgress:
        if step <= 0:
            return self.progress(day, dhikr.dhikr_id)
        entries = self._records.setdefault(day.isoformat(), {})
        progress = entries.setdefault(dhikr.dhikr_id, DhikrProgress())
        new_total = min(progress.count + step, dhikr.repetitions)
        if new_total == progress.count:
            return replace(progress)
        progress.count = new_total
        if new_total >= dhikr.repetitions and not progress.completed:
            progress.completed = True
            progress.completed_at = datetime.now()
            logger.info("[ADHKAR] Completed %s for %s", dhikr.dhikr_id, day.isoformat())
        self.save()
        return replace(progress)

    def reset(self, day: date, dhikr_id: str) -> None:
        entries = self._records.get(day.isoformat())
        if not entries or entries.pop(dhikr_id, None) is None:
            return
        if not entries:
            self._records.pop(day.isoformat(), None)
        self.save()

    def day_summary(self, day: date, adhkar: Iterable[Dhikr]) -> DaySummary:
        summary = DaySummary(day=day)
        for dhikr in adhkar:
            progress = self.progress(day, dhikr.dhikr_id)
            summary.items.append(DhikrStatus(dhikr=dhikr, count=progress.count, completed=progress.completed))
        return summary

    def prune(self, keep_days: int, today: date | None = None) -> None:
        cutoff = (today or date.today()) - timedelta(days=max(0, keep_days))
        removed = False
        for day_key in list(self._records.keys()):
            try:
                day_value = date.fromisoformat(day_key)
            except ValueError:
                day_value = None
            if day_value is None or day_value < cutoff:
                self._records.pop(day_key, None)
                removed = True
        if removed:
            self.save()
