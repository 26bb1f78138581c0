from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
import json
import logging
from pathlib import Path
import tomllib
from uuid import uuid4

from .config import _default_config_root
from .models import DailyPrayerSchedule
from .timeutils import FormatError, format_hhmm, hhmm_to_minutes, parse_duration, parse_hhmm

logger = logging.getLogger(__name__)

BLOCK_CATEGORIES = ("prayer", "work", "adhkar", "study", "family", "personal")


class TemplateParseError(RuntimeError):
    pass


@dataclass(slots=True)
class BlockTask:
    title: str
    completed: bool = False


@dataclass(slots=True)
class TimeBlock:
    title: str
    start: str
    duration: int
    category: str = "personal"
    description: str = ""
    icon: str | None = None
    tasks: list[BlockTask] = field(default_factory=list)
    completed: bool = False
    block_id: str = field(default_factory=lambda: uuid4().hex)

    def to_dict(self) -> dict[str, object]:
        return {
            "block_id": self.block_id,
            "title": self.title,
            "start": self.start,
            "duration": self.duration,
            "category": self.category,
            "description": self.description,
            "icon": self.icon,
            "tasks": [{"title": task.title, "completed": task.completed} for task in self.tasks],
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> "TimeBlock":
        block = cls(
            block_id=str(payload.get("block_id") or uuid4().hex),
            title=str(payload["title"]),
            start=str(payload["start"]),
            duration=int(payload.get("duration", 30)),
            category=str(payload.get("category", "personal")),
            description=str(payload.get("description", "")),
            icon=payload.get("icon") or None,
            tasks=[
                BlockTask(title=str(task.get("title", "Task")), completed=bool(task.get("completed", False)))
                for task in payload.get("tasks", [])
                if isinstance(task, Mapping)
            ],
            completed=bool(payload.get("completed", False)),
        )
        _validate_block(block)
        return block


def _validate_block(block: TimeBlock) -> None:
    parse_hhmm(block.start)
    if block.category not in BLOCK_CATEGORIES:
        raise FormatError(f"Block '{block.title}' has unknown category '{block.category}'")
    if block.duration <= 0:
        raise FormatError(f"Block '{block.title}' needs a positive duration")


def default_blocks() -> list[TimeBlock]:
    return [
        TimeBlock("Tahajjud Prayer & Reflection", "04:30", 45, "prayer", "Night prayer and Quran recitation", "moon"),
        TimeBlock("Fajr Prayer", "05:23", 30, "prayer", "Dawn prayer with morning adhkar", "sun"),
        TimeBlock(
            "Work/Study Focus",
            "08:00",
            240,
            "work",
            "Productive work with Islamic intentions",
            "briefcase",
            tasks=[BlockTask("Project Review"), BlockTask("Team Meeting")],
        ),
        TimeBlock("Dhuhr Prayer & Break", "12:15", 45, "prayer", "Midday prayer and mindful break", "sun"),
        TimeBlock("Asr Prayer", "15:45", 30, "prayer", "Afternoon prayer and reflection", "sun"),
        TimeBlock("Maghrib Prayer", "19:21", 30, "prayer", "Sunset prayer", "moon"),
        TimeBlock("Isha Prayer", "20:45", 30, "prayer", "Night prayer", "star"),
    ]


def load_blocks_template(path: Path) -> list[TimeBlock]:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise TemplateParseError(f"Cannot read template {path}: {exc}") from exc
    blocks_data = data.get("blocks")
    if not isinstance(blocks_data, list):
        raise TemplateParseError(f"Template {path} missing required [[blocks]] entries")
    blocks: list[TimeBlock] = []
    for index, block_data in enumerate(blocks_data, start=1):
        if "title" not in block_data or "start" not in block_data:
            raise TemplateParseError(f"Block #{index} in {path} needs 'title' and 'start'")
        try:
            duration = parse_duration(str(block_data.get("duration", "30")))
            block = TimeBlock(
                title=block_data["title"],
                start=format_hhmm(parse_hhmm(str(block_data["start"]))),
                duration=int(duration.total_seconds() // 60),
                category=block_data.get("category", "personal"),
                description=block_data.get("description", ""),
                icon=block_data.get("icon"),
                tasks=[BlockTask(title=str(title)) for title in block_data.get("tasks", [])],
            )
            _validate_block(block)
        except (FormatError, ValueError) as exc:
            raise TemplateParseError(f"Block #{index} in {path}: {exc}") from exc
        blocks.append(block)
    return blocks


class TimeBlockStore:
    """Persists the user's per-date time blocks as JSON."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or (_default_config_root() / "time_blocks.json")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._days: dict[str, list[TimeBlock]] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            self._days.clear()
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("[PLANNER] Ignoring unreadable block store %s: %s", self.path, exc)
            self._days.clear()
            return
        days_payload = data.get("days", {}) if isinstance(data, Mapping) else None
        if not isinstance(days_payload, Mapping):
            logger.warning("[PLANNER] Ignoring block store %s without a days table", self.path)
            self._days.clear()
            return
        self._days = {}
        for day_key, entries in days_payload.items():
            if not isinstance(entries, list):
                logger.warning("[PLANNER] Skipping malformed entries for %s", day_key)
                continue
            blocks: list[TimeBlock] = []
            for payload in entries:
                if not isinstance(payload, Mapping):
                    logger.warning("[PLANNER] Skipping invalid block on %s: %r", day_key, payload)
                    continue
                try:
                    blocks.append(TimeBlock.from_dict(payload))
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning("[PLANNER] Skipping invalid block on %s: %s", day_key, exc)
            self._days[day_key] = blocks

    def save(self) -> None:
        serialised = {
            "days": {day_key: [block.to_dict() for block in blocks] for day_key, blocks in self._days.items()}
        }
        self.path.write_text(json.dumps(serialised, indent=2, sort_keys=True), encoding="utf-8")

    def blocks_for(self, day: date) -> list[TimeBlock]:
        blocks = self._days.get(day.isoformat(), [])
        return sorted((replace(block) for block in blocks), key=lambda block: hhmm_to_minutes(block.start))

    def add(self, day: date, block: TimeBlock) -> TimeBlock:
        _validate_block(block)
        self._days.setdefault(day.isoformat(), []).append(block)
        self.save()
        return block

    def update(self, day: date, block_id: str, **changes: object) -> TimeBlock:
        blocks = self._days.get(day.isoformat(), [])
        for index, block in enumerate(blocks):
            if block.block_id != block_id:
                continue
            changes.pop("block_id", None)
            updated = replace(block, **changes)
            _validate_block(updated)
            blocks[index] = updated
            self.save()
            return updated
        raise KeyError(f"Block '{block_id}' not found on {day.isoformat()}")

    def remove(self, day: date, block_id: str) -> bool:
        blocks = self._days.get(day.isoformat(), [])
        remaining = [block for block in blocks if block.block_id != block_id]
        if len(remaining) == len(blocks):
            return False
        self._days[day.isoformat()] = remaining
        self.save()
        return True

    def copy_template_to_date(self, day: date, template: Iterable[TimeBlock]) -> list[TimeBlock]:
        copies = [
            replace(
                block,
                block_id=uuid4().hex,
                completed=False,
                tasks=[BlockTask(title=task.title) for task in block.tasks],
            )
            for block in template
        ]
        self._days.setdefault(day.isoformat(), []).extend(copies)
        self.save()
        logger.info("[PLANNER] Copied %d template block(s) to %s", len(copies), day.isoformat())
        return copies


class PrayerCompletionStore:
    """Remembers which prayers were marked as prayed on each date."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or (_default_config_root() / "prayer_log.json")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._days: dict[str, set[str]] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            self._days.clear()
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("[PLANNER] Ignoring unreadable prayer log %s: %s", self.path, exc)
            self._days.clear()
            return
        days_payload = data.get("days", {}) if isinstance(data, Mapping) else None
        if not isinstance(days_payload, Mapping):
            logger.warning("[PLANNER] Ignoring prayer log %s without a days table", self.path)
            self._days.clear()
            return
        self._days = {
            day_key: {name for name, done in entries.items() if isinstance(name, str) and done is True}
            for day_key, entries in days_payload.items()
            if isinstance(day_key, str) and isinstance(entries, Mapping)
        }

    def save(self) -> None:
        serialised = {
            "days": {day_key: {name: True for name in sorted(names)} for day_key, names in self._days.items() if names}
        }
        self.path.write_text(json.dumps(serialised, indent=2, sort_keys=True), encoding="utf-8")

    def completed_for(self, day: date) -> set[str]:
        return set(self._days.get(day.isoformat(), ()))

    def is_completed(self, day: date, prayer_name: str) -> bool:
        return prayer_name in self._days.get(day.isoformat(), ())

    def set_completed(self, day: date, prayer_name: str, completed: bool) -> None:
        names = self._days.setdefault(day.isoformat(), set())
        if completed == (prayer_name in names):
            return
        if completed:
            names.add(prayer_name)
        else:
            names.discard(prayer_name)
            if not names:
                self._days.pop(day.isoformat(), None)
        self.save()
        logger.info(
            "[PLANNER] Marked %s as %s on %s", prayer_name, "prayed" if completed else "not prayed", day.isoformat()
        )


@dataclass(slots=True)
class PlanBlock:
    title: str
    start: datetime
    end: datetime
    category: str
    block_type: str
    priority: int
    order_index: int = 0
    prayer_name: str | None = None
    block_id: str | None = None
    completed: bool = False

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(slots=True)
class DayPlan:
    generated_for: date
    items: list[PlanBlock] = field(default_factory=list)

    def _renumber(self) -> None:
        for index, item in enumerate(self.items):
            item.order_index = index

    def _sort(self) -> None:
        self.items.sort(key=lambda item: (item.start, item.order_index))
        self._renumber()

    def move(self, index: int, new_index: int) -> PlanBlock:
        """Move the block at ``index`` to ``new_index``.

        Custom blocks are retimed to start where their new predecessor ends
        (or, at the top, to finish as the next block starts), clamped to
        the plan's own date. Prayer times stay fixed; moving a prayer only
        changes the display order.
        """
        if not 0 <= index < len(self.items):
            raise IndexError(f"No plan block at position {index}")
        new_index = max(0, min(new_index, len(self.items) - 1))
        item = self.items.pop(index)
        self.items.insert(new_index, item)
        if item.block_id is not None and new_index != index:
            self._retime(new_index)
        self._renumber()
        return item

    def _retime(self, position: int) -> None:
        item = self.items[position]
        duration = item.duration
        if position > 0:
            start = self.items[position - 1].end
        elif len(self.items) > 1:
            start = self.items[1].start - duration
        else:
            return
        earliest = datetime.combine(self.generated_for, time(0, 0))
        latest = datetime.combine(self.generated_for, time(23, 59))
        item.start = max(earliest, min(start, latest))
        item.end = item.start + duration

    def reschedule(self, index: int, new_start: str) -> PlanBlock:
        if not 0 <= index < len(self.items):
            raise IndexError(f"No plan block at position {index}")
        item = self.items[index]
        duration = item.duration
        item.start = datetime.combine(self.generated_for, parse_hhmm(new_start))
        item.end = item.start + duration
        self._sort()
        return item

    def toggle_completed(self, index: int) -> PlanBlock:
        item = self.items[index]
        item.completed = not item.completed
        return item

    def progress(self) -> dict[str, int]:
        return {"total": len(self.items), "completed": sum(1 for item in self.items if item.completed)}

    def overlaps(self) -> list[tuple[PlanBlock, PlanBlock]]:
        ordered = sorted(self.items, key=lambda item: item.start)
        pairs: list[tuple[PlanBlock, PlanBlock]] = []
        for index, current in enumerate(ordered):
            for following in ordered[index + 1:]:
                if following.start >= current.end:
                    break
                pairs.append((current, following))
        return pairs


def build_day_plan(
    day: date,
    schedule: DailyPrayerSchedule,
    blocks: Iterable[TimeBlock] = (),
    *,
    include_optional: bool = False,
    prayer_minutes: int = 15,
    completed_prayers: Collection[str] = (),
) -> DayPlan:
    plan = DayPlan(generated_for=day)
    prayer_length = timedelta(minutes=max(1, prayer_minutes))
    for prayer in schedule.prayers:
        if prayer.is_optional and not include_optional:
            continue
        # wrapped prayers belong to the neighbouring calendar day
        start = datetime.combine(day, parse_hhmm(prayer.time)) + timedelta(days=prayer.day_offset)
        plan.items.append(
            PlanBlock(
                title=prayer.display_name,
                start=start,
                end=start + prayer_length,
                category="prayer",
                block_type="prayer",
                priority=prayer.priority,
                prayer_name=prayer.name,
                completed=prayer.name in completed_prayers,
            )
        )
    for block in blocks:
        start = datetime.combine(day, parse_hhmm(block.start))
        plan.items.append(
            PlanBlock(
                title=block.title,
                start=start,
                end=start + timedelta(minutes=block.duration),
                category=block.category,
                block_type="custom",
                priority=4,
                block_id=block.block_id,
                completed=block.completed,
            )
        )
    plan._sort()
    return plan
