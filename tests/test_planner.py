from __future__ import annotations

from datetime import date, datetime
from pathlib import Path

import pytest

from barakah.planner import (
    PrayerCompletionStore,
    TemplateParseError,
    TimeBlock,
    TimeBlockStore,
    build_day_plan,
    default_blocks,
    load_blocks_template,
)
from barakah.prayer_schedule import generate_daily_schedule
from barakah.timeutils import FormatError

DAY = date(2024, 6, 1)
ANCHORS = {
    "fajr": "04:40",
    "sunrise": "06:00",
    "dhuhr": "12:28",
    "asr": "15:54",
    "maghrib": "18:48",
    "isha": "20:18",
}


def test_blocks_template_parses_toml(tmp_path: Path) -> None:
    template = tmp_path / "blocks.toml"
    template.write_text(
        """
        [[blocks]]
        title = "Deep Work"
        start = "08:00"
        duration = "4h"
        category = "work"
        tasks = ["Project Review", "Team Meeting"]

        [[blocks]]
        title = "Family Dinner"
        start = "19:30"
        duration = "45m"
        category = "family"
        """,
        encoding="utf-8",
    )

    blocks = load_blocks_template(template)

    assert [block.title for block in blocks] == ["Deep Work", "Family Dinner"]
    assert blocks[0].duration == 240
    assert [task.title for task in blocks[0].tasks] == ["Project Review", "Team Meeting"]
    assert blocks[1].duration == 45


def test_blocks_template_errors(tmp_path: Path) -> None:
    missing = tmp_path / "missing.toml"
    with pytest.raises(TemplateParseError):
        load_blocks_template(missing)

    no_blocks = tmp_path / "empty.toml"
    no_blocks.write_text("name = 'Empty'\n", encoding="utf-8")
    with pytest.raises(TemplateParseError, match="missing required"):
        load_blocks_template(no_blocks)

    bad_start = tmp_path / "bad.toml"
    bad_start.write_text("[[blocks]]\ntitle = 'Walk'\nstart = '7am'\n", encoding="utf-8")
    with pytest.raises(TemplateParseError, match="Block #1"):
        load_blocks_template(bad_start)


def test_default_blocks_match_builtin_day() -> None:
    blocks = default_blocks()
    assert len(blocks) == 7
    focus = next(block for block in blocks if block.title == "Work/Study Focus")
    assert focus.start == "08:00"
    assert focus.duration == 240
    assert [task.title for task in focus.tasks] == ["Project Review", "Team Meeting"]


def test_store_add_update_remove(tmp_path: Path) -> None:
    store = TimeBlockStore(tmp_path / "blocks.json")
    late = store.add(DAY, TimeBlock("Reading", "21:00", 30))
    early = store.add(DAY, TimeBlock("Walk", "07:00", 20, category="personal"))

    assert [block.title for block in store.blocks_for(DAY)] == ["Walk", "Reading"]
    assert store.blocks_for(date(2024, 6, 2)) == []

    store.update(DAY, late.block_id, start="06:30", completed=True)
    reloaded = TimeBlockStore(tmp_path / "blocks.json")
    assert [block.title for block in reloaded.blocks_for(DAY)] == ["Reading", "Walk"]
    assert reloaded.blocks_for(DAY)[0].completed is True

    assert reloaded.remove(DAY, early.block_id)
    assert not reloaded.remove(DAY, early.block_id)
    with pytest.raises(KeyError):
        reloaded.update(DAY, early.block_id, title="Run")


def test_store_rejects_invalid_blocks(tmp_path: Path) -> None:
    store = TimeBlockStore(tmp_path / "blocks.json")
    with pytest.raises(FormatError):
        store.add(DAY, TimeBlock("Nap", "25:00", 20))
    with pytest.raises(FormatError, match="unknown category"):
        store.add(DAY, TimeBlock("Nap", "14:00", 20, category="leisure"))
    block = store.add(DAY, TimeBlock("Nap", "14:00", 20))
    with pytest.raises(FormatError):
        store.update(DAY, block.block_id, duration=0)


def test_copy_template_to_date_gives_fresh_blocks(tmp_path: Path) -> None:
    store = TimeBlockStore(tmp_path / "blocks.json")
    template = default_blocks()
    template[2].tasks[0].completed = True

    copies = store.copy_template_to_date(DAY, template)

    assert len(store.blocks_for(DAY)) == 7
    assert {block.block_id for block in copies}.isdisjoint({block.block_id for block in template})
    assert all(not task.completed for block in copies for task in block.tasks)


def test_day_plan_merges_prayers_and_blocks() -> None:
    schedule = generate_daily_schedule(DAY, ANCHORS)
    blocks = [TimeBlock("Work", "08:00", 240, category="work")]

    plan = build_day_plan(DAY, schedule, blocks, prayer_minutes=10)

    titles = [item.title for item in plan.items]
    # optional prayers are hidden by default
    assert "Tahajjud" not in titles and "Duha" not in titles
    assert len(plan.items) == 11 + 1
    assert titles.index("Fajr") < titles.index("Work") < titles.index("Dhuhr")
    fajr = plan.items[titles.index("Fajr")]
    assert fajr.start == datetime(2024, 6, 1, 4, 40)
    assert fajr.end == datetime(2024, 6, 1, 4, 50)
    assert [item.order_index for item in plan.items] == list(range(len(plan.items)))

    with_optional = build_day_plan(DAY, schedule, blocks, include_optional=True)
    assert len(with_optional.items) == 15 + 1


def test_day_plan_places_wrapped_tahajjud_before_fajr() -> None:
    schedule = generate_daily_schedule(
        DAY,
        {"fajr": "00:20", "sunrise": "02:00", "dhuhr": "11:30", "asr": "15:00", "maghrib": "20:30", "isha": "22:00"},
    )

    plan = build_day_plan(DAY, schedule, include_optional=True)

    first = plan.items[0]
    assert first.prayer_name == "tahajjud"
    assert first.start == datetime(2024, 5, 31, 22, 50)


def test_day_plan_editing() -> None:
    schedule = generate_daily_schedule(DAY, ANCHORS)
    plan = build_day_plan(DAY, schedule, [TimeBlock("Study", "09:00", 60)])
    study_index = next(i for i, item in enumerate(plan.items) if item.title == "Study")

    plan.move(study_index, 0)
    assert plan.items[0].title == "Study"
    assert plan.items[0].order_index == 0

    moved = plan.reschedule(0, "13:00")
    assert moved.start == datetime(2024, 6, 1, 13, 0)
    assert moved.end == datetime(2024, 6, 1, 14, 0)
    titles = [item.title for item in plan.items]
    assert titles.index("Dhuhr Sunnah (After)") < titles.index("Study") < titles.index("Asr")

    plan.toggle_completed(0)
    assert plan.progress() == {"total": len(plan.items), "completed": 1}
    plan.toggle_completed(0)
    assert plan.progress()["completed"] == 0

    with pytest.raises(IndexError):
        plan.move(99, 0)
    with pytest.raises(FormatError):
        plan.reschedule(0, "1pm")


def test_day_plan_overlaps() -> None:
    schedule = generate_daily_schedule(DAY, ANCHORS)
    plan = build_day_plan(DAY, schedule, [TimeBlock("Lunch", "12:00", 30)], prayer_minutes=10)

    overlapping = {(first.title, second.title) for first, second in plan.overlaps()}

    assert ("Lunch", "Dhuhr Sunnah (Before)") in overlapping
    assert ("Lunch", "Dhuhr") in overlapping
    assert ("Lunch", "Dhuhr Sunnah (After)") not in overlapping


@pytest.mark.parametrize("payload", ["[]", '{"days": []}', '"blocks"', '{"days": {"2024-06-01": {"title": "Walk"}}}'])
def test_store_ignores_malformed_json(tmp_path: Path, payload: str, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / "blocks.json"
    path.write_text(payload, encoding="utf-8")

    with caplog.at_level("WARNING", logger="barakah.planner"):
        store = TimeBlockStore(path)

    assert store.blocks_for(DAY) == []
    assert caplog.records
    store.add(DAY, TimeBlock("Walk", "07:00", 20))
    assert [block.title for block in TimeBlockStore(path).blocks_for(DAY)] == ["Walk"]


def test_store_skips_non_mapping_block_entries(tmp_path: Path) -> None:
    path = tmp_path / "blocks.json"
    path.write_text(
        '{"days": {"2024-06-01": ["Walk", {"title": "Read", "start": "21:00", "duration": 30}]}}',
        encoding="utf-8",
    )

    assert [block.title for block in TimeBlockStore(path).blocks_for(DAY)] == ["Read"]


def test_moving_a_custom_block_retimes_it_next_to_its_neighbour() -> None:
    schedule = generate_daily_schedule(DAY, ANCHORS)
    plan = build_day_plan(DAY, schedule, [TimeBlock("Study", "09:00", 60)])
    titles = [item.title for item in plan.items]
    study_index = titles.index("Study")
    assert titles[study_index + 1] == "Dhuhr Sunnah (Before)"

    moved = plan.move(study_index, study_index + 1)

    # now follows the 12:13 sunnah, which lasts the default 15 minutes
    assert moved.order_index == study_index + 1
    assert moved.start == datetime(2024, 6, 1, 12, 28)
    assert moved.end == datetime(2024, 6, 1, 13, 28)

    moved = plan.move(moved.order_index, 0)
    assert plan.items[1].title == "Fajr Sunnah"
    assert moved.start == datetime(2024, 6, 1, 3, 25)
    assert moved.end == datetime(2024, 6, 1, 4, 25)


def test_moving_a_prayer_keeps_its_time() -> None:
    schedule = generate_daily_schedule(DAY, ANCHORS)
    plan = build_day_plan(DAY, schedule)

    moved = plan.move(1, 4)

    assert moved.title == "Fajr"
    assert plan.items[4] is moved
    assert moved.start == datetime(2024, 6, 1, 4, 40)


def test_moved_block_stays_on_the_plan_date() -> None:
    schedule = generate_daily_schedule(
        DAY,
        {"fajr": "00:20", "sunrise": "02:00", "dhuhr": "11:30", "asr": "15:00", "maghrib": "20:30", "isha": "22:00"},
    )
    plan = build_day_plan(DAY, schedule, [TimeBlock("Sleep", "06:00", 120)], include_optional=True)
    sleep_index = next(i for i, item in enumerate(plan.items) if item.title == "Sleep")

    moved = plan.move(sleep_index, 0)

    # the wrapped tahajjud starts on the previous evening
    assert moved.start == datetime(2024, 6, 1, 0, 0)
    assert moved.end == datetime(2024, 6, 1, 2, 0)


def test_prayer_completion_store_persists_per_day(tmp_path: Path) -> None:
    path = tmp_path / "prayer_log.json"
    store = PrayerCompletionStore(path)

    store.set_completed(DAY, "fajr_fard", True)
    store.set_completed(DAY, "dhuhr_fard", True)
    store.set_completed(DAY, "dhuhr_fard", False)

    reloaded = PrayerCompletionStore(path)
    assert reloaded.completed_for(DAY) == {"fajr_fard"}
    assert reloaded.is_completed(DAY, "fajr_fard")
    assert not reloaded.is_completed(date(2024, 6, 2), "fajr_fard")

    reloaded.set_completed(DAY, "fajr_fard", False)
    assert PrayerCompletionStore(path).completed_for(DAY) == set()


@pytest.mark.parametrize("payload", ["[]", "{not json", '{"days": ["fajr_fard"]}'])
def test_prayer_completion_store_ignores_malformed_files(tmp_path: Path, payload: str) -> None:
    path = tmp_path / "prayer_log.json"
    path.write_text(payload, encoding="utf-8")

    store = PrayerCompletionStore(path)

    assert store.completed_for(DAY) == set()
    store.set_completed(DAY, "asr_fard", True)
    assert PrayerCompletionStore(path).completed_for(DAY) == {"asr_fard"}


def test_day_plan_marks_completed_prayers() -> None:
    schedule = generate_daily_schedule(DAY, ANCHORS)

    plan = build_day_plan(DAY, schedule, completed_prayers={"fajr_fard", "witr"})

    done = {item.prayer_name for item in plan.items if item.completed}
    assert done == {"fajr_fard", "witr"}
    assert plan.progress() == {"total": 11, "completed": 2}
