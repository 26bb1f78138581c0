from __future__ import annotations

from datetime import date
from pathlib import Path

from barakah.adhkar import AdhkarLibrary, AdhkarProgressStore
from barakah.config import ConfigManager
from barakah.models import AnchorTimes
from barakah.planner import PrayerCompletionStore, TimeBlockStore
from barakah.services.prayer import UpstreamUnavailable
from barakah.tui.app import BarakahApp

DAY = date(2024, 3, 11)
ANCHORS = AnchorTimes.from_dict({
    "fajr": "05:22",
    "sunrise": "06:37",
    "dhuhr": "12:31",
    "asr": "15:49",
    "maghrib": "18:21",
    "isha": "19:35",
})


class StubPrayerService:
    def __init__(self, config, fail: bool = False) -> None:
        self.config = config
        self.fail = fail
        self.closed = False

    def get_daily_schedule(self, day, *, strict=False):
        from barakah.prayer_schedule import generate_daily_schedule

        if self.fail:
            raise UpstreamUnavailable("offline")
        return generate_daily_schedule(day, ANCHORS)

    def estimated_anchors(self):
        return self.config.anchors

    def close(self) -> None:
        self.closed = True


def _app(tmp_path: Path, *, fail: bool = False) -> BarakahApp:
    manager = ConfigManager(tmp_path / "config.toml")
    config = manager.load()
    return BarakahApp(
        config_manager=manager,
        prayer_service=StubPrayerService(config, fail=fail),
        block_store=TimeBlockStore(tmp_path / "blocks.json"),
        adhkar_library=AdhkarLibrary(tmp_path / "adhkar.json"),
        adhkar_progress=AdhkarProgressStore(tmp_path / "progress.json"),
        prayer_log=PrayerCompletionStore(tmp_path / "prayer_log.json"),
        today=DAY,
    )


def test_refresh_builds_schedule_plan_and_adhkar(tmp_path: Path) -> None:
    app = _app(tmp_path)

    app.refresh_plan()

    assert app.schedule is not None and len(app.schedule) == 15
    assert app.estimated is False
    assert app.plan is not None and len(app.plan.items) == 11
    assert app.adhkar_summary is not None and app.adhkar_summary.total == 3


def test_upstream_failure_falls_back_to_estimates(tmp_path: Path) -> None:
    app = _app(tmp_path, fail=True)

    app.refresh_plan()

    assert app.estimated is True
    assert app.last_error == "offline"
    assert app.schedule is not None
    assert app.schedule.anchors == app.config.anchors


def test_day_navigation_and_optional_toggle(tmp_path: Path) -> None:
    app = _app(tmp_path)
    app.refresh_plan()

    app.action_next_day()
    assert app.schedule is not None and app.schedule.date == "2024-03-12"
    app.action_previous_day()
    assert app.current_date == DAY

    app.action_toggle_optional()
    assert app.plan is not None and len(app.plan.items) == 15


def test_copy_template_and_toggle_block_persist(tmp_path: Path) -> None:
    app = _app(tmp_path)
    app.refresh_plan()

    app.action_copy_template()

    assert len(app.block_store.blocks_for(DAY)) == 7
    assert app.plan is not None
    # the copied 04:30 tahajjud block precedes fajr sunnah at 05:07
    first = app.plan.items[0]
    assert first.title == "Tahajjud Prayer & Reflection"
    app.action_toggle_block()
    stored = app.block_store.blocks_for(DAY)[0]
    assert stored.block_id == first.block_id
    assert stored.completed is True


def test_toggling_a_prayer_is_remembered(tmp_path: Path) -> None:
    app = _app(tmp_path)
    app.refresh_plan()
    assert app.plan is not None and app.plan.items[0].prayer_name == "fajr_sunnah"

    app.action_toggle_block()

    assert app.prayer_log.is_completed(DAY, "fajr_sunnah")
    reopened = _app(tmp_path)
    reopened.refresh_plan()
    assert reopened.plan is not None
    assert reopened.plan.items[0].completed is True
    assert reopened._make_status_context().completed == 1


def test_moving_a_block_persists_its_new_start(tmp_path: Path) -> None:
    app = _app(tmp_path)
    app.refresh_plan()
    app.action_copy_template()
    assert app.plan is not None
    block = app.plan.items[0]
    assert block.title == "Tahajjud Prayer & Reflection"

    app.action_move_block(1)

    # placed after the 05:07 fajr sunnah, which lasts 15 minutes
    assert app.plan.items[1] is block
    stored = next(item for item in app.block_store.blocks_for(DAY) if item.block_id == block.block_id)
    assert stored.start == "05:22"
    assert stored.duration == 45


def test_count_dhikr_updates_progress(tmp_path: Path) -> None:
    app = _app(tmp_path)
    app.refresh_plan()

    app.action_count_dhikr()

    assert app.adhkar_progress.is_completed(DAY, "ayat-al-kursi")
    assert app.adhkar_summary is not None and app.adhkar_summary.completed == 1


def test_status_context_includes_hijri_and_qibla(tmp_path: Path) -> None:
    app = _app(tmp_path)
    app.config.location.city = "London"
    app.config.location.latitude = 51.5074
    app.config.location.longitude = -0.1278
    app.refresh_plan()

    context = app._make_status_context()

    assert context.hijri.formatted == "1 Ramadan 1445"
    assert context.location == "London"
    assert context.qibla is not None and round(context.qibla) == 119
    assert context.total == len(app.plan.items)


def test_bindings_cover_navigation() -> None:
    key_to_action = {binding.key: binding.action for binding in BarakahApp.BINDINGS}
    assert key_to_action["n"] == "next_day"
    assert key_to_action["p"] == "previous_day"
    assert key_to_action["o"] == "toggle_optional"
    assert key_to_action["q"] == "quit"
