from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging

from textual.app import App, ComposeResult  # type: ignore[import]
from textual.binding import Binding  # type: ignore[import]
from textual.containers import Horizontal, Vertical  # type: ignore[import]
from textual.widgets import DataTable, Footer, Header, Static  # type: ignore[import]

from ..adhkar import AdhkarLibrary, AdhkarProgressStore, DaySummary
from ..config import ConfigManager
from ..hijri import HijriDate, gregorian_to_hijri, is_ramadan, ramadan_progress
from ..models import DailyPrayerSchedule, InvalidAnchorTime
from ..planner import (
    DayPlan,
    PrayerCompletionStore,
    TemplateParseError,
    TimeBlock,
    TimeBlockStore,
    build_day_plan,
    default_blocks,
    load_blocks_template,
)
from ..prayer_schedule import generate_daily_schedule
from ..qibla import qibla_direction
from ..services.prayer import PrayerService, UpstreamUnavailable
from ..timeutils import FormatError, format_duration
from .screens import ErrorScreen, TextEntryScreen

logger = logging.getLogger(__name__)


@dataclass
class PlanContext:
    day: date
    hijri: HijriDate
    location: str
    provider: str
    estimated: bool
    qibla: float | None = None
    completed: int = 0
    total: int = 0


class StatusLine(Static):
    def show(self, context: PlanContext) -> None:
        parts = [
            f"Day: {context.day.isoformat()}",
            context.hijri.formatted,
            f"Location: {context.location or 'Unknown'}",
            f"Provider: {context.provider}",
            f"Done: {context.completed}/{context.total}",
        ]
        if is_ramadan(context.hijri):
            progress = ramadan_progress(context.hijri)
            parts.append(f"Ramadan {progress['day']}/{progress['total']}")
        if context.qibla is not None:
            parts.append(f"Qibla {context.qibla:.0f}°")
        if context.estimated:
            parts.append("[yellow]ESTIMATED TIMES[/yellow]")
        self.update(" • ".join(parts))


class PrayerTable(DataTable):
    BINDINGS = [
        Binding("j", "cursor_down", "Next Prayer", show=False),
        Binding("k", "cursor_up", "Previous Prayer", show=False),
    ]

    def __init__(self) -> None:
        super().__init__(zebra_stripes=True, id="prayer-table")
        self.cursor_type = "row"


class PlanTable(DataTable):
    BINDINGS = [
        Binding("j", "cursor_down", "Next Block", show=False),
        Binding("k", "cursor_up", "Previous Block", show=False),
        Binding("x", "app.toggle_block", "Toggle Done"),
        Binding("J", "app.move_block(1)", "Move Down", show=False),
        Binding("K", "app.move_block(-1)", "Move Up", show=False),
        Binding("s", "app.reschedule_block", "Reschedule"),
    ]

    def __init__(self) -> None:
        super().__init__(zebra_stripes=True, id="plan-table")
        self.cursor_type = "row"


class AdhkarTable(DataTable):
    BINDINGS = [
        Binding("enter", "app.count_dhikr", "Count Dhikr"),
        Binding("space", "app.count_dhikr", "Count Dhikr", show=False),
        Binding("j", "cursor_down", "Next Dhikr", show=False),
        Binding("k", "cursor_up", "Previous Dhikr", show=False),
    ]

    def __init__(self) -> None:
        super().__init__(zebra_stripes=True, id="adhkar-table")
        self.cursor_type = "row"


class BarakahApp(App):
    CSS = """
    Screen {
        background: $surface;
    }

    #main-layout {
        layout: horizontal;
        height: 1fr;
        padding: 1;
    }

    #plan-panel {
        width: 3fr;
        layout: vertical;
        padding-right: 1;
    }

    #side-panel {
        width: 2fr;
        layout: vertical;
        padding-left: 1;
    }

    .panel {
        border: round $accent;
        padding: 1 2;
        background: $boost;
        layout: vertical;
    }

    .panel-title {
        text-style: bold;
        color: $text;
        margin-bottom: 1;
    }

    #plan-table, #prayer-table, #adhkar-table {
        height: 1fr;
    }

    #error-dialog, #text-entry {
        width: 70%;
        height: auto;
        border: thick $error;
        background: $panel;
        padding: 1 2;
    }

    .dialog-title {
        text-style: bold;
    }

    .dialog-help {
        color: $text-muted;
        margin-top: 1;
    }
    """
    TITLE = "Barakah Prayer Planner"

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "refresh", "Reload"),
        Binding("n", "next_day", "Next Day"),
        Binding("p", "previous_day", "Previous Day"),
        Binding("t", "today", "Today"),
        Binding("o", "toggle_optional", "Optional Prayers"),
        Binding("c", "copy_template", "Copy Template"),
        Binding("a", "focus_adhkar", "Adhkar"),
        Binding("f", "focus_plan", "Plan"),
    ]

    def __init__(
        self,
        *,
        config_manager: ConfigManager | None = None,
        prayer_service: PrayerService | None = None,
        block_store: TimeBlockStore | None = None,
        adhkar_library: AdhkarLibrary | None = None,
        adhkar_progress: AdhkarProgressStore | None = None,
        prayer_log: PrayerCompletionStore | None = None,
        today: date | None = None,
    ) -> None:
        super().__init__()
        self.config_manager = config_manager or ConfigManager()
        self.config = self.config_manager.load()
        self.prayer_service = prayer_service or PrayerService(self.config)
        self.block_store = block_store or TimeBlockStore()
        self.adhkar_library = adhkar_library or AdhkarLibrary()
        self.adhkar_progress = adhkar_progress or AdhkarProgressStore()
        self.prayer_log = prayer_log or PrayerCompletionStore()
        self.current_date = today or date.today()
        self.include_optional = self.config.planner.include_optional
        self.schedule: DailyPrayerSchedule | None = None
        self.plan: DayPlan | None = None
        self.adhkar_summary: DaySummary | None = None
        self.estimated = False
        self.last_error: str | None = None
        self.status_line = StatusLine()
        self.prayer_table = PrayerTable()
        self.plan_table = PlanTable()
        self.adhkar_table = AdhkarTable()

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        plan_panel = Vertical(
            Static("Today's Plan", classes="panel-title"),
            self.status_line,
            self.plan_table,
            id="plan-panel",
            classes="panel",
        )
        side_panel = Vertical(
            Vertical(Static("Prayers", classes="panel-title"), self.prayer_table, classes="panel"),
            Vertical(Static("Adhkar", classes="panel-title"), self.adhkar_table, classes="panel"),
            id="side-panel",
        )
        yield Horizontal(plan_panel, side_panel, id="main-layout")
        yield Footer()

    async def on_mount(self) -> None:
        self.prayer_table.add_columns("Time", "Prayer", "Type", "Rakats")
        self.plan_table.add_columns("", "Start", "End", "Block", "Duration")
        self.adhkar_table.add_columns("", "Dhikr", "Category", "Count")
        for error in self.config_manager.errors():
            self._display_error("Configuration problem", error)
        self.refresh_plan()
        self.plan_table.focus()

    def on_unmount(self) -> None:
        self.prayer_service.close()

    def load_schedule(self) -> DailyPrayerSchedule:
        """Schedule for the current day, falling back to configured anchors when offline."""
        try:
            schedule = self.prayer_service.get_daily_schedule(self.current_date)
            self.estimated = False
            self.last_error = None
            return schedule
        except (UpstreamUnavailable, InvalidAnchorTime) as exc:
            logger.warning("[TUI] Using estimated anchors for %s: %s", self.current_date.isoformat(), exc)
            self.estimated = True
            self.last_error = str(exc)
        return generate_daily_schedule(self.current_date, self.prayer_service.estimated_anchors())

    def refresh_plan(self) -> None:
        self.schedule = self.load_schedule()
        blocks = self.block_store.blocks_for(self.current_date)
        self.plan = build_day_plan(
            self.current_date,
            self.schedule,
            blocks,
            include_optional=self.include_optional,
            prayer_minutes=self.config.planner.prayer_block_minutes,
            completed_prayers=self.prayer_log.completed_for(self.current_date),
        )
        self.adhkar_summary = self.adhkar_progress.day_summary(self.current_date, self.adhkar_library.all())
        if self.is_running:
            self._render_tables()
            self.status_line.show(self._make_status_context())
            if self.last_error:
                self._display_error("Prayer times unavailable, showing estimates", self.last_error)

    def _render_tables(self) -> None:
        assert self.schedule is not None and self.plan is not None and self.adhkar_summary is not None
        self.prayer_table.clear()
        for prayer in self.schedule:
            label = prayer.display_name if not prayer.wrapped else f"{prayer.display_name} ({prayer.day_offset:+d}d)"
            self.prayer_table.add_row(prayer.time, label, prayer.type.value, str(prayer.rakats))

        self.plan_table.clear()
        now = datetime.now()
        for item in self.plan.items:
            if item.completed:
                marker = "✓"
            elif item.start <= now < item.end:
                marker = "▶"
            else:
                marker = " "
            self.plan_table.add_row(
                marker,
                item.start.strftime("%H:%M"),
                item.end.strftime("%H:%M"),
                item.title,
                format_duration(item.duration),
            )

        self.adhkar_table.clear()
        for status in self.adhkar_summary.items:
            marker = "✓" if status.completed else " "
            self.adhkar_table.add_row(
                marker,
                status.dhikr.title_en,
                status.dhikr.category,
                f"{status.count}/{status.dhikr.repetitions}",
            )

    def _make_status_context(self) -> PlanContext:
        location = self.config.location
        qibla = None
        if location.latitude is not None and location.longitude is not None:
            qibla = qibla_direction(location.latitude, location.longitude)
        progress = self.plan.progress() if self.plan else {"completed": 0, "total": 0}
        return PlanContext(
            day=self.current_date,
            hijri=gregorian_to_hijri(self.current_date),
            location=location.label,
            provider=self.config.prayer_settings.provider.title(),
            estimated=self.estimated,
            qibla=qibla,
            completed=progress["completed"],
            total=progress["total"],
        )

    def _display_error(self, prefix: str, detail: str) -> None:
        logger.error("[TUI] %s: %s", prefix, detail)
        if self.is_running:
            self.push_screen(ErrorScreen(prefix, detail))
        self.status_line.update(f"[red]{prefix}: {detail}[/red]")

    def _selected_index(self, table: DataTable, size: int) -> int | None:
        row = table.cursor_row if self.is_running else 0
        if row is None or not 0 <= row < size:
            return None
        return row

    def action_refresh(self) -> None:
        self.config = self.config_manager.load()
        self.prayer_service.config = self.config
        self.include_optional = self.config.planner.include_optional
        self.refresh_plan()

    def action_next_day(self) -> None:
        self.current_date += timedelta(days=1)
        self.refresh_plan()

    def action_previous_day(self) -> None:
        self.current_date -= timedelta(days=1)
        self.refresh_plan()

    def action_today(self) -> None:
        self.current_date = date.today()
        self.refresh_plan()

    def action_toggle_optional(self) -> None:
        self.include_optional = not self.include_optional
        self.refresh_plan()

    def action_focus_adhkar(self) -> None:
        self.adhkar_table.focus()

    def action_focus_plan(self) -> None:
        self.plan_table.focus()

    def template_blocks(self) -> list[TimeBlock]:
        path = self.config.planner.blocks_template
        if path is None:
            return default_blocks()
        return load_blocks_template(path)

    def action_copy_template(self) -> None:
        try:
            blocks = self.template_blocks()
        except TemplateParseError as exc:
            self._display_error("Template error", str(exc))
            return
        self.block_store.copy_template_to_date(self.current_date, blocks)
        self.refresh_plan()

    def action_toggle_block(self) -> None:
        if self.plan is None:
            return
        index = self._selected_index(self.plan_table, len(self.plan.items))
        if index is None:
            return
        item = self.plan.toggle_completed(index)
        if item.block_id is not None:
            self.block_store.update(self.current_date, item.block_id, completed=item.completed)
        elif item.prayer_name is not None:
            self.prayer_log.set_completed(self.current_date, item.prayer_name, item.completed)
        if self.is_running:
            self._render_tables()
            self.status_line.show(self._make_status_context())

    def action_move_block(self, delta: int) -> None:
        if self.plan is None:
            return
        index = self._selected_index(self.plan_table, len(self.plan.items))
        if index is None:
            return
        item = self.plan.move(index, index + delta)
        if item.block_id is not None and item.order_index != index:
            self.block_store.update(self.current_date, item.block_id, start=item.start.strftime("%H:%M"))
        if self.is_running:
            self._render_tables()
            self.plan_table.move_cursor(row=item.order_index)

    def action_reschedule_block(self) -> None:
        if self.plan is None:
            return
        index = self._selected_index(self.plan_table, len(self.plan.items))
        if index is None:
            return
        item = self.plan.items[index]
        self.push_screen(
            TextEntryScreen(f"New start for {item.title}", item.start.strftime("%H:%M")),
            lambda value: self.reschedule_block(index, value),
        )

    def reschedule_block(self, index: int, value: str | None) -> None:
        if not value or self.plan is None:
            return
        try:
            item = self.plan.reschedule(index, value.strip())
        except FormatError as exc:
            self._display_error("Invalid start time", str(exc))
            return
        if item.block_id is not None:
            self.block_store.update(self.current_date, item.block_id, start=item.start.strftime("%H:%M"))
        if self.is_running:
            self._render_tables()

    def action_count_dhikr(self) -> None:
        if self.adhkar_summary is None:
            return
        index = self._selected_index(self.adhkar_table, len(self.adhkar_summary.items))
        if index is None:
            return
        dhikr = self.adhkar_summary.items[index].dhikr
        self.adhkar_progress.increment(self.current_date, dhikr)
        self.adhkar_summary = self.adhkar_progress.day_summary(self.current_date, self.adhkar_library.all())
        if self.is_running:
            self._render_tables()
            self.adhkar_table.move_cursor(row=index)
