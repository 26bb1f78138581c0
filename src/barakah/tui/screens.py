from __future__ import annotations

from datetime import datetime

from textual.app import ComposeResult  # type: ignore[import]
from textual.binding import Binding  # type: ignore[import]
from textual.containers import Vertical  # type: ignore[import]
from textual.screen import ModalScreen  # type: ignore[import]
from textual.widgets import Input, Static  # type: ignore[import]

from ..config import _default_cache_root


class TextEntryScreen(ModalScreen[str | None]):
    """Simple modal that asks the user for a text value; returns the entry on OK."""

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, prompt: str, placeholder: str = "") -> None:
        super().__init__()
        self.prompt = prompt
        self.placeholder = placeholder
        self._input_id = "text-entry-input"

    def compose(self) -> ComposeResult:
        title = Static(self.prompt, classes="dialog-title")
        entry = Input(placeholder=self.placeholder, id=self._input_id)
        help_text = Static("Enter = OK • Esc = Cancel", classes="dialog-help")
        yield Vertical(title, entry, help_text, id="text-entry")

    def on_mount(self) -> None:
        self.query_one(f"#{self._input_id}", Input).focus()

    def action_cancel(self) -> None:
        self.dismiss(None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value)


class ErrorScreen(ModalScreen[None]):
    """Modal screen showing one or more error messages.

    Dismiss with Enter or Esc; ``s`` saves the messages to a file under
    the cache directory so they can be attached to a bug report.
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("enter", "dismiss", "OK"),
        Binding("s", "save", "Save Error"),
    ]

    def __init__(self, prefix: str, message: str | list[str]) -> None:
        super().__init__()
        self.prefix = prefix
        if isinstance(message, list):
            self.messages = list(message)
        else:
            self.messages = [str(message)]

    def compose(self) -> ComposeResult:
        title = Static(self.prefix, classes="dialog-title")
        help_text = Static("Enter = OK • Esc = Cancel • s = Save", classes="dialog-help")
        items = [Static(msg, classes="dialog-item", markup=False) for msg in self.messages]
        yield Vertical(title, *items, help_text, id="error-dialog")

    def action_cancel(self) -> None:
        self.dismiss(None)

    def action_dismiss(self) -> None:
        self.dismiss(None)

    def action_save(self) -> None:
        state_dir = _default_cache_root() / "errors"
        state_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%dT%H%M%S")
        target = state_dir / f"errors-{stamp}.txt"
        target.write_text("\n\n".join([self.prefix, *self.messages]), encoding="utf-8")
        status_line = getattr(self.app, "status_line", None)
        if status_line is not None:
            status_line.update(f"Saved errors to {target}")
