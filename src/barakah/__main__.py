from __future__ import annotations

from .logutils import setup_logging
from .tui.app import BarakahApp


def main() -> None:
    setup_logging()
    BarakahApp().run()


if __name__ == "__main__":  # pragma: no cover
    main()
