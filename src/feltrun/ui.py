# SPDX-License-Identifier: AGPL-3.0

from dataclasses import dataclass, field

from rich import get_console
from rich.console import Console
from rich.status import Status


@dataclass(frozen=True, eq=False, order=False, slots=True)
class UI:
    status: Status
    console: Console = field(default_factory=get_console)

    @property
    def is_interactive(self) -> bool:
        return self.console.is_interactive

    def start_status(self, message: str):
        # clear any remaining live display before starting a new instance
        self.console.clear_live()
        self.status.update(message)
        self.status.start()

    def stop_status(self):
        self.status.stop()


ui: UI = UI(Status(""))


class status_display:
    """Shows a spinner while the block runs, unless disabled."""

    def __init__(self, message: str, enabled: bool = True):
        self.message = message
        self.enabled = enabled and ui.is_interactive

    def __enter__(self):
        if self.enabled:
            ui.start_status(self.message)
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if self.enabled:
            ui.stop_status()
