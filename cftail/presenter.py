"""
Rendering of stack events, outputs and completion notifications.
"""

import logging
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from typing import IO, List, Optional

import click
from rich.console import Console
from rich.table import Table

from .models import StackEvent, StackOutput
from .status import StatusCategory

logger = logging.getLogger(__name__)

CATEGORY_COLORS = {
    StatusCategory.IN_PROGRESS: "blue",
    StatusCategory.COMPLETE: "green",
    StatusCategory.FAILED: "red",
}

COMPLETION_FLOURISH = "🎉✨🤘"

APPLESCRIPT_NOTIFY = (
    "on run argv",
    'display notification (item 1 of argv) with title "cftail" sound name (item 2 of argv)',
    "end run",
)


class Presenter(ABC):
    """Where the tail engine sends what it finds."""

    @abstractmethod
    def render_event(self, event: StackEvent, is_original_stack: bool) -> None:
        pass

    @abstractmethod
    def render_outputs(self, stack_name: str, outputs: List[StackOutput]) -> None:
        pass

    @abstractmethod
    def render_separator(self) -> None:
        pass

    @abstractmethod
    def notify_completion(self, sound: str, message: Optional[str] = None) -> None:
        pass


class ConsolePresenter(Presenter):
    """Writes coloured event lines to the terminal."""

    def __init__(self, file: Optional[IO[str]] = None, color: Optional[bool] = None,
                 show_resource_types: bool = False):
        self.file = file
        self.color = color
        self.show_resource_types = show_resource_types
        self.console = Console(file=file, no_color=color is False, highlight=False)

    def _echo(self, message: str = "", nl: bool = True) -> None:
        click.echo(message, file=self.file, nl=nl, color=self.color)

    def _style(self, text: str, fg: str) -> str:
        if self.color is False:
            return text
        return click.style(text, fg=fg)

    def format_event(self, event: StackEvent, is_original_stack: bool) -> str:
        """Build the line shown for an event."""
        status = event.status
        name = event.logical_resource_id or event.stack_name
        if is_original_stack:
            name = self._style(name, "yellow")

        line = f"{event.timestamp.isoformat()}: {name}"
        if self.show_resource_types and event.resource_type:
            line += f" ({event.resource_type})"
        line += f" | {self._style(event.resource_status, CATEGORY_COLORS[status.category])}"

        if event.resource_status_reason:
            line += f" ({event.resource_status_reason})"
        elif is_original_stack and status.is_complete:
            line += f" {COMPLETION_FLOURISH}"
        return line

    def render_event(self, event: StackEvent, is_original_stack: bool) -> None:
        self._echo(self.format_event(event, is_original_stack))

    def render_outputs(self, stack_name: str, outputs: List[StackOutput]) -> None:
        if not outputs:
            self._echo(f"No outputs for stack {stack_name}")
            return

        table = Table(title=f"Outputs of {stack_name}", show_header=True)
        table.add_column("Key")
        table.add_column("Value")
        table.add_column("Description")
        for output in outputs:
            table.add_row(output.key, output.value, output.description or "")
        self.console.print(table)

    def render_separator(self) -> None:
        self.console.rule()

    def notify_completion(self, sound: str, message: Optional[str] = None) -> None:
        """Send a desktop notification, or ring the terminal bell if we cannot."""
        message = message or "Stack deployment finished"

        if sys.platform == "darwin" and shutil.which("osascript"):
            # message and sound are passed as argv, never spliced into the script
            cmd = ["osascript"]
            for line in APPLESCRIPT_NOTIFY:
                cmd += ["-e", line]
            cmd += [message, sound]
        elif shutil.which("notify-send"):
            cmd = ["notify-send", "cftail", message]
        else:
            self._echo("\a", nl=False)
            return

        result = subprocess.run(cmd, capture_output=True, text=True, timeout=10)
        if result.returncode != 0:
            logger.warning(f"Desktop notification failed: {result.stderr.strip()}")
