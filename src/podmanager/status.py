"""
Progress and notification interfaces.

Operations never reach for a global status bar. The UI builds one
StatusReporter and one Notifier and passes them to the provider and the
action helpers; headless callers get the logging implementations below.
"""

import logging
import re
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StatusReporter:
    """A single progress indicator shared by every running operation."""

    def show_status(self, text: str, is_loading: bool = True) -> None:
        raise NotImplementedError

    def hide_status(self) -> None:
        raise NotImplementedError


class Notifier:
    """User-visible messages. ``command`` is offered for copying on errors."""

    def info(self, message: str) -> None:
        raise NotImplementedError

    def warning(self, message: str) -> None:
        raise NotImplementedError

    def error(self, message: str, command: Optional[str] = None) -> None:
        raise NotImplementedError


class LoggingStatusReporter(StatusReporter):
    def __init__(self):
        self.text = ""
        self.visible = False

    def show_status(self, text: str, is_loading: bool = True) -> None:
        self.text = text
        self.visible = True
        logger.info(text)

    def hide_status(self) -> None:
        self.visible = False


class LoggingNotifier(Notifier):
    def info(self, message: str) -> None:
        logger.info(message)

    def warning(self, message: str) -> None:
        logger.warning(message)

    def error(self, message: str, command: Optional[str] = None) -> None:
        if command:
            logger.error(f"{message} (command: {strip_format_flags(command)})")
        else:
            logger.error(message)


_FORMAT_FLAGS = (
    re.compile(r'--format "[^"]*"'),
    re.compile(r"--format '[^']*'"),
    re.compile(r"--format=[^ ]*"),
    re.compile(r"--format \{\{[^ ]*"),
)


def strip_format_flags(command: str) -> str:
    """Remove the internal output-format arguments from a command line."""
    for pattern in _FORMAT_FLAGS:
        command = pattern.sub("", command)
    return re.sub(r"\s+", " ", command).strip()


async def with_status(
    reporter: StatusReporter, operation: str, task: Callable[[], Awaitable[T]]
) -> T:
    """Run ``task`` while ``reporter`` shows the operation; re-raises failures."""
    try:
        reporter.show_status(f"Podman: {operation}...")
        result = await task()
        reporter.show_status(f"Podman: {operation} completed", False)
        return result
    except Exception:
        reporter.show_status(f"Podman: {operation} failed", False)
        raise
