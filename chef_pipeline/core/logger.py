"""
Structured logging for the build pipeline.

Library code logs key/value events through structlog; the CLI prints
human-facing progress through a themed rich console.
"""

import logging
from typing import Any, List, Optional

import structlog
from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "step": "bold magenta",
})

console = Console(theme=THEME)

_SHARED_PROCESSORS: List[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.StackInfoRenderer(),
    structlog.dev.set_exc_info,
    structlog.processors.TimeStamper(fmt="iso"),
]


def setup_logging(verbose: bool = False) -> None:
    """
    Configure structlog for the process.

    Verbose runs get coloured console lines at DEBUG; otherwise events are
    emitted as JSON at INFO.
    """
    if verbose:
        renderers = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=_SHARED_PROCESSORS + renderers,
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if verbose else logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance with the given name."""
    return structlog.get_logger(name)


class ConsoleReporter:
    """CLI progress lines, each mirrored into the event log."""

    ICONS = {
        "step": "→",
        "success": "✓",
        "warning": "⚠",
        "error": "✗",
        "info": "ℹ",
    }

    def __init__(self, component: str):
        self.component = component
        self.logger = get_logger(component)

    def _print(self, style: str, message: str, label: Optional[str] = None) -> None:
        marker = label or self.ICONS[style]
        console.print(f"[{style}]{escape(marker)}[/{style}] {escape(f'[{self.component}]')} {message}")

    def step(self, message: str, step_num: Optional[int] = None) -> None:
        self._print("step", message, f"[Step {step_num}]" if step_num else None)
        self.logger.info(message, step=step_num)

    def success(self, message: str) -> None:
        self._print("success", message)
        self.logger.info(message, status="success")

    def warning(self, message: str) -> None:
        self._print("warning", message)
        self.logger.warning(message)

    def error(self, message: str, exc: Optional[BaseException] = None) -> None:
        self._print("error", message)
        self.logger.error(message, exc_info=exc)

    def info(self, message: str, **kwargs: Any) -> None:
        self._print("info", message)
        self.logger.info(message, **kwargs)
