from __future__ import annotations

import logging
import os
import sys
import threading
import weakref
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nicegui import ui

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

_LEVEL_COLORS = {
    "TRACE": "\033[32m",  # green
    "DEBUG": "\033[36m",  # cyan
    "INFO": "\033[37m",  # light gray
    "WARNING": "\033[33m",  # yellow
    "ERROR": "\033[31m",  # red
    "CRITICAL": "\033[41m",  # red background
}
_RESET = "\033[0m"
_DIM = "\033[2m"

_PACKAGE_DIR = f"{os.sep}arm_commander{os.sep}"

# Module -> tag shown in the control page's response log
RESPONSE_TAGS = {
    "dispatcher": "servo",
    "connection_manager": "link",
    "device_client": "http",
    "controller": "arm",
}


class AnsiColorFormatter(logging.Formatter):
    """Console formatter: dim timestamp, colored level name."""

    def __init__(self, colored: bool = True) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S"
        )
        self.colored = colored and sys.stderr.isatty()

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        ts = super().formatTime(record, datefmt)
        return f"{_DIM}{ts}{_RESET}" if self.colored else ts

    def format(self, record: logging.LogRecord) -> str:
        color = _LEVEL_COLORS.get(record.levelname) if self.colored else None
        if not color:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{color}{original}{_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class ResponseLogFilter(logging.Filter):
    """Keep records emitted by this package; tag them by the module that logged."""

    def filter(self, record: logging.LogRecord) -> bool:
        if _PACKAGE_DIR not in record.pathname:
            return False
        record.tag = RESPONSE_TAGS.get(record.module, record.module)
        return True


_ui_log_targets: set[weakref.ref] = set()
_ui_lock = threading.Lock()


class NiceGuiLogHandler(logging.Handler):
    """Mirror device traffic and connection events into the page's ui.log widgets."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level=level)
        self.addFilter(ResponseLogFilter())
        self.setFormatter(
            logging.Formatter("%(asctime)s [%(tag)s] %(message)s", "%H:%M:%S")
        )

    def emit(self, record: logging.LogRecord) -> None:
        if not _ui_log_targets:
            return
        msg = self.format(record)
        with _ui_lock:
            for ref in list(_ui_log_targets):
                widget = ref()
                if widget is None:
                    _ui_log_targets.discard(ref)
                    continue
                try:
                    widget.push(msg)
                except RuntimeError:
                    # Client of the widget is gone
                    _ui_log_targets.discard(ref)


def attach_ui_log(log_widget: ui.log) -> None:
    """Register a page's response log as a sink; dropped once the widget is gone."""
    with _ui_lock:
        _ui_log_targets.add(weakref.ref(log_widget))


def configure_logging(
    level: int = logging.INFO, use_color: bool = True, add_ui_handler: bool = True
) -> logging.Logger:
    """
    Configure the root logger with a colored stderr handler and, for the web
    app, the response log handler. Safe to call more than once.
    """
    logger = logging.getLogger()
    logger.setLevel(level)

    if not any(isinstance(h.formatter, AnsiColorFormatter) for h in logger.handlers):
        console = logging.StreamHandler(stream=sys.stderr)
        console.setLevel(level)
        console.setFormatter(AnsiColorFormatter(colored=use_color))
        logger.addHandler(console)

    if add_ui_handler and not any(isinstance(h, NiceGuiLogHandler) for h in logger.handlers):
        logger.addHandler(NiceGuiLogHandler(level=max(level, logging.INFO)))

    return logger
