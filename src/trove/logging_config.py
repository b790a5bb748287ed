"""Console logging for the Trove CLI and API server.

Log lines carry a bracketed service prefix such as ``[CAPTURE]`` or ``[API]``.
On a terminal the level and the prefix are colored; anywhere else the
message is left untouched.
"""

import logging
import re
import sys
from typing import Optional, TextIO

RESET = "\033[0m"
BOLD = "\033[1m"

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}

PREFIX_COLORS = {
    "CAPTURE": "\033[96m",
    "EXTRACT": "\033[93m",
    "SAVE": "\033[95m",
    "API": "\033[94m",
    "LLM": "\033[33m",
    "DB": "\033[37m",
    "STARTUP": "\033[97m",
}

_PREFIX_RE = re.compile(r"\[(" + "|".join(PREFIX_COLORS) + r")\]")

QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")


class ColoredFormatter(logging.Formatter):
    """Colors the level name and known service prefixes."""

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None, use_color: bool = True):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        if not self.use_color:
            return line

        level_color = LEVEL_COLORS.get(record.levelname, "")
        line = line.replace(
            record.levelname, f"{level_color}{record.levelname:<7}{RESET}", 1
        )
        return _PREFIX_RE.sub(
            lambda m: f"{PREFIX_COLORS[m.group(1)]}{BOLD}{m.group(0)}{RESET}", line
        )


def _install(level: int, stream: TextIO) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        ColoredFormatter(
            fmt="%(asctime)s %(levelname)s %(message)s",
            datefmt="%H:%M:%S",
            use_color=stream.isatty(),
        )
    )

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler


def setup_colored_logging(verbose: bool = False, stream: Optional[TextIO] = None) -> logging.Handler:
    """Configure logging for CLI commands.

    Logs go to stderr at WARNING (DEBUG with ``verbose``) so they do not
    interleave with the capture progress bar on stdout.
    """
    return _install(logging.DEBUG if verbose else logging.WARNING, stream or sys.stderr)


def setup_server_logging(verbose: bool = False, stream: Optional[TextIO] = None) -> logging.Handler:
    """Configure logging for ``trove serve``: INFO unless verbose."""
    return _install(logging.DEBUG if verbose else logging.INFO, stream or sys.stderr)
