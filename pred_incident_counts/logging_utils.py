from __future__ import annotations

import logging
import warnings
from typing import Optional

from rich.logging import RichHandler


class _SuppressConsoleNoise(logging.Filter):
    """Keep numerical chatter from small-sample diagnostics off the console."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - simple filter
        msg = record.getMessage()
        if "divide by zero encountered" in msg:
            return False
        if "invalid value encountered" in msg:
            return False
        return True


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """Log to a rich console handler and, optionally, to ``log_file``.

    The file receives everything down to DEBUG, including each candidate
    fit of the order search.  Python warnings are routed through logging.
    """

    handlers: list[logging.Handler] = []
    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handlers.append(file_handler)

    console_handler = RichHandler(rich_tracebacks=True)
    console_handler.setLevel(level)
    console_handler.addFilter(_SuppressConsoleNoise())
    handlers.append(console_handler)

    logging.basicConfig(
        level=logging.DEBUG,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True,
    )

    logging.captureWarnings(True)

    warnings.filterwarnings("ignore", category=FutureWarning)
    warnings.filterwarnings(
        "ignore",
        message=".*pkg_resources.*deprecated.*",
        category=UserWarning,
    )
