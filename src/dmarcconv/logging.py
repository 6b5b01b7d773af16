"""Console logging helpers for dmarcconv."""

from __future__ import annotations

import logging
import sys

MESSAGE_FORMAT = "%(message)s"
DATETIME_FORMAT = "%(asctime)s %(message)s"


class ConsoleFormatter(logging.Formatter):
    """Formatter that prepends colourised level symbols."""

    SYMBOLS: dict[int, tuple[str, str]] = {
        logging.DEBUG: ("D", "\x1b[36m"),
        logging.INFO: ("I", "\x1b[32m"),
        logging.WARNING: ("!", "\x1b[33m"),
        logging.ERROR: ("X", "\x1b[31m"),
        logging.CRITICAL: ("X", "\x1b[35m"),
    }

    RESET = "\x1b[0m"

    def __init__(self, use_color: bool, *, with_datetime: bool = False) -> None:
        super().__init__(DATETIME_FORMAT if with_datetime else MESSAGE_FORMAT)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        symbol, color = self.SYMBOLS.get(record.levelno, ("?", "\x1b[37m"))
        base_message = super().format(record)
        if self.use_color:
            return f"{color}{symbol}{self.RESET} {base_message}"
        return f"{symbol} {base_message}"


def configure_logging(log_debug: bool = False, log_datetime: bool = False) -> None:
    """Initialise the stderr handler from the ``log_*`` config flags."""

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        ConsoleFormatter(_stream_supports_color(handler), with_datetime=log_datetime)
    )
    logging.basicConfig(
        level=logging.DEBUG if log_debug else logging.INFO,
        handlers=[handler],
        force=True,
    )


def _stream_supports_color(handler: logging.Handler) -> bool:
    stream = getattr(handler, "stream", None)
    return bool(getattr(stream, "isatty", lambda: False)())


__all__ = ["ConsoleFormatter", "configure_logging"]
