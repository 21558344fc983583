"""Root logging setup for applications and the ``livequery`` CLI.

The library itself only creates module loggers; call :func:`setup_logging`
once at startup to get a single stderr handler in the pipe-separated format.
"""
import logging
import sys
from typing import TextIO

LOG_FORMAT = "%(asctime)s | %(levelname).1s | %(name)-30.30s | %(message)s"

# requests logs every connection at DEBUG through urllib3
NOISY_LOGGERS = ("urllib3",)


def setup_logging(level: int = logging.INFO, stream: TextIO | None = None) -> logging.Logger:
    """Route root logging to *stream* (stderr by default) with one handler.

    Poll loops log a warning per failed cycle; a CLI printing JSON results on
    stdout keeps its logs on stderr.
    """
    root = logging.getLogger()
    root.setLevel(level)

    while root.hasHandlers():
        root.removeHandler(root.handlers[0])

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)

    return root
