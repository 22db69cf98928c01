from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass

from rich.logging import RichHandler

# Every module logger hangs below this one.
LOGGER_NAME = "treemarks"


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    no_color: bool = False


def setup_logging(cfg: LogConfig) -> logging.Logger:
    """Attach one handler to the package logger; other loggers are left alone.

    Calling it again replaces the handler installed by the previous call.
    """
    level = getattr(logging, cfg.level.upper(), logging.INFO)

    pkg = logging.getLogger(LOGGER_NAME)
    pkg.setLevel(level)
    for h in list(pkg.handlers):
        pkg.removeHandler(h)

    force_no_color = cfg.no_color or os.getenv("NO_COLOR") is not None
    if not force_no_color and sys.stderr.isatty():
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_time=False, show_level=True, show_path=False)
        fmt = "%(message)s"
    else:
        handler = logging.StreamHandler()
        fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    pkg.addHandler(handler)
    return pkg


def get_logger(name: str) -> logging.Logger:
    if name != LOGGER_NAME and not name.startswith(LOGGER_NAME + "."):
        name = f"{LOGGER_NAME}.{name}"
    return logging.getLogger(name)
