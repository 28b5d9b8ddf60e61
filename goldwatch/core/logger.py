"""
GoldWatch Logger Module
=======================

One ``goldwatch`` logger tree with three sinks:

* console, coloured by level when colorama is installed;
* ``data/logs/goldwatch.log``, size-rotated;
* an optional in-memory ring (``collections.deque``) read by ``/stats``.

Every line carries the process uptime. Levels come from, in order:
``GOLDWATCH_LOG_LEVEL``, the ``level`` argument (config ``system.log_level``),
then ``LOG_LEVEL_CONSOLE`` / ``LOG_LEVEL_FILE``.
"""

import logging
import os
import sys
import time
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

try:
    import colorama
    from colorama import Fore, Style
    colorama.init()
    COLORS_AVAILABLE = True
except ImportError:
    COLORS_AVAILABLE = False

_STARTED = time.monotonic()

LOG_DIR = os.environ.get("LOG_DIR", "data/logs")
LOG_LEVEL_CONSOLE = os.environ.get("LOG_LEVEL_CONSOLE", "INFO")
LOG_LEVEL_FILE = os.environ.get("LOG_LEVEL_FILE", "DEBUG")
LOG_MAX_BYTES = int(os.environ.get("LOG_MAX_BYTES", str(5 * 1024 * 1024)))
LOG_BACKUP_COUNT = int(os.environ.get("LOG_BACKUP_COUNT", "3"))

_configured = False


def uptime_seconds() -> float:
    return time.monotonic() - _STARTED


def _uptime() -> str:
    """``42s``, ``7m05s`` or ``3h12m``."""
    secs = int(uptime_seconds())
    minutes, s = divmod(secs, 60)
    hours, m = divmod(minutes, 60)
    if hours:
        return f"{hours}h{m:02d}m"
    if minutes:
        return f"{minutes}m{s:02d}s"
    return f"{s}s"


class UptimeFormatter(logging.Formatter):
    """Adds ``%(uptime)s`` to every record."""

    def format(self, record):
        record.uptime = _uptime()
        return super().format(record)


class ColoredFormatter(UptimeFormatter):
    """Console formatter; the level name is padded and coloured."""

    if COLORS_AVAILABLE:
        LEVEL_COLORS = {
            'DEBUG': Fore.CYAN,
            'INFO': Fore.GREEN,
            'WARNING': Fore.YELLOW,
            'ERROR': Fore.RED,
            'CRITICAL': Fore.RED + Style.BRIGHT,
        }
        RESET = Style.RESET_ALL
    else:
        LEVEL_COLORS = {}
        RESET = ''

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelname, '')
        record.levelname = f"{color}{record.levelname:8}{self.RESET}"
        return super().format(record)


class RingBufferHandler(logging.Handler):
    """Appends formatted lines to a bounded deque."""

    def __init__(self, buffer: Any):
        super().__init__()
        self.buffer = buffer

    def emit(self, record):
        try:
            self.buffer.append(self.format(record))
        except Exception:
            self.handleError(record)


def _level(name: Optional[str], fallback: int) -> int:
    return getattr(logging, str(name or '').upper(), fallback)


def setup_logger(
    name: str = 'goldwatch',
    level: Optional[str] = None,
    log_dir: Optional[str] = None,
    ring_buffer: Any = None,
) -> logging.Logger:
    """
    Configure the root GoldWatch logger.

    Only the first call installs handlers; later calls return the logger
    unchanged.
    """
    global _configured

    root = logging.getLogger(name)
    if _configured:
        return root

    level = os.environ.get("GOLDWATCH_LOG_LEVEL") or level
    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(_level(level or LOG_LEVEL_CONSOLE, logging.INFO))
    console.setFormatter(ColoredFormatter(
        '%(asctime)s [%(uptime)s] %(levelname)s %(name)s  %(message)s', datefmt='%H:%M:%S',
    ))
    root.addHandler(console)

    path = Path(log_dir or LOG_DIR)
    path.mkdir(parents=True, exist_ok=True)
    logfile = RotatingFileHandler(
        path / 'goldwatch.log', maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding='utf-8',
    )
    logfile.setLevel(_level(level or LOG_LEVEL_FILE, logging.DEBUG))
    logfile.setFormatter(UptimeFormatter(
        '%(asctime)s [%(uptime)s] %(levelname)-8s %(name)s  %(message)s', datefmt='%Y-%m-%d %H:%M:%S',
    ))
    root.addHandler(logfile)

    if ring_buffer is not None:
        ring = RingBufferHandler(ring_buffer)
        ring.setLevel(logging.INFO)
        ring.setFormatter(logging.Formatter('%(asctime)s %(message)s', datefmt='%H:%M:%S'))
        root.addHandler(ring)

    _configured = True
    return root


def get_logger(name: str) -> logging.Logger:
    """Child logger ``goldwatch.<name>``."""
    return logging.getLogger(f'goldwatch.{name}')


def get_connector_logger(connector_name: str) -> logging.Logger:
    return get_logger(f'connectors.{connector_name}')


def get_alert_logger() -> logging.Logger:
    return get_logger('alerts')
