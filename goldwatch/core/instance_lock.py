"""
Single-instance guard.

``bot.lock`` holds ``{pid, timestamp, started}`` (timestamp in epoch ms).
A lock refreshed within the stale window means another instance is alive
and start-up is refused; an older lock is replaced.
"""

from __future__ import annotations

import json
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .errors import GoldWatchError
from .logger import get_logger

logger = get_logger("instance_lock")


class InstanceLocked(GoldWatchError):
    """Another live instance holds the lock file."""

    def __init__(self, path: Path, pid: Any) -> None:
        super().__init__(f"another instance is already running (PID: {pid}); delete {path} to force start")
        self.path = path
        self.pid = pid


class InstanceLock:
    def __init__(
        self,
        path: str = "bot.lock",
        stale_after_s: float = 300.0,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.path = Path(path)
        self.stale_after_s = stale_after_s
        self._clock = clock
        self._started = datetime.now(timezone.utc).isoformat()
        self.held = False

    def _read(self) -> Optional[Dict[str, Any]]:
        try:
            return json.loads(self.path.read_text(encoding='utf-8'))
        except FileNotFoundError:
            return None
        except (ValueError, OSError) as e:
            logger.warning(f"Unreadable lock file {self.path}: {e}")
            return None

    def _write(self) -> None:
        self.path.write_text(json.dumps({
            'pid': os.getpid(),
            'timestamp': int(self._clock() * 1000),
            'started': self._started,
        }), encoding='utf-8')

    def acquire(self) -> None:
        """
        Take the lock.

        Raises:
            InstanceLocked: when a fresh lock from another instance exists
        """
        existing = self._read()
        if existing is not None:
            age_s = self._clock() - float(existing.get('timestamp', 0)) / 1000
            if age_s < self.stale_after_s:
                raise InstanceLocked(self.path, existing.get('pid'))
            logger.warning(f"Found stale lock file ({age_s:.0f}s old), replacing")

        self._write()
        self.held = True
        logger.info(f"Instance lock created (PID: {os.getpid()})")

    async def heartbeat(self) -> None:
        """Refresh the timestamp so the lock stays fresh while we run."""
        if not self.held:
            return
        try:
            self._write()
        except OSError as e:
            logger.error(f"Failed to update lock file: {e}")

    def release(self) -> None:
        if not self.held:
            return
        self.held = False
        try:
            self.path.unlink()
            logger.info("Instance lock removed")
        except FileNotFoundError:
            pass
