"""
Queue lock — an operator switch that pauses queue building.

While the lock file exists, workers leave the queue alone. The
scheduler keeps running; nothing is lost.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class QueueLock:
    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def lock(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.touch()
        logger.info("Build queue locked (%s)", self._path)

    def unlock(self) -> None:
        self._path.unlink(missing_ok=True)
        logger.info("Build queue unlocked")

    def is_locked(self) -> bool:
        return self._path.exists()
