"""
Queue worker — builds queued packages one at a time.

run_once() is the unit the scheduler calls: select, build, book-keep.
A failing job is logged and counted against its attempt budget; it
never stops the worker. While a job builds, the worker renews its
queue claim through the pipeline's heartbeat so no other worker takes
the job over.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Protocol

from docbuilder.core.models.queue import QueueEntry
from docbuilder.core.persistence.build_queue import BuildQueue
from docbuilder.core.persistence.lock_file import QueueLock

logger = logging.getLogger(__name__)


class PackageBuilder(Protocol):
    def build_package(
        self, name: str, version: str, heartbeat: Callable[[], None] | None = None
    ) -> bool: ...


class QueueWorker:
    """Drives the build pipeline from the queue.

    Args:
        queue: The shared build queue.
        pipeline: Builds one (name, version).
        lock: While locked, the worker leaves the queue alone.
    """

    def __init__(self, queue: BuildQueue, pipeline: PackageBuilder, lock: QueueLock | None = None):
        self._queue = queue
        self._pipeline = pipeline
        self._lock = lock

    def run_once(self) -> bool:
        """Build the next queued package.

        Returns:
            False if there was nothing to do (queue empty or locked),
            True if a job was processed, successfully or not.
        """
        if self._lock is not None and self._lock.is_locked():
            logger.info("build queue is locked, skipping")
            return False

        entry = self._queue.select_next()
        if entry is None:
            return False

        logger.info("building %s from the queue (attempt %d)", entry.identity, entry.attempt + 1)
        try:
            successful = self._pipeline.build_package(
                entry.name, entry.version, heartbeat=self._heartbeat(entry)
            )
        except Exception as e:
            logger.error("Failed to build package %s from queue: %s", entry.identity, e)
            self._record_failure(entry)
            return True

        if successful:
            try:
                self._queue.record_success(entry.id)
            except Exception as e:
                logger.warning("failed to remove %s from the queue: %s", entry.identity, e)
        else:
            logger.error("Failed to build package %s from queue: build failed", entry.identity)
            self._record_failure(entry)
        return True

    def _heartbeat(self, entry: QueueEntry) -> Callable[[], None]:
        def beat() -> None:
            try:
                renewed = self._queue.touch_claim(entry.id)
            except Exception as e:
                logger.warning("failed to renew the claim on %s: %s", entry.identity, e)
                return
            if not renewed:
                logger.warning("lost the queue claim on %s", entry.identity)

        return beat

    def _record_failure(self, entry: QueueEntry) -> None:
        # the row keeps its claim and is retried once the claim expires
        try:
            self._queue.record_failure(entry.id)
        except Exception as e:
            logger.error("failed to record the failure of %s in the queue: %s", entry.identity, e)

    def run(self, poll_interval: float = 60.0, stop_event: threading.Event | None = None) -> int:
        """Process the queue until ``stop_event`` is set.

        Sleeps ``poll_interval`` seconds only when there was no work.

        Returns:
            The number of jobs processed.
        """
        stop_event = stop_event or threading.Event()
        processed = 0
        logger.info("worker started (poll interval %ss)", poll_interval)
        while not stop_event.is_set():
            if self.run_once():
                processed += 1
            else:
                stop_event.wait(poll_interval)
        logger.info("worker stopped after %d jobs", processed)
        return processed
