"""
Index enqueuer — turns registry change events into build jobs.

Feeds deliver changes newest-first. The batch is reversed before
enqueueing so that, when several versions of one package arrive in the
same poll, the older version is queued (and built) first.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from docbuilder.core.models.registry import ChangeKind, RegistryChange
from docbuilder.core.persistence.build_queue import BuildQueue

logger = logging.getLogger(__name__)


class ChangeFeed(Protocol):
    def fetch_changes(self) -> list[RegistryChange]: ...


class IndexEnqueuer:
    def __init__(self, queue: BuildQueue, feed: ChangeFeed | None = None):
        self._queue = queue
        self._feed = feed

    def update(self) -> int:
        """Fetch the feed and enqueue its changes. Returns the count enqueued."""
        if self._feed is None:
            raise RuntimeError("no change feed configured")
        return self.enqueue_changes(self._feed.fetch_changes())

    def enqueue_changes(self, changes: Iterable[RegistryChange]) -> int:
        """Enqueue every non-yanked change, oldest first, at priority 0.

        A failure to enqueue one change is logged and the rest of the
        batch continues.

        Returns:
            The number of new queue entries.
        """
        added = 0
        for change in reversed(list(changes)):
            if change.kind == ChangeKind.YANKED:
                logger.debug("ignoring yanked %s-%s", change.name, change.version)
                continue
            try:
                if self._queue.enqueue(change.name, change.version, priority=0):
                    added += 1
                    logger.debug("%s-%s added into build queue", change.name, change.version)
            except Exception as e:
                logger.warning(
                    "failed to add %s-%s into build queue: %s", change.name, change.version, e
                )

        logger.info("Enqueued %d new releases", added)
        return added
