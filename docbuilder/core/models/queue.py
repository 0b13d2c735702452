"""
Queue entry model — one (package, version) build job.

Entries are created by the index enqueuer, claimed by a worker, and
either deleted (build succeeded) or have their attempt counter bumped
(build failed). Entries that reach MAX_ATTEMPTS stay in the table for
inspection but are never selected again.
"""

from __future__ import annotations

from pydantic import BaseModel

# Entries with attempt >= MAX_ATTEMPTS are quarantined, not deleted
MAX_ATTEMPTS = 5


class QueueEntry(BaseModel):
    """A row of the build queue."""

    id: int
    name: str
    version: str
    priority: int = 0               # lower runs first
    attempt: int = 0

    @property
    def eligible(self) -> bool:
        """Whether the entry can still be selected for building."""
        return self.attempt < MAX_ATTEMPTS

    @property
    def identity(self) -> str:
        return f"{self.name}-{self.version}"
