"""Persistence — database, build queue, artifact store and caches."""

from docbuilder.core.persistence.build_queue import BuildQueue
from docbuilder.core.persistence.completion_cache import CompletionCache
from docbuilder.core.persistence.database import connect
from docbuilder.core.persistence.lock_file import QueueLock
from docbuilder.core.persistence.storage import ArtifactStore

__all__ = [
    "ArtifactStore",
    "BuildQueue",
    "CompletionCache",
    "QueueLock",
    "connect",
]
