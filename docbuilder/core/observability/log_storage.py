"""
Build log storage — bounded capture of one compiler invocation.

A LogStorage is a logging handler attached to the sandbox logger for
the duration of one build. Output lines are recorded as
``[LEVEL] message``; once ``max_size`` bytes have been stored a single
truncation notice is appended and everything after it is dropped.

Usage::

    storage = LogStorage(logging.INFO, max_size=limits.max_log_bytes)
    with capture(storage):
        sandbox.run(command)
    build_log = str(storage)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from docbuilder.core.observability.logging_config import SANDBOX_LOGGER

TRUNCATED_NOTICE = "[WARN] too much data in the log, truncating it"


class LogStorage(logging.Handler):
    """Stores formatted records up to a byte budget."""

    def __init__(self, level: int = logging.INFO, max_size: int | None = None):
        super().__init__(level)
        self.max_size = max_size
        self._lines: list[str] = []
        self._size = 0
        self._truncated = False

    @property
    def truncated(self) -> bool:
        return self._truncated

    def emit(self, record: logging.LogRecord) -> None:
        line = f"[{record.levelname}] {record.getMessage()}"
        # Handler.handle() already holds self.lock here
        if self._truncated:
            return
        # budget is in stored bytes, not characters
        size = len(line.encode("utf-8")) + 1
        if self.max_size is not None and self._size + size > self.max_size:
            self._lines.append(TRUNCATED_NOTICE)
            self._truncated = True
            return
        self._lines.append(line)
        self._size += size

    def __str__(self) -> str:
        with self.lock:
            return "\n".join(self._lines) + ("\n" if self._lines else "")


@contextmanager
def capture(storage: LogStorage, logger_name: str = SANDBOX_LOGGER) -> Iterator[LogStorage]:
    """Attach ``storage`` to the sandbox logger while the block runs."""
    target = logging.getLogger(logger_name)
    previous_level = target.level
    if target.getEffectiveLevel() > storage.level:
        target.setLevel(storage.level)
    target.addHandler(storage)
    try:
        yield storage
    finally:
        target.removeHandler(storage)
        target.setLevel(previous_level)
