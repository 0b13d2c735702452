"""
Build limits — resource ceilings applied to one sandboxed build.
"""

from __future__ import annotations

from pydantic import BaseModel

DEFAULT_MEMORY_BYTES = 3 * 1024 * 1024 * 1024   # 3 GiB
DEFAULT_TIMEOUT_SECONDS = 15 * 60.0
DEFAULT_MAX_LOG_BYTES = 100 * 1024


class BuildLimits(BaseModel):
    """Per-package sandbox limits.

    The builder applies these verbatim: memory and networking go to the
    sandbox, timeout bounds the compiler invocation, and max_log_bytes
    caps the captured build log.
    """

    memory_bytes: int = DEFAULT_MEMORY_BYTES
    network_enabled: bool = False
    timeout: float = DEFAULT_TIMEOUT_SECONDS   # seconds
    max_log_bytes: int = DEFAULT_MAX_LOG_BYTES
