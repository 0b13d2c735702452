"""
Build result — the outcome of one compiler invocation.

A failed or timed-out build is not an exception: it is a BuildResult
with ``successful=False``. Only infrastructure problems raise.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from docbuilder.core.models.cargo import CargoMetadata


class BuildResult(BaseModel):
    """What the executor learned from one ``cargo doc`` run."""

    toolchain_version: str          # raw `rustc --version` line
    service_version: str            # "docbuilder <version>"
    build_log: str = ""
    successful: bool = False
    target: str
    cargo_metadata: CargoMetadata = Field(default_factory=CargoMetadata)
