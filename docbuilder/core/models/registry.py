"""
Registry change events — what the index reader hands to the enqueuer.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class ChangeKind(StrEnum):
    """Kind of change observed in the registry index."""

    ADDED = "added"
    YANKED = "yanked"


class RegistryChange(BaseModel):
    """A single release appearing in (or being yanked from) the index."""

    name: str
    version: str
    kind: ChangeKind = ChangeKind.ADDED
