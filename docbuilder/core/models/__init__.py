"""
Domain models — pydantic types for the docs builder.

All models are re-exported here for convenient access:

    from docbuilder.core.models import QueueEntry, BuildLimits, BuildResult
"""

from docbuilder.core.models.build import BuildResult
from docbuilder.core.models.cargo import (
    CargoMetadata,
    CargoPackage,
    CargoTarget,
    DeclaredDependency,
    Dependency,
)
from docbuilder.core.models.limits import BuildLimits
from docbuilder.core.models.metadata import PackageMetadata
from docbuilder.core.models.queue import MAX_ATTEMPTS, QueueEntry
from docbuilder.core.models.registry import ChangeKind, RegistryChange

__all__ = [
    "MAX_ATTEMPTS",
    "BuildLimits",
    "BuildResult",
    "CargoMetadata",
    "CargoPackage",
    "CargoTarget",
    "ChangeKind",
    "DeclaredDependency",
    "Dependency",
    "PackageMetadata",
    "QueueEntry",
    "RegistryChange",
]
