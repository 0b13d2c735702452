"""
Cargo metadata models — the dependency graph of a fetched package.

Parsed from ``cargo metadata --format-version 1`` output. Only the
fields the builder records or uses for cross-linking are modelled.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

LIBRARY_KINDS = {"lib", "rlib", "dylib", "cdylib", "staticlib", "proc-macro"}


class Dependency(BaseModel):
    """A resolved dependency: the exact version cargo picked."""

    name: str
    version: str

    @property
    def module_name(self) -> str:
        """Name rustdoc uses for the dependency's crate root."""
        return self.name.replace("-", "_")


class DeclaredDependency(BaseModel):
    """A dependency as written in the manifest."""

    name: str
    req: str = "*"
    kind: str | None = None
    optional: bool = False


class CargoTarget(BaseModel):
    name: str
    kind: list[str] = Field(default_factory=list)


class CargoPackage(BaseModel):
    """One package from the ``packages`` array."""

    id: str
    name: str
    version: str
    description: str | None = None
    license: str | None = None
    repository: str | None = None
    homepage: str | None = None
    documentation: str | None = None
    authors: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    dependencies: list[DeclaredDependency] = Field(default_factory=list)
    targets: list[CargoTarget] = Field(default_factory=list)
    features: dict[str, list[str]] = Field(default_factory=dict)

    def library_name(self) -> str:
        """Crate-root module name of the library target.

        Falls back to the package name with dashes normalized when the
        package declares no library target.
        """
        for target in self.targets:
            if LIBRARY_KINDS.intersection(target.kind):
                return target.name.replace("-", "_")
        return self.name.replace("-", "_")

    def is_library(self) -> bool:
        return any(LIBRARY_KINDS.intersection(t.kind) for t in self.targets)


class CargoMetadata(BaseModel):
    """Root package plus the resolved dependency graph."""

    packages: dict[str, CargoPackage] = Field(default_factory=dict)
    root_id: str = ""
    edges: dict[str, list[str]] = Field(default_factory=dict)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> CargoMetadata:
        """Build from the decoded ``cargo metadata`` document."""
        packages = {
            raw["id"]: CargoPackage.model_validate(raw)
            for raw in data.get("packages", [])
        }
        resolve = data.get("resolve") or {}
        edges = {
            node["id"]: list(node.get("dependencies", []))
            for node in resolve.get("nodes", [])
        }
        return cls(packages=packages, root_id=resolve.get("root") or "", edges=edges)

    def root(self) -> CargoPackage:
        """The package being built."""
        return self.packages[self.root_id]

    def root_dependencies(self) -> list[Dependency]:
        """Direct dependencies of the root, at their resolved versions."""
        deps = []
        for dep_id in self.edges.get(self.root_id, []):
            package = self.packages.get(dep_id)
            if package is not None:
                deps.append(Dependency(name=package.name, version=package.version))
        return deps
