"""
SourceMap schema - every package a build needs, and what to build.

The source map is produced by the environment (snapshot + project
resolution) and is read-only to the orchestrator.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Union

from .package import InstallLocation, NamedComponent, PackageDescription


@dataclass(frozen=True)
class TargetAll:
    """Build every component of the package."""


@dataclass(frozen=True)
class TargetComps:
    """Build only the named components of the package."""
    components: frozenset[NamedComponent]


Target = Union[TargetAll, TargetComps]


@dataclass(frozen=True)
class ProjectPackage:
    """
    A package that belongs to the project.

    Project packages are always installed to the local location.
    """
    description: PackageDescription
    version: str
    manifest: Path

    @property
    def name(self) -> str:
        return self.description.name

    @property
    def location(self) -> InstallLocation:
        return InstallLocation.LOCAL


@dataclass(frozen=True)
class DepPackage:
    """
    A dependency of the project.

    Mutable dependencies (local paths, repositories) install locally;
    immutable ones come from the snapshot.
    """
    name: str
    version: str
    location: InstallLocation = InstallLocation.SNAPSHOT


@dataclass(frozen=True)
class SourceMap:
    """
    The resolved set of packages for a build.

    Attributes:
        project: Project packages by name
        deps: Dependency packages by name
        targets: Package name -> Target for the packages the user asked for
    """
    project: Mapping[str, ProjectPackage] = field(default_factory=dict)
    deps: Mapping[str, DepPackage] = field(default_factory=dict)
    targets: Mapping[str, Target] = field(default_factory=dict)

    def __post_init__(self):
        unknown = [
            name for name in self.targets
            if name not in self.project and name not in self.deps
        ]
        if unknown:
            raise ValueError(f"Targets refer to packages not in the source map: {sorted(unknown)}")

    def with_targets(self, targets: Mapping[str, Target]) -> "SourceMap":
        """Return a copy of this source map with a different target map."""
        return replace(self, targets=dict(targets))
