"""
Plan schemas - the build plan handed from the planner to the executor.

A Plan maps each package that must be (re)built to a Task. The task type is
a closed set of build strategies:

- LocalMutable: a local package built from its working tree
- RemotePackage: a package fetched from a location and built, either
  mutable (installed locally) or immutable (installed into the snapshot)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Mapping, Union

from .package import InstallLocation, LocalPackage, Package, PackageIdentifier

if TYPE_CHECKING:
    from buildorch.config import BuildOpts, BuildOptsCLI


@dataclass(frozen=True)
class LocalMutable:
    """Build a local package in place."""
    local_package: LocalPackage


@dataclass(frozen=True)
class RemotePackage:
    """
    Build a package obtained from a package location.

    Attributes:
        is_mutable: Whether the result is installed locally (True) or into the snapshot
        package: The resolved package
        location: Where the package source comes from
    """
    is_mutable: bool
    package: Package
    location: str


TaskType = Union[LocalMutable, RemotePackage]


def task_type_location(task_type: TaskType) -> InstallLocation:
    """The install location a task type targets."""
    if isinstance(task_type, LocalMutable):
        return InstallLocation.LOCAL
    if isinstance(task_type, RemotePackage):
        return InstallLocation.LOCAL if task_type.is_mutable else InstallLocation.SNAPSHOT
    raise TypeError(f"Unknown task type: {type(task_type).__name__}")


@dataclass(frozen=True)
class Task:
    """A single package build in a plan."""
    provides: PackageIdentifier
    task_type: TaskType

    @property
    def location(self) -> InstallLocation:
        return task_type_location(self.task_type)


@dataclass(frozen=True)
class Plan:
    """
    A dependency-ordered build plan.

    Attributes:
        tasks: Package name -> Task, in the order the planner produced them
    """
    tasks: Mapping[str, Task] = field(default_factory=dict)

    def tasks_at(self, location: InstallLocation) -> list[Task]:
        """Tasks that install to `location`."""
        return [t for t in self.tasks.values() if t.location == location]


@dataclass(frozen=True)
class BaseConfigOpts:
    """
    Filesystem roots, package databases and options for one build.

    Assembled once per build and passed unchanged into plan construction
    and execution.
    """
    snapshot_db: Path
    local_db: Path
    snapshot_install_root: Path
    local_install_root: Path
    build_opts: "BuildOpts"
    build_opts_cli: "BuildOptsCLI"
    extra_dbs: tuple[Path, ...] = ()
