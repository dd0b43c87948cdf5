"""
Installed-state schemas.

The InstallMap says where each package of the source map should end up.
The InstalledSurvey is what the installed-state surveyor reports back: what
is already present in the global, snapshot and local package databases.
"""

from dataclasses import dataclass, field
from typing import Mapping

from .package import InstallLocation, PackageIdentifier
from .source_map import SourceMap


@dataclass(frozen=True)
class Installed:
    """An installed package and the database location it was found in."""
    location: InstallLocation
    version: str


InstallMap = Mapping[str, Installed]
InstalledMap = Mapping[str, Installed]


@dataclass(frozen=True)
class DumpPackage:
    """One record from a package database dump."""
    ident: PackageIdentifier
    package_id: str


@dataclass(frozen=True)
class InstalledSurvey:
    """
    Result of surveying installed packages.

    Attributes:
        installed_map: Package name -> where and which version is installed
        global_dump: Records from the global (compiler-shipped) database
        snapshot_dump: Records from the snapshot database
        local_dump: Records from the local database
    """
    installed_map: InstalledMap = field(default_factory=dict)
    global_dump: tuple[DumpPackage, ...] = ()
    snapshot_dump: tuple[DumpPackage, ...] = ()
    local_dump: tuple[DumpPackage, ...] = ()


def to_install_map(source_map: SourceMap) -> dict[str, Installed]:
    """
    Derive the install map from a source map.

    Project packages install locally; dependencies install wherever their
    source map entry says.
    """
    install_map: dict[str, Installed] = {}
    for name, dep in source_map.deps.items():
        install_map[name] = Installed(dep.location, dep.version)
    for name, project in source_map.project.items():
        install_map[name] = Installed(project.location, project.version)
    return install_map
