"""
buildorch.schemas - Data model for the build orchestration layer.

SourceMap -> InstallMap -> InstalledSurvey -> Plan -> execution

Lifecycle:
1. SourceMap: every package the build needs, plus the requested targets
2. InstallMap: where each source map package should be installed
3. InstalledSurvey: what is already installed (global/snapshot/local)
4. Plan: package name -> Task, produced by the external planner
5. BaseConfigOpts: paths and options shared by planning and execution
"""

from .package import (
    ComponentKind,
    Dependency,
    InstallLocation,
    LibraryName,
    LocalPackage,
    MAIN_LIBRARY,
    NamedComponent,
    Package,
    PackageConfig,
    PackageDescription,
    PackageIdentifier,
    exe_components,
    parse_version,
)
from .source_map import (
    DepPackage,
    ProjectPackage,
    SourceMap,
    Target,
    TargetAll,
    TargetComps,
)
from .installed import (
    DumpPackage,
    Installed,
    InstalledMap,
    InstalledSurvey,
    InstallMap,
    to_install_map,
)
from .plan import (
    BaseConfigOpts,
    LocalMutable,
    Plan,
    RemotePackage,
    Task,
    TaskType,
    task_type_location,
)

__all__ = [
    # Packages
    "ComponentKind",
    "Dependency",
    "InstallLocation",
    "LibraryName",
    "LocalPackage",
    "MAIN_LIBRARY",
    "NamedComponent",
    "Package",
    "PackageConfig",
    "PackageDescription",
    "PackageIdentifier",
    "exe_components",
    "parse_version",
    # Source map
    "DepPackage",
    "ProjectPackage",
    "SourceMap",
    "Target",
    "TargetAll",
    "TargetComps",
    # Installed state
    "DumpPackage",
    "Installed",
    "InstalledMap",
    "InstalledSurvey",
    "InstallMap",
    "to_install_map",
    # Plan
    "BaseConfigOpts",
    "LocalMutable",
    "Plan",
    "RemotePackage",
    "Task",
    "TaskType",
    "task_type_location",
]
