"""
Package schemas - identities, components and local packages.

A Package is what the manifest resolver hands back for a given build
configuration. A LocalPackage wraps a Package that lives in the project
(or is a mutable local dependency) together with the files it owns and the
components the current build targets.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping, Optional


class InstallLocation(str, Enum):
    """Where a package's build output is installed."""
    LOCAL = "local"
    SNAPSHOT = "snapshot"


def parse_version(text: str) -> tuple[int, ...]:
    """
    Parse a dotted version string into a comparable tuple.

    Args:
        text: Version text like "1.22.4.0"

    Returns:
        Tuple of integers, e.g. (1, 22, 4, 0)

    Raises:
        ValueError: If any component is not a non-negative integer
    """
    parts = text.strip().split(".")
    if not parts or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid version: {text!r}")
    return tuple(int(p) for p in parts)


@dataclass(frozen=True, order=True)
class PackageIdentifier:
    """A package name paired with a version."""
    name: str
    version: str

    def __str__(self) -> str:
        return f"{self.name}-{self.version}"


class ComponentKind(str, Enum):
    """Kinds of named components a package can declare."""
    LIB = "lib"
    SUB_LIB = "sub-lib"
    FLIB = "flib"
    EXE = "exe"
    TEST = "test"
    BENCH = "bench"


@dataclass(frozen=True, order=True)
class NamedComponent:
    """
    A single buildable component of a package.

    The main library is the only component without a name.

    Attributes:
        kind: Component kind
        name: Component name (empty for the main library)
    """
    kind: ComponentKind
    name: str = ""

    def __post_init__(self):
        if self.kind == ComponentKind.LIB and self.name:
            raise ValueError("The main library component has no name")
        if self.kind != ComponentKind.LIB and not self.name:
            raise ValueError(f"Component of kind '{self.kind.value}' needs a name")

    def __str__(self) -> str:
        if self.kind == ComponentKind.LIB:
            return "lib"
        return f"{self.kind.value}:{self.name}"

    @classmethod
    def parse(cls, text: str) -> "NamedComponent":
        """
        Parse "lib" or "kind:name".

        Raises:
            ValueError: If the kind is unknown or the name is missing
        """
        if text == ComponentKind.LIB.value:
            return cls(ComponentKind.LIB)
        kind, sep, name = text.partition(":")
        if not sep:
            raise ValueError(f"Component must be 'lib' or 'kind:name', got {text!r}")
        try:
            return cls(ComponentKind(kind), name)
        except ValueError as e:
            raise ValueError(f"Invalid component {text!r}: {e}") from e

    @classmethod
    def exe(cls, name: str) -> "NamedComponent":
        return cls(ComponentKind.EXE, name)


def exe_components(components: Iterable[NamedComponent]) -> set[str]:
    """Names of the executable components among `components`."""
    return {c.name for c in components if c.kind == ComponentKind.EXE}


@dataclass(frozen=True)
class LibraryName:
    """A library unit within a package: the main library or a sub-library."""
    name: Optional[str] = None

    @property
    def is_sub_library(self) -> bool:
        return self.name is not None


MAIN_LIBRARY = LibraryName()


@dataclass(frozen=True)
class Dependency:
    """
    A declared dependency on another package.

    Attributes:
        package: Name of the package depended upon
        version_range: Version constraint text (informational)
        libraries: Library units of `package` that are used
    """
    package: str
    version_range: str = "-any"
    libraries: frozenset[LibraryName] = frozenset({MAIN_LIBRARY})


@dataclass(frozen=True)
class PackageDescription:
    """
    Generic package description, as parsed from a manifest.

    Only the parts the orchestrator inspects are kept: the package name and
    the dependency lists of each component. Named component sections map
    component name to its dependencies.
    """
    name: str
    library: Optional[tuple[Dependency, ...]] = None
    sub_libraries: Mapping[str, tuple[Dependency, ...]] = field(default_factory=dict)
    foreign_libraries: Mapping[str, tuple[Dependency, ...]] = field(default_factory=dict)
    executables: Mapping[str, tuple[Dependency, ...]] = field(default_factory=dict)
    test_suites: Mapping[str, tuple[Dependency, ...]] = field(default_factory=dict)
    benchmarks: Mapping[str, tuple[Dependency, ...]] = field(default_factory=dict)

    def all_dependencies(self) -> list[Dependency]:
        """Every dependency declared by any component, in section order."""
        deps: list[Dependency] = []
        for section in (
            self.sub_libraries,
            self.foreign_libraries,
            self.executables,
            self.test_suites,
            self.benchmarks,
        ):
            for component_deps in section.values():
                deps.extend(component_deps)
        if self.library is not None:
            deps.extend(self.library)
        return deps


@dataclass(frozen=True)
class Package:
    """
    A package resolved for a particular build configuration.

    Attributes:
        name: Package name
        version: Package version text
        exes: Names of the executables the package declares
        has_library: Whether the package has a main library
    """
    name: str
    version: str
    exes: frozenset[str] = frozenset()
    has_library: bool = True

    @property
    def ident(self) -> PackageIdentifier:
        return PackageIdentifier(self.name, self.version)


@dataclass(frozen=True)
class LocalPackage:
    """
    A package under active development.

    Attributes:
        package: The resolved package
        manifest: Path to the package's manifest file
        components: Components this build will build
        unbuildable: Targeted components that cannot be built
        component_files: Source files owned by each component
        extra_files: Package-level files not owned by a single component
    """
    package: Package
    manifest: Path
    components: frozenset[NamedComponent] = frozenset()
    unbuildable: frozenset[NamedComponent] = frozenset()
    component_files: Mapping[NamedComponent, frozenset[Path]] = field(default_factory=dict)
    extra_files: frozenset[Path] = frozenset()

    @property
    def name(self) -> str:
        return self.package.name

    def files(self) -> set[Path]:
        """The package's full file set, manifest included."""
        result = {self.manifest, *self.extra_files}
        for paths in self.component_files.values():
            result.update(paths)
        return result

    def files_for_components(self, components: Iterable[NamedComponent]) -> set[Path]:
        """Only the files owned by `components`."""
        result: set[Path] = set()
        for component in components:
            result.update(self.component_files.get(component, ()))
        return result


@dataclass(frozen=True)
class PackageConfig:
    """
    Configuration used to resolve a manifest into a Package.

    Attributes:
        enable_tests: Whether test suites are resolved
        enable_benchmarks: Whether benchmarks are resolved
        flags: Manifest flag assignments
        compiler_options: Extra options passed to the compiler
        configure_options: Extra options passed to the configure step
        compiler_version: Active compiler version text (e.g. "ghc-9.4.8")
        platform: Target platform text (e.g. "x86_64-linux")
    """
    enable_tests: bool
    enable_benchmarks: bool
    flags: Mapping[str, bool]
    compiler_options: tuple[str, ...]
    configure_options: tuple[str, ...]
    compiler_version: str
    platform: str
