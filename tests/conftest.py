from pathlib import Path
from typing import Iterable, Optional
from unittest.mock import MagicMock

import pytest

from buildorch.build import BuildEnv, Collaborators, EnvPaths
from buildorch.config import BuildOpts, BuildOptsCLI, Config
from buildorch.schemas import (
    ComponentKind,
    DepPackage,
    Dependency,
    DumpPackage,
    Installed,
    InstalledSurvey,
    InstallLocation,
    LocalMutable,
    LocalPackage,
    NamedComponent,
    Package,
    PackageDescription,
    PackageIdentifier,
    Plan,
    ProjectPackage,
    RemotePackage,
    SourceMap,
    TargetAll,
    Task,
)
from buildorch.targets import retarget_local

WORK = Path("/work")
CONFIG_PATH = WORK / "build.yaml"
LIB = NamedComponent(ComponentKind.LIB)


def _local_package(
    name: str,
    version: str = "0.1.0",
    exes: Iterable[str] = (),
    unbuildable: Iterable[NamedComponent] = (),
    components: Optional[Iterable[NamedComponent]] = None,
) -> LocalPackage:
    root = WORK / name
    exes = tuple(exes)
    component_files = {LIB: frozenset({root / "src" / "Lib.hs"})}
    for exe in exes:
        component_files[NamedComponent.exe(exe)] = frozenset({root / "app" / f"{exe}.hs"})
    if components is None:
        components = set(component_files)
    return LocalPackage(
        package=Package(name=name, version=version, exes=frozenset(exes)),
        manifest=root / f"{name}.cabal",
        components=frozenset(components),
        unbuildable=frozenset(unbuildable),
        component_files=component_files,
        extra_files=frozenset({root / "README.md"}),
    )


def _project_package(lp: LocalPackage, deps: Iterable[Dependency] = ()) -> ProjectPackage:
    return ProjectPackage(
        description=PackageDescription(name=lp.name, library=tuple(deps)),
        version=lp.package.version,
        manifest=lp.manifest,
    )


@pytest.fixture
def make_local():
    """Factory for LocalPackages rooted under /work/<name>."""
    return _local_package


@pytest.fixture
def make_project():
    """Factory for ProjectPackages matching a LocalPackage."""
    return _project_package


@pytest.fixture
def base_config() -> Config:
    return Config(config_path=CONFIG_PATH)


@pytest.fixture
def make_env(base_config):
    """Factory for BuildEnvs over a set of project locals and dependencies."""

    def factory(
        locals_: Iterable[LocalPackage],
        deps: Iterable[DepPackage] = (),
        targets: Optional[dict] = None,
        dep_locals: Iterable[LocalPackage] = (),
        config: Optional[Config] = None,
        opts: Optional[BuildOptsCLI] = None,
        cabal_version: str = "3.10.1.0",
        projects: Optional[Iterable[ProjectPackage]] = None,
        global_hints: Optional[dict] = None,
    ) -> BuildEnv:
        locals_ = tuple(locals_)
        dep_locals = tuple(dep_locals)
        if projects is None:
            projects = [_project_package(lp) for lp in locals_]
        dep_map = {d.name: d for d in deps}
        for lp in dep_locals:
            dep_map.setdefault(lp.name, DepPackage(lp.name, lp.package.version, InstallLocation.LOCAL))
        if targets is None:
            targets = {lp.name: TargetAll() for lp in locals_}
        source_map = SourceMap(
            project={p.name: p for p in projects},
            deps=dep_map,
            targets=targets,
        )
        return BuildEnv(
            config=config or base_config,
            build_opts_cli=opts or BuildOptsCLI(),
            source_map=source_map,
            project_locals=locals_,
            dep_locals=dep_locals,
            paths=EnvPaths(
                snapshot_db=Path("/snap/pkgdb"),
                local_db=WORK / ".build" / "pkgdb",
                snapshot_install_root=Path("/snap"),
                local_install_root=WORK / ".build" / "install",
                extra_dbs=(Path("/extra/pkgdb"),),
            ),
            wanted_compiler="ghc-9.4.8",
            actual_compiler="ghc-9.4.8",
            cabal_version=cabal_version,
            platform="x86_64-linux",
            global_hints=global_hints or {},
        )

    return factory


class FakeBackend:
    """
    In-memory planner, surveyor and executor.

    The planner schedules every project package and every dependency that
    is not installed at the wanted version, with local packages restricted
    to their targets. Calls are recorded in `calls` in the order they happen.
    """

    def __init__(self, locals_: Iterable[LocalPackage], installed: Optional[dict] = None):
        self.locals = {lp.name: lp for lp in locals_}
        self.installed = installed or {}
        self.calls: list[str] = []
        self.plans: list[Plan] = []
        self.get_installed = MagicMock(side_effect=self._get_installed)
        self.construct_plan = MagicMock(side_effect=self._construct_plan)
        self.execute_plan = MagicMock(side_effect=self._record("execute_plan"))
        self.pre_fetch = MagicMock(side_effect=self._record("pre_fetch"))
        self.print_plan = MagicMock(side_effect=self._record("print_plan"))
        self.load_manifest = MagicMock(side_effect=lambda location: {"location": location})
        self.resolve_package = MagicMock(
            side_effect=lambda cfg, manifest: Package(manifest["location"], "1.0")
        )

    def _record(self, name):
        def record(*args, **kwargs):
            self.calls.append(name)
        return record

    def _get_installed(self, install_map):
        self.calls.append("get_installed")
        installed_map = {}
        snapshot_dump = []
        for name, (location, version) in self.installed.items():
            installed_map[name] = Installed(location, version)
            snapshot_dump.append(DumpPackage(PackageIdentifier(name, version), f"{name}-{version}-abc"))
        return InstalledSurvey(installed_map=installed_map, snapshot_dump=tuple(snapshot_dump))

    def _construct_plan(self, base, local_dump, load_package, source_map, installed_map, initial):
        self.calls.append("construct_plan")
        tasks = {}
        for name, dep in source_map.deps.items():
            have = installed_map.get(name)
            if have is not None and have.version == dep.version:
                continue
            tasks[name] = Task(
                provides=PackageIdentifier(name, dep.version),
                task_type=RemotePackage(
                    is_mutable=dep.location == InstallLocation.LOCAL,
                    package=Package(name, dep.version),
                    location="hackage",
                ),
            )
        for name, project in source_map.project.items():
            have = installed_map.get(name)
            if have is not None and have.version == project.version:
                continue
            tasks[name] = Task(
                provides=PackageIdentifier(name, project.version),
                task_type=LocalMutable(retarget_local(self.locals[name], source_map.targets.get(name))),
            )
        plan = Plan(tasks=tasks)
        self.plans.append(plan)
        return plan

    def collaborators(self) -> Collaborators:
        return Collaborators(
            get_installed=self.get_installed,
            construct_plan=self.construct_plan,
            execute_plan=self.execute_plan,
            load_manifest=self.load_manifest,
            resolve_package=self.resolve_package,
            pre_fetch=self.pre_fetch,
            print_plan=self.print_plan,
        )


@pytest.fixture
def fake_backend():
    """Factory for FakeBackends."""
    return FakeBackend


@pytest.fixture
def split_objs_config(base_config) -> Config:
    return Config(config_path=CONFIG_PATH, build_opts=BuildOpts(split_objs=True))
