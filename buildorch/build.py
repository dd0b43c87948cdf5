"""
Build - orchestrate one build invocation end to end.

The orchestrator implements:
- Classification of local files for file watching
- Pre-plan validation (sub-library scan, buildable components)
- Installed-state survey and plan construction via collaborators
- Post-plan gates (local packages allowed, manifest tooling version)
- Advisory warnings (split-objs, executable name collisions)
- Dry-run printing or plan execution

Execution flow:
1. Enter the console code page fix
2. Read build options, source map and local packages from the BuildEnv
3. Warn about sub-library dependencies
4. Report the relevant local files to the caller, if asked
5. Check that all targeted components are buildable
6. Survey installed packages
7. Assemble BaseConfigOpts
8. Construct the plan
9. Refuse local packages if they are disallowed
10. Check the manifest tooling version
11. Warn about split-objs
12. Warn about executable name collisions
13. Prefetch, if enabled
14. Print (dry run) or execute the plan

Snapshot lock contract:
    If a lock is passed it must protect the snapshot, and it must be safe
    to release it once this build performs no further modification of the
    snapshot. The orchestrator never acquires the lock. It releases it right
    after the plan gates (steps 9 and 10) pass when nothing left to do
    writes to the snapshot: every task installs locally, or the run is a
    dry run. Otherwise the lock stays held and the caller releases it.
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence

from buildorch.config import BuildOpts, BuildOptsCLI, Config
from buildorch.console import fix_code_page
from buildorch.schemas import (
    BaseConfigOpts,
    DumpPackage,
    InstalledMap,
    InstalledSurvey,
    InstallLocation,
    InstallMap,
    LocalMutable,
    LocalPackage,
    Package,
    PackageConfig,
    Plan,
    SourceMap,
    Target,
    to_install_map,
)
from buildorch.targets import narrow_targets, relevant_files, retarget_local
from buildorch.utils import console
from buildorch.validators import (
    check_cabal_version,
    check_components_buildable,
    check_local_packages_allowed,
    check_sub_library_dependencies,
    warn_about_split_objs,
    warn_if_executables_collide,
)

logger = logging.getLogger(__name__)


# Package loader: (location, flags, compiler options, configure options) -> Package
PackageLoader = Callable[[str, Mapping[str, bool], Sequence[str], Sequence[str]], Package]

GetInstalled = Callable[[InstallMap], InstalledSurvey]

ConstructPlan = Callable[
    [BaseConfigOpts, Sequence[DumpPackage], PackageLoader, SourceMap, InstalledMap, bool],
    Plan,
]

ExecutePlan = Callable[
    [
        BuildOptsCLI,
        BaseConfigOpts,
        Sequence[LocalPackage],
        Sequence[DumpPackage],
        Sequence[DumpPackage],
        Sequence[DumpPackage],
        InstalledMap,
        Mapping[str, Target],
        Plan,
    ],
    None,
]

LoadManifest = Callable[[str], Any]
ResolvePackage = Callable[[PackageConfig, Any], Package]

SetLocalFiles = Callable[[set[Path]], None]


class Releasable(Protocol):
    def release(self) -> None: ...


@dataclass(frozen=True)
class EnvPaths:
    """Package databases and install roots of the build environment."""
    snapshot_db: Path
    local_db: Path
    snapshot_install_root: Path
    local_install_root: Path
    extra_dbs: tuple[Path, ...] = ()


@dataclass(frozen=True)
class BuildEnv:
    """
    Everything a build reads from its environment.

    Passed explicitly to every step instead of being read from globals.

    Attributes:
        config: Validated build configuration
        build_opts_cli: Options from the command line
        source_map: Resolved packages and targets
        project_locals: Local packages of the project
        dep_locals: Local (mutable) dependencies
        paths: Package databases and install roots
        wanted_compiler: Compiler the configuration asks for
        actual_compiler: Compiler actually in use
        cabal_version: Version of the manifest tooling shipped with the compiler
        platform: Target platform text
        global_hints: Versions of compiler-shipped packages
    """
    config: Config
    build_opts_cli: BuildOptsCLI
    source_map: SourceMap
    project_locals: tuple[LocalPackage, ...]
    dep_locals: tuple[LocalPackage, ...]
    paths: EnvPaths
    wanted_compiler: str
    actual_compiler: str
    cabal_version: str
    platform: str
    global_hints: Mapping[str, str] = field(default_factory=dict)

    @property
    def build_opts(self) -> BuildOpts:
        return self.config.build_opts

    @property
    def all_locals(self) -> tuple[LocalPackage, ...]:
        return self.project_locals + self.dep_locals

    def with_targets(self, targets: Sequence[str]) -> "BuildEnv":
        """
        Return a copy whose active targets are exactly `targets`.

        Local packages are retargeted too, so their targeted and unbuildable
        components follow the new target map.
        """
        source_map = narrow_targets(self.source_map, targets)
        new_targets = source_map.targets
        return replace(
            self,
            source_map=source_map,
            build_opts_cli=replace(self.build_opts_cli, targets=tuple(targets)),
            project_locals=tuple(retarget_local(lp, new_targets.get(lp.name)) for lp in self.project_locals),
            dep_locals=tuple(retarget_local(lp, new_targets.get(lp.name)) for lp in self.dep_locals),
        )


def print_plan(plan: Plan) -> None:
    """Print the plan to the console (dry run)."""
    from rich.table import Table

    if not plan.tasks:
        console.print("No packages would be built.")
        return

    table = Table(title="Would build")
    table.add_column("Package")
    table.add_column("Location")
    table.add_column("Source")
    for task in plan.tasks.values():
        if isinstance(task.task_type, LocalMutable):
            source = str(task.task_type.local_package.manifest.parent)
        else:
            source = task.task_type.location
        table.add_row(str(task.provides), task.location.value, source)
    console.print(table)


def _no_pre_fetch(plan: Plan) -> None:
    logger.warning("Prefetch was requested but the backend does not provide one; skipping")


@dataclass(frozen=True)
class Collaborators:
    """
    External components the orchestrator drives.

    Attributes:
        get_installed: Survey installed packages for an install map
        construct_plan: Build the plan
        execute_plan: Run the plan
        load_manifest: Load a manifest from a package location
        resolve_package: Resolve a loaded manifest for a PackageConfig
        pre_fetch: Fetch plan dependencies ahead of execution
        print_plan: Show the plan for a dry run
    """
    get_installed: GetInstalled
    construct_plan: ConstructPlan
    execute_plan: ExecutePlan
    load_manifest: LoadManifest
    resolve_package: ResolvePackage
    pre_fetch: Callable[[Plan], None] = _no_pre_fetch
    print_plan: Callable[[Plan], None] = print_plan


class SnapshotLock:
    """
    Caller-owned lock handle guarding the shared snapshot.

    Wraps anything with a release() method (a threading.Lock, a file lock)
    and makes releasing idempotent.
    """

    def __init__(self, handle: Releasable):
        self._handle = handle
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._handle.release()
        self._released = True


@dataclass
class BuildResult:
    """Result of a targeted rebuild."""
    success: bool
    error: Optional[BaseException] = None


def mk_base_config_opts(env: BuildEnv, build_opts_cli: BuildOptsCLI) -> BaseConfigOpts:
    """Get the BaseConfigOpts needed for constructing configure options."""
    return BaseConfigOpts(
        snapshot_db=env.paths.snapshot_db,
        local_db=env.paths.local_db,
        snapshot_install_root=env.paths.snapshot_install_root,
        local_install_root=env.paths.local_install_root,
        build_opts=env.build_opts,
        build_opts_cli=build_opts_cli,
        extra_dbs=env.paths.extra_dbs,
    )


def make_package_loader(env: BuildEnv, collaborators: Collaborators) -> PackageLoader:
    """
    Provide a function for loading package information from a package location.

    Tests and benchmarks are never enabled for packages loaded this way.
    """

    def load_package(
        location: str,
        flags: Mapping[str, bool],
        compiler_options: Sequence[str],
        configure_options: Sequence[str],
    ) -> Package:
        package_config = PackageConfig(
            enable_tests=False,
            enable_benchmarks=False,
            flags=dict(flags),
            compiler_options=tuple(compiler_options),
            configure_options=tuple(configure_options),
            compiler_version=env.actual_compiler,
            platform=env.platform,
        )
        manifest = collaborators.load_manifest(location)
        return collaborators.resolve_package(package_config, manifest)

    return load_package


def _release_if_safe(lock: Optional[SnapshotLock], plan: Plan, dry_run: bool) -> None:
    if lock is None:
        return
    if dry_run or not plan.tasks_at(InstallLocation.SNAPSHOT):
        logger.debug("No further snapshot modifications in this build; releasing snapshot lock")
        lock.release()
    else:
        logger.debug(
            "Plan builds %d snapshot package(s); snapshot lock stays held",
            len(plan.tasks_at(InstallLocation.SNAPSHOT)),
        )


def run_build(
    env: BuildEnv,
    collaborators: Collaborators,
    set_local_files: Optional[SetLocalFiles] = None,
    lock: Optional[Releasable] = None,
) -> None:
    """
    Build.

    Args:
        env: Build environment
        collaborators: Planner, executor and surveyor implementations
        set_local_files: Called with the files relevant to the current targets,
            for file watching
        lock: Optional snapshot lock, see the module docstring for the contract

    Raises:
        SomeTargetsNotBuildable: If a targeted component cannot be built
        LocalPackagesPresent: If the plan builds local packages and they are disallowed
        CabalVersionNotSupported: If the manifest tooling is too old
    """
    snapshot_lock = lock if lock is None or isinstance(lock, SnapshotLock) else SnapshotLock(lock)

    with fix_code_page(env.config.modify_code_page, env.actual_compiler):
        build_opts = env.build_opts
        build_opts_cli = env.build_opts_cli
        source_map = env.source_map
        locals_ = env.project_locals
        all_locals = env.all_locals

        check_sub_library_dependencies(source_map.project.values())

        # Set local files, necessary for file watching
        if set_local_files is not None:
            files = relevant_files(all_locals, source_map.targets, build_opts_cli.watch_all)
            files.add(env.config.config_path)
            set_local_files(files)

        check_components_buildable(all_locals)

        install_map = to_install_map(source_map)
        survey = collaborators.get_installed(install_map)

        base_config_opts = mk_base_config_opts(env, build_opts_cli)
        plan = collaborators.construct_plan(
            base_config_opts,
            survey.local_dump,
            make_package_loader(env, collaborators),
            source_map,
            survey.installed_map,
            build_opts_cli.initial_build_steps,
        )
        logger.debug("Constructed plan with %d task(s)", len(plan.tasks))

        check_local_packages_allowed(plan, env.config.allow_locals)
        check_cabal_version(env.cabal_version)
        _release_if_safe(snapshot_lock, plan, build_opts_cli.dry_run)

        warn_about_split_objs(build_opts)
        warn_if_executables_collide(locals_, plan)

        if build_opts.pre_fetch:
            collaborators.pre_fetch(plan)

        if build_opts_cli.dry_run:
            collaborators.print_plan(plan)
        else:
            collaborators.execute_plan(
                build_opts_cli,
                base_config_opts,
                locals_,
                survey.global_dump,
                survey.snapshot_dump,
                survey.local_dump,
                survey.installed_map,
                source_map.targets,
                plan,
            )


def build_local_targets(
    env: BuildEnv,
    collaborators: Collaborators,
    targets: Sequence[str],
) -> BuildResult:
    """
    Rebuild only the given local targets, capturing any failure.

    Args:
        env: Build environment
        collaborators: Planner, executor and surveyor implementations
        targets: Non-empty list of target strings

    Returns:
        BuildResult; on failure the exception is in `error`

    Raises:
        ValueError: If `targets` is empty
    """
    if not targets:
        raise ValueError("build_local_targets needs at least one target")
    try:
        run_build(env.with_targets(targets), collaborators)
    except Exception as e:
        logger.debug("Targeted rebuild of %s failed: %s", ", ".join(targets), e)
        return BuildResult(success=False, error=e)
    return BuildResult(success=True)
