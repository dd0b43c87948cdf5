"""
Invariant validators run around plan construction.

Fatal checks raise a BuildError subclass:
- check_components_buildable: before the installed-state survey
- check_local_packages_allowed, check_cabal_version: after plan construction

Advisory checks only log warnings:
- check_sub_library_dependencies
- warn_about_split_objs
- warn_if_executables_collide
"""

import logging
import re
from collections import defaultdict
from typing import Iterable, Sequence

from buildorch.config import BuildOpts
from buildorch.errors import CabalVersionNotSupported, LocalPackagesPresent, SomeTargetsNotBuildable
from buildorch.schemas import (
    Dependency,
    InstallLocation,
    LocalMutable,
    LocalPackage,
    NamedComponent,
    PackageIdentifier,
    Plan,
    ProjectPackage,
    exe_components,
)

logger = logging.getLogger(__name__)


MINIMUM_CABAL_VERSION = (1, 22)

_LEADING_VERSION = re.compile(r"\d+(?:\.\d+)*")

SPLIT_OBJS_WARNING = (
    "Note that this feature is EXPERIMENTAL, and its behavior may be changed and "
    "improved. You will need to clean your workdirs before use. If you want to "
    "compile all dependencies with split-objs, you will need to delete the "
    "snapshot (and all snapshots that could reference that snapshot)."
)


def check_components_buildable(locals_: Iterable[LocalPackage]) -> None:
    """
    Fail if any targeted component of any local package is unbuildable.

    Raises:
        SomeTargetsNotBuildable: Listing every (package, component) pair
    """
    unbuildable: list[tuple[str, NamedComponent]] = [
        (lp.name, component)
        for lp in locals_
        for component in sorted(lp.unbuildable)
    ]
    if unbuildable:
        raise SomeTargetsNotBuildable(unbuildable)


def just_locals(plan: Plan) -> list[PackageIdentifier]:
    """Identifiers of every plan task that installs to the local location."""
    return [task.provides for task in plan.tasks_at(InstallLocation.LOCAL)]


def check_local_packages_allowed(plan: Plan, allow_locals: bool) -> None:
    """
    Fail if local packages are disallowed but the plan builds some.

    Raises:
        LocalPackagesPresent: Listing every local package in the plan
    """
    if allow_locals:
        return
    idents = just_locals(plan)
    if idents:
        raise LocalPackagesPresent(idents)


def check_cabal_version(version: str) -> None:
    """
    Fail if the manifest tooling is older than 1.22.

    Only the leading numeric components are compared, so release suffixes
    like "3.10.1.0-rc1" are accepted.

    Raises:
        CabalVersionNotSupported: Naming the version found, also when it
            has no leading numeric version
    """
    match = _LEADING_VERSION.match(version.strip())
    if match is None:
        raise CabalVersionNotSupported(version)
    numbers = tuple(int(part) for part in match.group(0).split("."))
    if numbers[:2] < MINIMUM_CABAL_VERSION:
        raise CabalVersionNotSupported(version)


def find_sub_library_dependencies(
    project_packages: Iterable[ProjectPackage],
) -> dict[str, list[Dependency]]:
    """
    Find public dependencies on sub-libraries in each project package.

    Dependencies of a package on its own name are internal and ignored,
    whatever library they name.

    Returns:
        Package name -> dependencies using a sub-library, for packages with any
    """
    found: dict[str, list[Dependency]] = {}
    for project in project_packages:
        description = project.description
        public = [d for d in description.all_dependencies() if d.package != description.name]
        sub_lib_deps = [
            d for d in public
            if any(lib.is_sub_library for lib in d.libraries)
        ]
        if sub_lib_deps:
            found[description.name] = sub_lib_deps
    return found


def check_sub_library_dependencies(project_packages: Iterable[ProjectPackage]) -> None:
    """Warn about every project package that depends on another package's sub-library."""
    for name, deps in find_sub_library_dependencies(project_packages).items():
        used = ", ".join(
            f"{d.package}:{lib.name}"
            for d in deps
            for lib in sorted(d.libraries, key=lambda lib: lib.name or "")
            if lib.is_sub_library
        )
        logger.warning(
            "Sublibrary dependency is not supported, this will almost certainly fail. "
            "Package %s depends on %s.",
            name,
            used,
        )


def warn_about_split_objs(build_opts: BuildOpts) -> None:
    if build_opts.split_objs:
        logger.warning("Building with --split-objs is enabled. %s", SPLIT_OBJS_WARNING)


def _collect(pairs: Iterable[tuple[str, str]]) -> dict[str, list[str]]:
    """Group (key, value) pairs into key -> sorted values."""
    grouped: dict[str, list[str]] = defaultdict(list)
    for key, value in pairs:
        grouped[key].append(value)
    return {key: sorted(values) for key, values in sorted(grouped.items())}


def executable_collisions(
    locals_: Sequence[LocalPackage],
    plan: Plan,
) -> dict[str, tuple[list[str], list[str]]]:
    """
    Find executables whose names collide between local packages.

    Args:
        locals_: All local packages, built or not
        plan: The build plan

    Returns:
        Executable name -> (packages building it in this plan,
        other local packages declaring the same name). Names built by a
        single package and declared by no other local package are omitted.
    """
    exes_to_build = _collect(
        (exe, name)
        for name, task in plan.tasks.items()
        if isinstance(task.task_type, LocalMutable)
        for exe in exe_components(task.task_type.local_package.components)
    )
    local_exes = _collect(
        (exe, lp.package.name)
        for lp in locals_
        for exe in lp.package.exes
    )

    collisions: dict[str, tuple[list[str], list[str]]] = {}
    for exe, to_build in exes_to_build.items():
        if exe not in local_exes:
            continue
        other_locals = [p for p in local_exes[exe] if p not in to_build]
        if len(to_build) == 1 and not other_locals:
            continue
        collisions[exe] = (to_build, other_locals)
    return collisions


def warn_if_executables_collide(locals_: Sequence[LocalPackage], plan: Plan) -> None:
    """
    Warn when a build could overwrite executables of the same name.

    Which copy ends up installed depends on execution order, so this never
    fails the build.
    """
    logger.debug("Checking if we are going to build multiple executables with the same name")
    for exe, (to_build, other_locals) in executable_collisions(locals_, plan).items():
        if len(to_build) > 1:
            message = (
                "Building several executables with the same name: "
                f"{_exes_text(to_build, exe)}. "
                "Only one of them will be available via exec or locally installed."
            )
        else:
            message = f"Building executable {_exes_text(to_build, exe)}."
        if other_locals:
            message += (
                " Other executables with the same name might be overwritten: "
                f"{_exes_text(other_locals, exe)}."
            )
        logger.warning(message)


def _exes_text(packages: Iterable[str], exe: str) -> str:
    return ", ".join(f"{p}:{exe}" for p in packages)
