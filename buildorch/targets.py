"""
Targets - parsing target strings and classifying local files.

Target strings follow the package:component syntax:
    app             every component of package "app"
    app:lib         the main library of "app"
    app:exe:server  the "server" executable of "app"

The file classifier decides which files of each local package matter for
the current targets. File watching uses the result to know what to watch.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from buildorch.errors import InvalidTargetError, UnknownTargetError
from buildorch.schemas import (
    InstallLocation,
    LocalPackage,
    NamedComponent,
    SourceMap,
    Target,
    TargetAll,
    TargetComps,
)

logger = logging.getLogger(__name__)


def parse_target(text: str) -> tuple[str, Target]:
    """
    Parse a single target string.

    Args:
        text: "pkg" or "pkg:component"

    Returns:
        Tuple of (package name, Target)

    Raises:
        InvalidTargetError: If the string is empty or the component is malformed
    """
    text = text.strip()
    name, sep, component = text.partition(":")
    if not name:
        raise InvalidTargetError(f"Invalid target: {text!r} (missing package name)")
    if not sep:
        return name, TargetAll()
    try:
        parsed = NamedComponent.parse(component)
    except ValueError as e:
        raise InvalidTargetError(f"Invalid target: {text!r} ({e})") from e
    return name, TargetComps(frozenset({parsed}))


def _merge(existing: Target | None, new: Target) -> Target:
    if existing is None:
        return new
    if isinstance(existing, TargetAll) or isinstance(new, TargetAll):
        return TargetAll()
    return TargetComps(existing.components | new.components)


def narrow_targets(source_map: SourceMap, texts: Sequence[str]) -> SourceMap:
    """
    Replace the source map's targets with exactly the given local targets.

    Components named for the same package are merged; naming the package
    itself anywhere selects all of its components.

    Raises:
        InvalidTargetError: If a target string is malformed
        UnknownTargetError: If a target is not a project or local dependency package
    """
    targets: dict[str, Target] = {}
    unknown: list[str] = []
    for text in texts:
        name, target = parse_target(text)
        dep = source_map.deps.get(name)
        is_local_dep = dep is not None and dep.location == InstallLocation.LOCAL
        if name not in source_map.project and not is_local_dep:
            if name not in unknown:
                unknown.append(name)
            continue
        targets[name] = _merge(targets.get(name), target)

    if unknown:
        raise UnknownTargetError(unknown)

    logger.debug("Narrowed targets to %s", ", ".join(sorted(targets)))
    return source_map.with_targets(targets)


def local_files(
    locals_: Iterable[LocalPackage],
    targets: Mapping[str, Target],
    watch_all: bool = False,
) -> dict[str, set[Path]]:
    """
    Compute the files relevant to the current targets, per local package.

    Args:
        locals_: Local packages (project packages and local dependencies)
        targets: Package name -> Target
        watch_all: Take every package's full file set regardless of targets

    Returns:
        Package name -> relevant files. Untargeted packages map to an empty set
        unless `watch_all` is set.
    """
    files: dict[str, set[Path]] = {}
    for lp in locals_:
        if watch_all:
            files[lp.name] = lp.files()
            continue
        target = targets.get(lp.name)
        if target is None:
            files[lp.name] = set()
        elif isinstance(target, TargetAll):
            files[lp.name] = lp.files()
        else:
            files[lp.name] = lp.files_for_components(target.components)
    return files


def relevant_files(
    locals_: Iterable[LocalPackage],
    targets: Mapping[str, Target],
    watch_all: bool = False,
) -> set[Path]:
    """Union of `local_files` across all packages."""
    result: set[Path] = set()
    for paths in local_files(locals_, targets, watch_all).values():
        result.update(paths)
    return result


def retarget_local(lp: LocalPackage, target: Target | None) -> LocalPackage:
    """
    Restrict a local package's targeted components to `target`.

    TargetAll keeps the package's current components. TargetComps selects
    exactly the named components, keeping only the unbuildable ones still
    among them. An untargeted package builds no components.
    """
    if isinstance(target, TargetAll):
        return lp
    if target is None:
        return replace(lp, components=frozenset(), unbuildable=frozenset())
    return replace(
        lp,
        components=frozenset(target.components),
        unbuildable=lp.unbuildable & target.components,
    )
