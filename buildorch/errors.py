"""
Error classes for buildorch.

These error types mirror where a build can stop:
- Fatal pre-plan: the requested build is malformed (unbuildable components)
- Fatal post-plan: the plan violates a policy (local packages disallowed,
  unsupported manifest tooling)
- Query errors: a selector path does not fit the build info document

Every message starts with a stable error code so that users can search for
it regardless of wording changes.

Error handling contract:
- Validators raise immediately on fatal conditions
- Multi-offender errors aggregate every offender into one exception
- Advisory findings are logged as warnings, never raised
"""

from typing import Any, Sequence

from buildorch.schemas import NamedComponent, PackageIdentifier


class BuildError(Exception):
    """Base exception for buildorch."""
    pass


class SomeTargetsNotBuildable(BuildError):
    """
    Requested components are marked unbuildable in their manifests.

    Raised before the installed-state survey, so no planning work is done.
    """

    def __init__(self, unbuildable: Sequence[tuple[str, NamedComponent]]):
        self.unbuildable = list(unbuildable)
        listing = ", ".join(f"{name}:{component}" for name, component in self.unbuildable)
        super().__init__(
            "[S-7086] The following components have 'buildable: False' set in "
            f"their package description, and so cannot be targets: {listing}. "
            "To resolve this, either provide flags such that these components "
            "are buildable, or only specify buildable targets."
        )


class LocalPackagesPresent(BuildError):
    """The plan builds local packages but local builds are disallowed."""

    def __init__(self, identifiers: Sequence[PackageIdentifier]):
        self.identifiers = list(identifiers)
        listing = "\n".join(f"- {ident}" for ident in self.identifiers)
        super().__init__(
            "[S-5797] Local packages are not allowed in this configuration, "
            f"but the build plan includes:\n{listing}"
        )


class CabalVersionNotSupported(BuildError):
    """The active manifest tooling is older than the supported minimum."""

    def __init__(self, version: str):
        self.version = version
        super().__init__(
            "[S-5973] Cabal versions before 1.22 are not supported, but "
            f"version {version} was found. To fix this, consider updating the "
            "snapshot to lts-3.0 or later or to nightly-2015-05-05 or later."
        )


class InvalidTargetError(BuildError):
    """A target string could not be parsed."""
    pass


class UnknownTargetError(BuildError):
    """A target names a package that is not a local package."""

    def __init__(self, names: Sequence[str]):
        self.names = list(names)
        super().__init__(
            "[S-3127] Unknown local package targets: " + ", ".join(self.names)
        )


class QueryError(BuildError):
    """
    A selector path could not be applied to the build info document.

    Attributes:
        remaining: The unconsumed selector suffix, starting at the failing token
    """
    code = ""
    summary = ""

    def __init__(self, remaining: Sequence[str]):
        self.remaining = list(remaining)
        super().__init__(self._message())

    def _message(self) -> str:
        return f"Error: {self.code}\n{self.summary}: {self.remaining!r}"


class SelectorNotFound(QueryError):
    """An object does not have the selected key."""
    code = "[S-4419]"
    summary = "Selector not found"


class IndexOutOfRange(QueryError):
    """An array index is past the end of the array."""
    code = "[S-8422]"
    summary = "Index out of range"


class NoNumericSelector(QueryError):
    """An array was reached but the selector is not an index."""
    code = "[S-4360]"
    summary = "Encountered array and needed numeric selector"


class CannotApplySelector(QueryError):
    """
    A scalar was reached but selectors remain.

    Attributes:
        value: The scalar the selector was applied to
    """
    code = "[S-1711]"

    def __init__(self, value: Any, remaining: Sequence[str]):
        self.value = value
        super().__init__(remaining)

    @property
    def summary(self) -> str:
        return f"Cannot apply selector to {self.value!r}"
