"""
Query - selector-based access to build information.

The build information document is a plain tree of dicts, lists and
scalars:

    compiler:
      actual: ghc-9.4.8
      wanted: ghc-9.4.8
    locals:
      app:
        path: /work/app
        version: 0.1.0

A selector path is a list of tokens, one per level: object keys select a
member, decimal tokens index into arrays. `select` walks the path and
reports the unconsumed suffix on failure, starting at the failing token.
"""

import re
from typing import Any, Mapping, Sequence

import yaml

from buildorch.build import BuildEnv
from buildorch.errors import CannotApplySelector, IndexOutOfRange, NoNumericSelector, SelectorNotFound


GLOBAL_HINTS_KEY = "global-hints"
GLOBAL_HINTS_COMMENT = (
    "# Note: global-hints is experimental and may be renamed / removed in the future.\n"
    "# See https://github.com/commercialhaskell/stack/issues/3796\n"
)

_INDEX_PATTERN = re.compile(r"[0-9]+")


def select(value: Any, path: Sequence[str]) -> Any:
    """
    Select a sub-value of `value` by selector path.

    Args:
        value: Document to select from
        path: Selector tokens

    Returns:
        The selected value (the document itself for an empty path)

    Raises:
        SelectorNotFound: An object lacks the selected key
        IndexOutOfRange: An array index is past the end
        NoNumericSelector: An array was reached with a non-numeric selector
        CannotApplySelector: A scalar was reached with selectors left
    """
    path = list(path)
    for i, selector in enumerate(path):
        remaining = path[i:]
        if isinstance(value, Mapping):
            if selector not in value:
                raise SelectorNotFound(remaining)
            value = value[selector]
        elif isinstance(value, (list, tuple)):
            if not _INDEX_PATTERN.fullmatch(selector):
                raise NoNumericSelector(remaining)
            index = int(selector)
            if index >= len(value):
                raise IndexOutOfRange(remaining)
            value = value[index]
        else:
            raise CannotApplySelector(value, remaining)
    return value


def raw_build_info(env: BuildEnv) -> dict[str, Any]:
    """Get the raw build information document."""
    document: dict[str, Any] = {
        "locals": {
            lp.package.name: {
                "version": lp.package.version,
                "path": str(lp.manifest.parent),
            }
            for lp in sorted(env.project_locals, key=lambda lp: lp.package.name)
        },
        "compiler": {
            "wanted": env.wanted_compiler,
            "actual": env.actual_compiler,
        },
    }
    if env.global_hints:
        document[GLOBAL_HINTS_KEY] = dict(sorted(env.global_hints.items()))
    return document


def _to_yaml(value: Any) -> str:
    text = yaml.safe_dump(value, default_flow_style=False, sort_keys=True, allow_unicode=True)
    # Scalars are dumped as a document with an explicit end marker
    if text.endswith("\n...\n"):
        text = text[: -len("...\n")]
    return text


def render_build_info(document: Any, selectors: Sequence[str]) -> str:
    """
    Select from `document` and render the result as YAML.

    The global-hints section is experimental, so a note is attached
    whenever it is part of the output: above the section when the whole
    document is shown, after the value when the path starts inside it.
    """
    text = _to_yaml(select(document, selectors))
    if not selectors:
        section = f"\n{GLOBAL_HINTS_KEY}:\n"
        return text.replace(section, "\n" + GLOBAL_HINTS_COMMENT + section.lstrip("\n"))
    if selectors[0] == GLOBAL_HINTS_KEY:
        # Appended rather than prepended so the first line stays the value itself
        return text + GLOBAL_HINTS_COMMENT
    return text


def query_build_info(env: BuildEnv, selectors: Sequence[str]) -> str:
    """
    Query information about the build, rendered as YAML.

    Args:
        env: Build environment
        selectors: Selector path into the build information document

    Returns:
        Rendered YAML text

    Raises:
        QueryError: If the selector path does not fit the document
    """
    return render_build_info(raw_build_info(env), list(selectors))
