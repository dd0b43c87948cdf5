"""
Console code page handling.

Compilers older than 7.10.3 print non-ASCII diagnostics in the console's
code page, which garbles output on Windows consoles that are not set to
UTF-8. While such a compiler is active the console is switched to UTF-8
for the duration of the build and restored afterwards.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

from buildorch.schemas import parse_version

logger = logging.getLogger(__name__)

UTF8_CODE_PAGE = 65001
FIXED_COMPILER_VERSION = (7, 10, 3)


def compiler_version_number(compiler: str) -> Optional[tuple[int, ...]]:
    """
    Extract the numeric version from compiler text like "ghc-8.10.7".

    Returns None when the text carries no parseable version.
    """
    _, _, version = compiler.rpartition("-")
    try:
        return parse_version(version)
    except ValueError:
        return None


def needs_code_page_fix(modify_code_page: bool, compiler: str, platform: str = sys.platform) -> bool:
    if not modify_code_page or not platform.startswith("win"):
        return False
    version = compiler_version_number(compiler)
    return version is not None and version < FIXED_COMPILER_VERSION


@contextmanager
def fix_code_page(modify_code_page: bool, compiler: str) -> Iterator[None]:
    """
    Run the enclosed block with a UTF-8 console code page if required.

    Args:
        modify_code_page: Whether the configuration allows changing the code page
        compiler: Active compiler version text
    """
    if not needs_code_page_fix(modify_code_page, compiler):
        yield
        return

    import ctypes

    kernel32 = ctypes.windll.kernel32
    orig_input = kernel32.GetConsoleCP()
    orig_output = kernel32.GetConsoleOutputCP()
    set_input = orig_input != UTF8_CODE_PAGE
    set_output = orig_output != UTF8_CODE_PAGE

    if set_input:
        kernel32.SetConsoleCP(UTF8_CODE_PAGE)
        logger.info("Setting codepage to UTF-8 (%d) to ensure correct output from the compiler", UTF8_CODE_PAGE)
    if set_output:
        kernel32.SetConsoleOutputCP(UTF8_CODE_PAGE)
    try:
        yield
    finally:
        if set_input:
            kernel32.SetConsoleCP(orig_input)
        if set_output:
            kernel32.SetConsoleOutputCP(orig_output)
