"""
Cross-compilation target specifications.

This module centralizes the list of supported target triples and the
per-target facts derived from them (OS family, shared library extension),
making it easier to maintain and extend.
"""

from typing import Dict, Tuple


# Supported targets grouped by OS family
OS_FAMILIES: Dict[str, Tuple[str, ...]] = {
    "android": (
        "android-arm",
        "android-arm64",
    ),
    "linux": (
        "default",
        "linux-arm64",
        "linux-armv5-musl",
        "linux-armv5",
        "linux-armv6",
        "linux-armv7",
        "linux-armv7a",
        "linux-mips",
        "linux-mipsel",
        "linux-ppc64le",
        "linux-s390x",
        "linux-x64",
        "linux-x86",
        "manylinux-common",
        "manylinux1-x64",
        "manylinux1-x86",
        "manylinux2010-x64",
        "manylinux2010-x86",
        "manylinux2014-aarch64",
        "manylinux2014-x64",
        "manylinux2014-x86",
    ),
    "web": ("web-wasm",),
    "windows": (
        "windows-shared-x64-posix",
        "windows-shared-x64",
        "windows-shared-x86",
        "windows-static-x64-posix",
        "windows-static-x64",
        "windows-static-x86",
    ),
    "darwin": (
        "apple-darwin-x64",
        "apple-darwin-x86",
        "apple-darwin-arm64",
    ),
}

VALID_TARGETS: Tuple[str, ...] = tuple(
    target for family in OS_FAMILIES.values() for target in family
)

# Pseudo-target holding configuration shared by every target
ANY_TARGET = "any"
DEFAULT_TARGET = "default"


def is_valid_target(target: str) -> bool:
    """Check whether a target triple is one of the supported images."""
    return target in VALID_TARGETS


def os_family(target: str) -> str:
    """
    Get the OS family a target belongs to.

    Args:
        target: Target triple (e.g., 'linux-x64')

    Returns:
        Family name, or an empty string if the target is unknown
    """
    for family, members in OS_FAMILIES.items():
        if target in members:
            return family
    return ""


def library_extension(target: str) -> str:
    """
    Get the shared library file extension for a target.

    The darwin check runs last, so a triple mentioning both windows and
    darwin resolves to 'dylib'.

    Args:
        target: Target triple

    Returns:
        'dll', 'dylib' or 'so'
    """
    extension = "so"
    if "windows" in target:
        extension = "dll"
    if "darwin" in target:
        extension = "dylib"
    return extension


def substitute_build_variables(target: str, text: str) -> str:
    """
    Replace build variable tokens in a recipe line.

    Supported tokens are ${LIB_EXT} and ${TARGET_TRIPLE}. Each token is
    replaced everywhere with a single str.replace pass.

    Args:
        target: Target triple the recipe is for
        text: Recipe text

    Returns:
        Text with all tokens substituted
    """
    replacements = (
        ("${LIB_EXT}", library_extension(target)),
        ("${TARGET_TRIPLE}", target),
    )
    for token, value in replacements:
        text = text.replace(token, value)
    return text
