"""Compiler version utilities for deploy-orchestrator."""


def normalize_compiler_version(version: str) -> str:
    """
    Reduce a declared compiler version to its bare semantic version.

    Accepted forms:
    - "0.8.7"
    - "v0.8.7"
    - "0.8.7+commit.e28d00a7"
    - "v0.8.7+commit.e28d00a7.Emscripten.clang"

    Args:
        version: Compiler version as declared by an artifact or config

    Returns:
        Bare version string (e.g., "0.8.7")
    """
    version = version.strip()
    if version.lower().startswith("v"):
        version = version[1:]
    return version.split("+", 1)[0]


def explorer_compiler_version(version: str) -> str:
    """
    Format a compiler version the way block explorers expect it.

    Explorers want the long form ("v0.8.7+commit.e28d00a7"). When only a
    short version is known the "v" prefix is still added.

    Args:
        version: Compiler version (short or long form)

    Returns:
        Version string with a leading "v"
    """
    version = version.strip()
    return version if version.startswith("v") else f"v{version}"
