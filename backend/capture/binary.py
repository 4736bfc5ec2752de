"""
Native capture binary lookup.

Search order:
1. $DG_CAPTURE_BINARY_DIR/<name>
2. <repo>/bin/<name>, next to the backend source root
"""

from __future__ import annotations

import os
from pathlib import Path

from constants import BINARY_DIR_ENV
from errors import SubprocessError


_PACKAGED_BIN_DIR = Path(__file__).resolve().parents[2] / "bin"


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def resolve_binary_path(name: str) -> str:
    """
    Return the absolute path of a native binary.

    Raises:
        SubprocessError listing every searched location when not found.
    """
    searched: list[str] = []

    env_dir = os.environ.get(BINARY_DIR_ENV)
    if env_dir:
        candidate = Path(env_dir) / name
        searched.append(str(candidate))
        if _is_executable(candidate):
            return str(candidate)

    candidate = _PACKAGED_BIN_DIR / name
    searched.append(str(candidate))
    if _is_executable(candidate):
        return str(candidate)

    raise SubprocessError(
        name,
        f"Native binary not found. Searched: {', '.join(searched)}. "
        f"Set {BINARY_DIR_ENV} to override.",
    )
