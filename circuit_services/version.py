"""
Version helpers for Circuit Services.

- ``__version__`` is the semantic version for packaging.
- ``git_describe()`` returns ``git describe`` metadata if available.
- ``build_version()`` composes a PEP 440 local version with git info.
"""

from __future__ import annotations

import os
import subprocess
from functools import lru_cache
from pathlib import Path
from typing import Optional

# Bump this when making a release; use semver (MAJOR.MINOR.PATCH)
__version__ = "0.3.0"


def _repo_root() -> Path:
    here = Path(__file__).resolve()
    for p in [here.parent, here.parent.parent]:
        if (p / ".git").exists():
            return p
    return here.parent


@lru_cache(maxsize=1)
def git_describe() -> Optional[str]:
    """
    Return `git describe --tags --long --dirty --always` output if available.
    """
    cmd = ["git", "-C", str(_repo_root()), "describe", "--tags", "--long", "--dirty", "--always"]
    try:
        out = subprocess.check_output(cmd, stderr=subprocess.DEVNULL, timeout=2.0)
        return out.decode().strip() or None
    except (OSError, subprocess.SubprocessError):
        # CI may provide environment variables instead of a git checkout
        return os.getenv("GIT_DESCRIBE") or os.getenv("GIT_REF") or None


def build_version(base: str = __version__) -> str:
    """
    Compose a PEP 440 compatible version that includes git info when present.

    Examples
    --------
    - "0.3.0"                  (no git available)
    - "0.3.0+gabc1234"         (commit attached)
    - "0.3.0+gabc1234.dirty"   (worktree is dirty)
    """
    desc = git_describe()
    if not desc:
        return base
    dirty = desc.endswith("-dirty")
    token = desc.replace("-dirty", "").split("-")[-1]
    if token.startswith("g"):
        token = token[1:]
    parts = [f"g{token}"]
    if dirty:
        parts.append("dirty")
    return f"{base}+{'.'.join(parts)}"


__all__ = ["__version__", "git_describe", "build_version"]
