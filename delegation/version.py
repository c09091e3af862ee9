"""
delegation.version — release string and source revision for `dlp-diff --version`.
"""

from __future__ import annotations

import subprocess
from functools import lru_cache
from pathlib import Path

__version__ = "0.3.0"

_SOURCE_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=1)
def git_describe() -> str:
    """
    `git describe` of the checkout this package was imported from.

    Installed wheels have no checkout; they report `<version>+local`.
    """
    try:
        out = subprocess.run(
            ["git", "describe", "--tags", "--dirty", "--always"],
            cwd=_SOURCE_DIR,
            capture_output=True,
            check=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        return f"{__version__}+local"
    return out.stdout.decode("utf-8", "replace").strip() or f"{__version__}+local"


__all__ = ["__version__", "git_describe"]
