"""
delegation.cli — command-line entrypoints for local testing and inspection.

  • delegation.cli.diff_tool  — compute, apply or inspect account-state diffs between files

Usage (examples):
    python -m delegation.cli.diff_tool --help
    python -m delegation.cli.diff_tool compute before.bin after.bin -o state.diff
"""

from __future__ import annotations

from ..version import __version__

__all__ = ["__version__"]
