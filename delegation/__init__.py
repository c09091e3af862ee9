"""
Delegation program — custody & handoff of ledger accounts to a validator-driven
execution domain.

This package exposes only lightweight metadata at import time. The diff codec,
the ledger model and the instruction processors should be imported explicitly
from their subpackages.
"""

from .version import __version__, git_describe

__all__ = ["__version__", "git_describe"]
