"""
delegation.processor.utils — precondition checks and cell lifecycle helpers.
"""

from .lifecycle import close_pda, close_pda_with_fees, create_pda, fee_tiers
from .requires import *  # noqa: F401,F403
from .requires import __all__ as _requires_all

__all__ = ["create_pda", "close_pda", "close_pda_with_fees", "fee_tiers", *_requires_all]
