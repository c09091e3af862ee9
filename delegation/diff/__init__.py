"""
delegation.diff — binary diff codec for account state.

    from delegation.diff import compute_diff, DiffSet, apply_diff_copy
    diff = compute_diff(before, after)
    assert apply_diff_copy(before, DiffSet.parse(diff)) == after
"""

from .algorithm import (
    apply_diff_copy,
    apply_diff_in_place,
    compute_diff,
    detect_size_change,
    merge_diff_copy,
)
from .types import (
    DIFF_ALIGNMENT,
    SIZE_OF_CHANGED_LEN,
    SIZE_OF_HEADER,
    SIZE_OF_NUM_OFFSET_PAIRS,
    SIZE_OF_SINGLE_OFFSET_PAIR,
    DiffSet,
    OffsetPair,
    SizeChanged,
)

__all__ = [
    "compute_diff",
    "detect_size_change",
    "apply_diff_in_place",
    "apply_diff_copy",
    "merge_diff_copy",
    "DiffSet",
    "OffsetPair",
    "SizeChanged",
    "DIFF_ALIGNMENT",
    "SIZE_OF_CHANGED_LEN",
    "SIZE_OF_NUM_OFFSET_PAIRS",
    "SIZE_OF_SINGLE_OFFSET_PAIR",
    "SIZE_OF_HEADER",
]
