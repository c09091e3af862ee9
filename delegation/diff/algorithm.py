"""
delegation.diff.algorithm — compute and apply byte-level diffs.

Example: a 100-byte account where bytes 11..14 and 71..78 changed encodes as

    | 100 | 2 | 0 11 | 4 71 | b11 b12 b13 b14 b71 ... b78 |

i.e. 8 header bytes, two 8-byte offset pairs and 12 segment bytes (36 total).

Size changes:
  • changed longer than original → one extra trailing segment covering the extension
    (never coalesced with a run that touches the end of the common prefix)
  • changed shorter than original → no extra segment; truncation is implied by
    the recorded changed length
"""

from __future__ import annotations

import struct
from typing import List, Optional, Tuple, Union

from delegation.errors import ErrorCode, fail

from .types import (
    SIZE_OF_HEADER,
    SIZE_OF_SINGLE_OFFSET_PAIR,
    BytesLike,
    DiffSet,
    SizeChanged,
)

_HEADER = struct.Struct("<II")
_PAIR = struct.Struct("<II")


def _changed_runs(original: BytesLike, changed: BytesLike) -> List[Tuple[int, int]]:
    """Maximal [start, end) runs of differing bytes over the common prefix."""
    runs: List[Tuple[int, int]] = []
    n = min(len(original), len(changed))
    i = 0
    while i < n:
        if original[i] != changed[i]:
            start = i
            while i < n and original[i] != changed[i]:
                i += 1
            runs.append((start, i))
        else:
            i += 1
    if len(changed) > len(original):
        runs.append((len(original), len(changed)))
    return runs


def compute_diff(original: BytesLike, changed: BytesLike) -> bytes:
    """
    Encode the difference between `original` and `changed`.

    The returned bytes are a fresh object, so offset 0 is trivially aligned for
    `DiffSet.parse`.
    """
    runs = _changed_runs(original, changed)
    diff_size = sum(end - start for start, end in runs)
    out = bytearray(SIZE_OF_HEADER + SIZE_OF_SINGLE_OFFSET_PAIR * len(runs) + diff_size)

    _HEADER.pack_into(out, 0, len(changed), len(runs))

    pos = SIZE_OF_HEADER
    offset_in_diff = 0
    for start, end in runs:
        _PAIR.pack_into(out, pos, offset_in_diff, start)
        pos += SIZE_OF_SINGLE_OFFSET_PAIR
        offset_in_diff += end - start

    src = memoryview(changed)
    for start, end in runs:
        out[pos : pos + (end - start)] = src[start:end]
        pos += end - start

    return bytes(out)


def detect_size_change(original: Union[BytesLike, int], diffset: DiffSet) -> Optional[SizeChanged]:
    """
    Expanded/Shrunk to the diff's changed length, or None when sizes agree.

    `original` is the original buffer or just its length.
    """
    original_len = original if isinstance(original, int) else len(original)
    if diffset.changed_len < original_len:
        return SizeChanged.shrunk(diffset.changed_len)
    if diffset.changed_len > original_len:
        return SizeChanged.expanded(diffset.changed_len)
    return None


def apply_diff_in_place(target: bytearray, diffset: DiffSet) -> None:
    """
    Overwrite the changed segments of `target`.

    `target` must be a mutable buffer whose length already equals the diff's
    changed length; otherwise MalformedDataError(INVALID_INSTRUCTION_DATA).
    """
    if detect_size_change(target, diffset) is not None:
        raise fail(
            ErrorCode.INVALID_INSTRUCTION_DATA,
            target_len=len(target),
            changed_len=diffset.changed_len,
        )
    _apply(target, diffset)


def apply_diff_copy(original: BytesLike, diffset: DiffSet) -> bytearray:
    """Copy `original`, resize it to the changed length (zero-fill / truncate), apply."""
    new_size = diffset.changed_len
    applied = bytearray(original[:new_size])
    if len(applied) < new_size:
        applied.extend(bytes(new_size - len(applied)))
    _apply(applied, diffset)
    return applied


def merge_diff_copy(destination: bytearray, original: BytesLike, diffset: DiffSet) -> None:
    """
    Fill `destination` with the changed version of `original`.

    Unchanged spans come from `original`, changed ones from the diff, so the
    previous contents of `destination` never leak through. Lengths must match,
    otherwise MalformedDataError(MERGE_DIFF_ERROR).
    """
    if len(destination) != len(original):
        raise fail(ErrorCode.MERGE_DIFF_ERROR, destination_len=len(destination), original_len=len(original))
    write_index = 0
    for segment, target in diffset:
        if target.stop > len(destination):
            raise fail(ErrorCode.MERGE_DIFF_ERROR, target_end=target.stop, destination_len=len(destination))
        if write_index < target.start:
            destination[write_index : target.start] = original[write_index : target.start]
        destination[target.start : target.stop] = segment
        write_index = target.stop
    if write_index < len(original):
        destination[write_index:] = original[write_index:]


def _apply(buf: bytearray, diffset: DiffSet) -> None:
    for segment, target in diffset:
        buf[target.start : target.stop] = segment


__all__ = [
    "compute_diff",
    "detect_size_change",
    "apply_diff_in_place",
    "apply_diff_copy",
    "merge_diff_copy",
]
