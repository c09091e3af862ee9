"""
delegation.diff.types — the parsed, bounds-checked view over an encoded diff.

Wire format (all integers u32 little-endian):

    | changed_len | segment_count | (offset_in_diff, offset_in_data) × n | concatenated segments |
    |== 4 bytes ==|=== 4 bytes ===|============= 8 bytes each =========|======= M bytes =======|

`offset_in_diff` is relative to the beginning of the concatenated segment bytes
(so the first pair always carries 0), and segment i ends where segment i+1
begins (or at the end of the concatenated bytes for the last one).

`DiffSet.parse` validates everything up front: once a DiffSet exists, every
`segment_at(i)` and every step of iteration is known to be in range. Segment
bytes are `memoryview` slices into the caller's buffer; nothing is copied.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple, Union

from delegation.errors import ErrorCode, fail

BytesLike = Union[bytes, bytearray, memoryview]

SIZE_OF_CHANGED_LEN = 4
SIZE_OF_NUM_OFFSET_PAIRS = 4
SIZE_OF_SINGLE_OFFSET_PAIR = 8
SIZE_OF_HEADER = SIZE_OF_CHANGED_LEN + SIZE_OF_NUM_OFFSET_PAIRS

#: Encoded diffs must start at a multiple of this within their backing buffer.
DIFF_ALIGNMENT = 4

_HEADER = struct.Struct("<II")
_PAIR = struct.Struct("<II")


@dataclass(frozen=True)
class OffsetPair:
    offset_in_diff: int
    offset_in_data: int


@dataclass(frozen=True)
class SizeChanged:
    """Expanded(n) / Shrunk(n): the diff's target length differs from the original."""

    kind: str
    new_size: int

    EXPANDED = "expanded"
    SHRUNK = "shrunk"

    @classmethod
    def expanded(cls, n: int) -> "SizeChanged":
        return cls(cls.EXPANDED, n)

    @classmethod
    def shrunk(cls, n: int) -> "SizeChanged":
        return cls(cls.SHRUNK, n)

    @property
    def is_expanded(self) -> bool:
        return self.kind == self.EXPANDED


Segment = Tuple[memoryview, range]


class DiffSet:
    """
    Read-only view over an encoded diff.

    Construct with `DiffSet.parse(buffer, offset=0, end=None)`. Iterating a DiffSet
    yields `(segment_bytes, target_range)` pairs in order; iteration can be
    restarted any number of times.
    """

    __slots__ = ("_raw", "_changed_len", "_pairs", "_concat", "_segments")

    def __init__(self) -> None:
        raise TypeError("use DiffSet.parse(...)")

    @classmethod
    def parse(cls, buffer: BytesLike, offset: int = 0, end: Optional[int] = None) -> "DiffSet":
        """
        Parse the diff stored at `buffer[offset:end]`.

        Raises MalformedDataError(INVALID_DIFF_ALIGNMENT) when `offset` is not a
        multiple of 4, MalformedDataError(INVALID_DIFF) for any structural problem.
        """
        view = memoryview(buffer).cast("B")
        end = len(view) if end is None else end
        if offset < 0 or end > len(view) or offset > end:
            raise fail(ErrorCode.INVALID_DIFF, offset=offset, end=end, buffer_len=len(view))

        raw = view[offset:end]
        if len(raw) < SIZE_OF_HEADER:
            raise fail(ErrorCode.INVALID_DIFF, len=len(raw))
        if offset % DIFF_ALIGNMENT != 0:
            raise fail(ErrorCode.INVALID_DIFF_ALIGNMENT, offset=offset)

        changed_len, count = _HEADER.unpack_from(raw, 0)
        header_len = SIZE_OF_HEADER + count * SIZE_OF_SINGLE_OFFSET_PAIR

        if len(raw) < header_len:
            raise fail(ErrorCode.INVALID_DIFF, len=len(raw), header_len=header_len)
        if len(raw) == header_len and count != 0:
            raise fail(ErrorCode.INVALID_DIFF, len=len(raw), segments=count)

        pairs = [
            OffsetPair(*_PAIR.unpack_from(raw, SIZE_OF_HEADER + i * SIZE_OF_SINGLE_OFFSET_PAIR))
            for i in range(count)
        ]
        concat = raw[header_len:]

        self = object.__new__(cls)
        self._raw = raw
        self._changed_len = changed_len
        self._pairs = tuple(pairs)
        self._concat = concat
        self._segments = tuple(_validate_segments(pairs, concat, changed_len))
        return self

    # ------------------------------------------------------------------ accessors

    @property
    def changed_len(self) -> int:
        return self._changed_len

    @property
    def segments_count(self) -> int:
        return len(self._pairs)

    @property
    def offset_pairs(self) -> Tuple[OffsetPair, ...]:
        return self._pairs

    @property
    def raw_diff(self) -> memoryview:
        return self._raw

    def segment_at(self, index: int) -> Optional[Segment]:
        """Segment bytes and target range for `index`, or None when out of range."""
        if not 0 <= index < len(self._segments):
            return None
        return self._segments[index]

    def __iter__(self) -> Iterator[Segment]:
        return iter(self._segments)

    def __len__(self) -> int:
        return len(self._segments)

    def __repr__(self) -> str:
        return (
            f"DiffSet(changed_len={self._changed_len}, segments={len(self._pairs)}, "
            f"diff_bytes={len(self._concat)})"
        )


def _validate_segments(
    pairs: List[OffsetPair], concat: memoryview, changed_len: int
) -> Iterator[Segment]:
    concat_len = len(concat)
    for i, pair in enumerate(pairs):
        begin = pair.offset_in_diff
        end = pairs[i + 1].offset_in_diff if i + 1 < len(pairs) else concat_len
        if end > concat_len or begin >= end or pair.offset_in_data >= changed_len:
            raise fail(
                ErrorCode.INVALID_DIFF,
                segment=i,
                begin=begin,
                end=end,
                offset_in_data=pair.offset_in_data,
            )
        target = range(pair.offset_in_data, pair.offset_in_data + (end - begin))
        if target.stop > changed_len:
            raise fail(ErrorCode.INVALID_DIFF, segment=i, target_end=target.stop)
        yield concat[begin:end], target


__all__ = [
    "BytesLike",
    "DIFF_ALIGNMENT",
    "SIZE_OF_CHANGED_LEN",
    "SIZE_OF_NUM_OFFSET_PAIRS",
    "SIZE_OF_SINGLE_OFFSET_PAIR",
    "SIZE_OF_HEADER",
    "OffsetPair",
    "SizeChanged",
    "DiffSet",
]
