from __future__ import annotations

import struct

import pytest

from delegation.diff import DiffSet, compute_diff
from delegation.errors import ErrorCode, MalformedDataError


def encode(changed_len: int, pairs, concat: bytes) -> bytes:
    out = struct.pack("<II", changed_len, len(pairs))
    for offset_in_diff, offset_in_data in pairs:
        out += struct.pack("<II", offset_in_diff, offset_in_data)
    return out + concat


def _code(buf, **kw) -> ErrorCode:
    with pytest.raises(MalformedDataError) as ei:
        DiffSet.parse(buf, **kw)
    return ei.value.code


def test_direct_construction_is_refused() -> None:
    with pytest.raises(TypeError):
        DiffSet()


@pytest.mark.parametrize("n", [0, 1, 4, 7])
def test_short_buffer(n: int) -> None:
    assert _code(bytes(n)) == ErrorCode.INVALID_DIFF


def test_short_buffer_reported_before_alignment() -> None:
    assert _code(bytes(8), offset=3) == ErrorCode.INVALID_DIFF


def test_misaligned_offset() -> None:
    buf = b"\x00" + encode(4, [], b"")
    assert _code(buf, offset=1) == ErrorCode.INVALID_DIFF_ALIGNMENT


def test_aligned_offset_inside_larger_buffer() -> None:
    diff = encode(4, [(0, 1)], b"\x07")
    buf = b"pad!" + diff + b"trailer"
    parsed = DiffSet.parse(buf, offset=4, end=4 + len(diff))
    assert parsed.changed_len == 4
    assert [(bytes(s), t) for s, t in parsed] == [(b"\x07", range(1, 2))]


def test_header_longer_than_buffer() -> None:
    buf = struct.pack("<II", 10, 3) + struct.pack("<II", 0, 0)
    assert _code(buf) == ErrorCode.INVALID_DIFF


def test_header_exactly_buffer_requires_zero_segments() -> None:
    assert DiffSet.parse(encode(10, [], b"")).segments_count == 0
    buf = encode(10, [(0, 0)], b"")
    assert _code(buf) == ErrorCode.INVALID_DIFF


def test_segment_past_concatenated_bytes() -> None:
    buf = encode(10, [(0, 0), (5, 4)], b"abc")
    assert _code(buf) == ErrorCode.INVALID_DIFF


def test_non_monotonic_offsets() -> None:
    buf = encode(10, [(2, 0), (1, 5)], b"abcd")
    assert _code(buf) == ErrorCode.INVALID_DIFF


def test_empty_segment() -> None:
    buf = encode(10, [(0, 0), (0, 5)], b"ab")
    assert _code(buf) == ErrorCode.INVALID_DIFF


def test_offset_in_data_out_of_range() -> None:
    buf = encode(4, [(0, 4)], b"a")
    assert _code(buf) == ErrorCode.INVALID_DIFF


def test_target_range_past_changed_len() -> None:
    buf = encode(4, [(0, 2)], b"abc")
    assert _code(buf) == ErrorCode.INVALID_DIFF


def test_accessors_and_restartable_iteration() -> None:
    original = bytes(32)
    changed = bytearray(original)
    changed[3] = 1
    changed[20:22] = b"\x02\x03"
    diff = DiffSet.parse(compute_diff(original, bytes(changed)))

    assert diff.changed_len == 32
    assert diff.segments_count == 2 == len(diff)
    first = [(bytes(s), t) for s, t in diff]
    second = [(bytes(s), t) for s, t in diff]
    assert first == second == [(b"\x01", range(3, 4)), (b"\x02\x03", range(20, 22))]
    assert diff.segment_at(2) is None
    assert diff.segment_at(-1) is None
    assert "segments=2" in repr(diff)


def test_segments_are_views_not_copies() -> None:
    buf = bytearray(encode(4, [(0, 0)], b"\x09"))
    diff = DiffSet.parse(buf)
    segment, _ = diff.segment_at(0)
    assert isinstance(segment, memoryview)
    assert segment.tobytes() == b"\x09"
