from __future__ import annotations

import struct

import pytest

from delegation.diff import (
    DiffSet,
    SizeChanged,
    apply_diff_copy,
    apply_diff_in_place,
    compute_diff,
    detect_size_change,
    merge_diff_copy,
)
from delegation.errors import ErrorCode, MalformedDataError


def _pairs(diff: DiffSet):
    return [(p.offset_in_diff, p.offset_in_data) for p in diff.offset_pairs]


def _hundred_bytes():
    original = bytes(range(100))
    changed = bytearray(original)
    changed[11:15] = b"\xaa\xbb\xcc\xdd"
    changed[71:79] = bytes(range(200, 208))
    return original, bytes(changed)


# ---------- compute ----------


def test_two_runs_encode_to_36_bytes() -> None:
    original, changed = _hundred_bytes()
    diff = compute_diff(original, changed)

    assert len(diff) == 36
    assert struct.unpack_from("<II", diff, 0) == (100, 2)
    parsed = DiffSet.parse(diff)
    assert _pairs(parsed) == [(0, 11), (4, 71)]
    assert bytes(parsed.raw_diff[24:]) == b"\xaa\xbb\xcc\xdd" + bytes(range(200, 208))


def test_identical_buffers_encode_header_only() -> None:
    data = b"delegated account state"
    diff = compute_diff(data, data)
    assert diff == struct.pack("<II", len(data), 0)
    assert DiffSet.parse(diff).segments_count == 0


def test_adjacent_changes_coalesce_into_one_segment() -> None:
    original = bytes(16)
    changed = bytearray(original)
    changed[4:9] = b"\x01" * 5
    parsed = DiffSet.parse(compute_diff(original, bytes(changed)))
    assert _pairs(parsed) == [(0, 4)]
    segment, target = parsed.segment_at(0)
    assert bytes(segment) == b"\x01" * 5
    assert target == range(4, 9)


def test_growth_adds_a_trailing_segment() -> None:
    original = bytes(8)
    changed = bytes(8) + b"tail"
    parsed = DiffSet.parse(compute_diff(original, changed))
    assert parsed.changed_len == 12
    assert _pairs(parsed) == [(0, 8)]
    assert detect_size_change(original, parsed) == SizeChanged.expanded(12)


def test_growth_segment_is_not_merged_with_a_run_touching_the_end() -> None:
    original = b"\x00" * 8
    changed = b"\x00" * 6 + b"\x01\x01" + b"\x02\x02"
    parsed = DiffSet.parse(compute_diff(original, changed))
    assert _pairs(parsed) == [(0, 6), (2, 8)]
    assert apply_diff_copy(original, parsed) == bytearray(changed)


def test_shrink_has_no_extra_segment() -> None:
    original = b"abcdefgh"
    changed = b"abcX"
    parsed = DiffSet.parse(compute_diff(original, changed))
    assert parsed.changed_len == 4
    assert _pairs(parsed) == [(0, 3)]
    change = detect_size_change(original, parsed)
    assert change == SizeChanged.shrunk(4)
    assert not change.is_expanded
    assert detect_size_change(len(original), parsed) == change
    assert detect_size_change(4, parsed) is None


def test_pure_truncation_is_header_only() -> None:
    parsed = DiffSet.parse(compute_diff(b"abcdef", b"abc"))
    assert parsed.segments_count == 0
    assert apply_diff_copy(b"abcdef", parsed) == bytearray(b"abc")


def test_empty_to_nonempty() -> None:
    parsed = DiffSet.parse(compute_diff(b"", b"xyz"))
    assert _pairs(parsed) == [(0, 0)]
    assert apply_diff_copy(b"", parsed) == bytearray(b"xyz")


# ---------- apply ----------


def test_apply_copy_reconstructs_changed() -> None:
    original, changed = _hundred_bytes()
    assert apply_diff_copy(original, DiffSet.parse(compute_diff(original, changed))) == bytearray(changed)


def test_apply_copy_does_not_touch_original() -> None:
    original = bytearray(b"0123456789")
    diff = DiffSet.parse(compute_diff(original, b"01234xx789"))
    apply_diff_copy(original, diff)
    assert original == bytearray(b"0123456789")


def test_apply_in_place_same_size() -> None:
    original, changed = _hundred_bytes()
    target = bytearray(original)
    apply_diff_in_place(target, DiffSet.parse(compute_diff(original, changed)))
    assert target == bytearray(changed)


@pytest.mark.parametrize("changed", [b"abcdefghij", b"abc"])
def test_apply_in_place_rejects_size_change(changed: bytes) -> None:
    original = b"abcdef"
    diff = DiffSet.parse(compute_diff(original, changed))
    with pytest.raises(MalformedDataError) as ei:
        apply_diff_in_place(bytearray(original), diff)
    assert ei.value.code == ErrorCode.INVALID_INSTRUCTION_DATA


# ---------- merge ----------


def test_merge_ignores_destination_contents() -> None:
    original, changed = _hundred_bytes()
    diff = DiffSet.parse(compute_diff(original, changed))
    for fill in (0x00, 0xFF, 0x5A):
        destination = bytearray([fill]) * len(original)
        merge_diff_copy(destination, original, diff)
        assert destination == bytearray(changed)


def test_merge_with_empty_diff_copies_original() -> None:
    original = b"unchanged state"
    destination = bytearray(len(original))
    merge_diff_copy(destination, original, DiffSet.parse(compute_diff(original, original)))
    assert destination == bytearray(original)


def test_merge_rejects_length_mismatch() -> None:
    original = b"abcdef"
    diff = DiffSet.parse(compute_diff(original, b"abXdef"))
    with pytest.raises(MalformedDataError) as ei:
        merge_diff_copy(bytearray(5), original, diff)
    assert ei.value.code == ErrorCode.MERGE_DIFF_ERROR
