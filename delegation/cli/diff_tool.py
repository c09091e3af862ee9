#!/usr/bin/env python3
"""
delegation.cli.diff_tool — compute, apply and inspect account-state diffs.

Subcommands:
  compute ORIGINAL CHANGED [-o OUT]   encode the diff turning ORIGINAL into CHANGED
  apply   ORIGINAL DIFF    [-o OUT]   reconstruct the changed bytes from ORIGINAL + DIFF
  info    DIFF [--json]               print the header, offset pairs and segment ranges

Usage:
    python -m delegation.cli.diff_tool compute before.bin after.bin -o state.diff
    python -m delegation.cli.diff_tool apply before.bin state.diff -o after.bin
    python -m delegation.cli.diff_tool info state.diff --json

Without -o, binary output is written to stdout. Exit codes: 0 ok, 1 malformed
diff, 2 usage / IO error.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from delegation.diff import DiffSet, apply_diff_copy, compute_diff, detect_size_change
from delegation.errors import DelegationError
from delegation.logging import configure
from delegation.version import __version__, git_describe


def eprint(*args: object) -> None:
    print(*args, file=sys.stderr)


# --- Helpers -------------------------------------------------------------------------------------
def _read(path: Path) -> bytes:
    if str(path) == "-":
        return sys.stdin.buffer.read()
    return path.read_bytes()


def _write(data: bytes, out: Optional[Path]) -> None:
    if out is None:
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
    else:
        out.write_bytes(data)


def describe(diff: DiffSet, original_len: Optional[int] = None) -> Dict[str, Any]:
    """JSON-friendly summary of a parsed diff."""
    out: Dict[str, Any] = {
        "changedLen": diff.changed_len,
        "segments": [
            {
                "offsetInDiff": pair.offset_in_diff,
                "offsetInData": pair.offset_in_data,
                "len": len(target),
                "bytes": bytes(segment).hex(),
            }
            for pair, (segment, target) in zip(diff.offset_pairs, diff)
        ],
        "encodedLen": len(diff.raw_diff),
    }
    if original_len is not None:
        change = detect_size_change(original_len, diff)
        out["sizeChange"] = None if change is None else {"kind": change.kind, "newSize": change.new_size}
    return out


def _length(value: str) -> int:
    n = int(value)
    if n < 0:
        raise argparse.ArgumentTypeError(f"length must be >= 0, got {n}")
    return n


# --- Subcommands ---------------------------------------------------------------------------------
def _cmd_compute(ns: argparse.Namespace) -> int:
    original = _read(ns.original)
    changed = _read(ns.changed)
    diff = compute_diff(original, changed)
    if not ns.quiet:
        parsed = DiffSet.parse(diff)
        eprint(f"[diff_tool] {len(original)} -> {len(changed)} bytes, {parsed.segments_count} segments, {len(diff)} encoded")
    _write(diff, ns.out)
    return 0


def _cmd_apply(ns: argparse.Namespace) -> int:
    original = _read(ns.original)
    diff = DiffSet.parse(_read(ns.diff))
    changed = apply_diff_copy(original, diff)
    if not ns.quiet:
        eprint(f"[diff_tool] applied {diff.segments_count} segments: {len(original)} -> {len(changed)} bytes")
    _write(bytes(changed), ns.out)
    return 0


def _cmd_info(ns: argparse.Namespace) -> int:
    diff = DiffSet.parse(_read(ns.diff))
    info = describe(diff, ns.original_len)
    if ns.json:
        print(json.dumps(info, indent=2, sort_keys=True))
        return 0
    print(f"DIFF CHANGED_LEN={info['changedLen']} SEGMENTS={len(info['segments'])} ENCODED_LEN={info['encodedLen']}")
    for i, seg in enumerate(info["segments"]):
        print(f"  [{i}] data[{seg['offsetInData']}:{seg['offsetInData'] + seg['len']}] <- diff[{seg['offsetInDiff']}:]")
    if "sizeChange" in info:
        print(f"SIZE_CHANGE {info['sizeChange']}")
    return 0


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Compute, apply and inspect account-state diffs.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__} ({git_describe()})")
    p.add_argument("--quiet", action="store_true", help="Suppress progress messages on stderr")
    p.add_argument("--log-level", default=None, help="Logging level (default: DLP_LOG_LEVEL or INFO)")
    sub = p.add_subparsers(dest="command", required=True)

    c = sub.add_parser("compute", help="Encode the diff between two files")
    c.add_argument("original", type=Path, help="Original bytes ('-' for stdin)")
    c.add_argument("changed", type=Path, help="Changed bytes")
    c.add_argument("-o", "--out", type=Path, default=None, help="Output file (default: stdout)")
    c.set_defaults(func=_cmd_compute)

    a = sub.add_parser("apply", help="Apply an encoded diff to a file")
    a.add_argument("original", type=Path, help="Original bytes ('-' for stdin)")
    a.add_argument("diff", type=Path, help="Encoded diff")
    a.add_argument("-o", "--out", type=Path, default=None, help="Output file (default: stdout)")
    a.set_defaults(func=_cmd_apply)

    i = sub.add_parser("info", help="Describe an encoded diff")
    i.add_argument("diff", type=Path, help="Encoded diff ('-' for stdin)")
    i.add_argument("--original-len", type=_length, default=None, help="Report the size change against this length")
    i.add_argument("--json", action="store_true", help="Print JSON")
    i.set_defaults(func=_cmd_info)
    return p.parse_args(argv)


# --- Main ----------------------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> int:
    ns = _parse_args(sys.argv[1:] if argv is None else argv)
    configure(level=ns.log_level, stream=sys.stderr)
    try:
        return ns.func(ns)
    except FileNotFoundError as e:
        eprint(f"[diff_tool] File not found: {e.filename}")
        return 2
    except OSError as e:
        eprint(f"[diff_tool] Cannot read or write {e.filename}: {e.strerror or e}")
        return 2
    except DelegationError as e:
        eprint(f"[diff_tool] {e.code.name}: {e}")
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
