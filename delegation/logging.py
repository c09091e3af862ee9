"""
delegation.logging — structured logging for processors and tooling.

- JSON or concise text formats
- Context-local fields via `contextvars` (op, delegated_account, validator, nonce)
- Safe serialization (bytes → hex)

Usage
-----
    from delegation import logging as dlog

    dlog.configure(level="DEBUG")          # once, from a CLI or test session
    with dlog.op_scope("commit_state", delegated_account=addr, validator=v):
        log.info("commit accepted")

Processors only ever call `logging.getLogger(__name__)`; the formatters below pick
up whatever fields the enclosing `op_scope` bound.
"""

from __future__ import annotations

import datetime as _dt
import io
import json
import logging
import os
import sys
import traceback
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional

# ----------------------------
# Context
# ----------------------------

_LOG_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("_DLP_LOG_CONTEXT", default={})

DEFAULT_CONTEXT_KEYS = (
    "op",
    "delegated_account",
    "validator",
    "nonce",
)

_RESERVED = frozenset(
    (
        "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
        "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
        "created", "msecs", "relativeCreated", "thread", "threadName",
        "processName", "process", "taskName", "message", "asctime",
    )
)


def context() -> Dict[str, Any]:
    """Return a *copy* of the active logging context."""
    return dict(_LOG_CONTEXT.get())


def bind(**fields: Any) -> None:
    """Merge fields into the active context."""
    cur = dict(_LOG_CONTEXT.get())
    cur.update({k: _coerce_value(v) for k, v in fields.items()})
    _LOG_CONTEXT.set(cur)


def unbind(*keys: str) -> None:
    cur = dict(_LOG_CONTEXT.get())
    for k in keys:
        cur.pop(k, None)
    _LOG_CONTEXT.set(cur)


def clear_context() -> None:
    _LOG_CONTEXT.set({})


@contextmanager
def op_scope(op: str, **fields: Any) -> Iterator[None]:
    """Bind `op` (and extra fields) for the duration of one instruction."""
    prev = dict(_LOG_CONTEXT.get())
    try:
        bind(op=op, **fields)
        yield
    finally:
        _LOG_CONTEXT.set(prev)


def _coerce_value(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v).hex()
    if isinstance(v, (list, tuple)):
        return [_coerce_value(x) for x in v]
    if isinstance(v, dict):
        return {str(k): _coerce_value(x) for k, x in v.items()}
    return str(v)


def _utcnow_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="milliseconds")


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        k: _coerce_value(v)
        for k, v in record.__dict__.items()
        if not k.startswith("_") and k not in _RESERVED
    }


# ----------------------------
# Formatters
# ----------------------------


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _utcnow_iso(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(context())
        for k, v in _extras(record).items():
            payload.setdefault(k, v)
        if record.exc_info:
            payload["err"] = "".join(traceback.format_exception(*record.exc_info)).rstrip()
        return json.dumps(payload, separators=(",", ":"), default=str)


class TextFormatter(logging.Formatter):
    """
    One-liner:
      2026-01-05T12:34:56.789+00:00 | INFO  | delegation.processor.finalize | op=finalize validator=ab.. | finalized
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = context()
        parts = [f"{k}={_short(ctx[k])}" for k in DEFAULT_CONTEXT_KEYS if ctx.get(k) is not None]
        for k, v in _extras(record).items():
            if k not in ctx:
                parts.append(f"{k}={_short(v)}")
        line = f"{_utcnow_iso()} | {record.levelname:<5} | {record.name}"
        if parts:
            line += " | " + " ".join(parts)
        line += f" | {record.getMessage()}"
        if record.exc_info:
            line += "\n" + "".join(traceback.format_exception(*record.exc_info)).rstrip()
        return line


def _short(v: Any) -> str:
    s = str(v)
    return s[:12] + ".." if len(s) > 16 else s


# ----------------------------
# Public setup API
# ----------------------------


def configure(
    *,
    json: Optional[bool] = None,
    level: Optional[str | int] = None,
    stream: io.TextIOBase = sys.stderr,
) -> None:
    """
    Configure the `delegation` logger tree.

    json  : None → decided by DLP_LOG_FORMAT=(json|text), else text on a TTY.
    level : None → DLP_LOG_LEVEL, else INFO.
    """
    lvl = _coerce_level(level if level is not None else os.environ.get("DLP_LOG_LEVEL", "INFO"))
    logger = logging.getLogger("delegation")
    logger.setLevel(lvl)
    for h in list(logger.handlers):
        logger.removeHandler(h)

    handler = logging.StreamHandler(stream)
    handler.setLevel(lvl)
    handler.setFormatter(JSONFormatter() if _decide_json(json, stream) else TextFormatter())
    logger.addHandler(handler)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "delegation")


# ----------------------------
# Internals
# ----------------------------


def _coerce_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    return value if isinstance(value, int) else logging.INFO


def _decide_json(json_flag: Optional[bool], stream: io.TextIOBase) -> bool:
    if json_flag is not None:
        return json_flag
    env = os.environ.get("DLP_LOG_FORMAT", "").strip().lower()
    if env in ("json", "text"):
        return env == "json"
    try:
        return not stream.isatty()
    except (AttributeError, ValueError):
        return True


__all__ = [
    "context",
    "bind",
    "unbind",
    "clear_context",
    "op_scope",
    "JSONFormatter",
    "TextFormatter",
    "configure",
    "get_logger",
]
