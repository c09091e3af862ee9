"""
delegation.errors — typed failures for the delegation program.

Every processor communicates failure by raising a `DelegationError`. The ledger
runtime rolls back every cell touched by the instruction when one escapes, so
raising is always sufficient to abort atomically.

Hierarchy
---------
DelegationError (base)
 ├─ AuthorizationError      : missing signer, wrong authority, not allow-listed
 ├─ AddressDerivationError  : supplied address does not match its derivation
 ├─ LifecycleError          : cell already initialized / not initialized / immutable
 ├─ OrderingError           : nonce out of order, already undelegated
 ├─ ArithmeticFault         : lamport overflow / underflow
 ├─ MalformedDataError      : bad diff, bad args, undersized payload
 ├─ PostconditionError      : balance or data mismatch after the handback call
 └─ RuntimeFault            : generic ledger/program misuse

Codes
-----
`ErrorCode` keeps the program's stable custom codes (0..37) and adds the generic
program-error codes (1000+) the ledger model raises. The category class of a
code is looked up in `_CATEGORY`, so `DelegationError.from_code(...)` always
builds the right subclass.

Per-record-kind error sets (invalid seeds / owner / already initialized /
immutable) live in `RECORD_ERRORS`, keyed by `RecordKind`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Mapping, Type


class ErrorCode(IntEnum):
    # --- program custom errors (stable numbering) ---
    INVALID_AUTHORITY = 0
    NOT_UNDELEGATABLE = 1
    UNAUTHORIZED = 2
    INVALID_AUTHORITY_FOR_PROGRAM = 3
    INVALID_DELEGATED_ACCOUNT = 4
    INVALID_DELEGATED_STATE = 5
    INVALID_REIMBURSEMENT_ACCOUNT = 6
    INVALID_ACCOUNT_DATA_AFTER_CPI = 7
    INVALID_VALIDATOR_BALANCE_AFTER_CPI = 8
    INVALID_REIMBURSEMENT_ADDRESS_FOR_DELEGATION_RENT = 9
    INVALID_WHITELIST_PROGRAM_CONFIG = 10
    ALREADY_UNDELEGATED = 11
    NONCE_OUT_OF_ORDER = 12
    OVERFLOW = 13
    TOO_MANY_SEEDS = 14
    INVALID_DIFF = 15
    INVALID_DIFF_ALIGNMENT = 16
    MERGE_DIFF_ERROR = 17
    COMMIT_STATE_INVALID_SEEDS = 18
    COMMIT_STATE_INVALID_ACCOUNT_OWNER = 19
    COMMIT_STATE_ALREADY_INITIALIZED = 20
    COMMIT_STATE_IMMUTABLE = 21
    COMMIT_RECORD_INVALID_SEEDS = 22
    COMMIT_RECORD_INVALID_ACCOUNT_OWNER = 23
    COMMIT_RECORD_ALREADY_INITIALIZED = 24
    COMMIT_RECORD_IMMUTABLE = 25
    DELEGATION_RECORD_INVALID_SEEDS = 26
    DELEGATION_RECORD_INVALID_ACCOUNT_OWNER = 27
    DELEGATION_RECORD_ALREADY_INITIALIZED = 28
    DELEGATION_RECORD_IMMUTABLE = 29
    DELEGATION_METADATA_INVALID_SEEDS = 30
    DELEGATION_METADATA_INVALID_ACCOUNT_OWNER = 31
    DELEGATION_METADATA_ALREADY_INITIALIZED = 32
    DELEGATION_METADATA_IMMUTABLE = 33
    UNDELEGATE_BUFFER_INVALID_SEEDS = 34
    UNDELEGATE_BUFFER_INVALID_ACCOUNT_OWNER = 35
    UNDELEGATE_BUFFER_ALREADY_INITIALIZED = 36
    UNDELEGATE_BUFFER_IMMUTABLE = 37

    # --- generic program / runtime errors ---
    INVALID_ARGUMENT = 1000
    INVALID_INSTRUCTION_DATA = 1001
    INVALID_ACCOUNT_DATA = 1002
    INSUFFICIENT_FUNDS = 1003
    INCORRECT_PROGRAM_ID = 1004
    MISSING_REQUIRED_SIGNATURE = 1005
    ACCOUNT_ALREADY_INITIALIZED = 1006
    NOT_ENOUGH_ACCOUNT_KEYS = 1007
    INVALID_SEEDS = 1008
    INVALID_ACCOUNT_OWNER = 1009
    ARITHMETIC_OVERFLOW = 1010
    ACCOUNT_NOT_WRITABLE = 1011
    UNKNOWN_PROGRAM = 1012
    UNBALANCED_INSTRUCTION = 1013
    MAX_SEED_LENGTH_EXCEEDED = 1014
    CALL_DEPTH_EXCEEDED = 1015


_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.INVALID_AUTHORITY: "Invalid Authority",
    ErrorCode.NOT_UNDELEGATABLE: "Account cannot be undelegated, is_undelegatable is false",
    ErrorCode.UNAUTHORIZED: "Unauthorized Operation",
    ErrorCode.INVALID_AUTHORITY_FOR_PROGRAM: "Invalid Authority for the current target program",
    ErrorCode.INVALID_DELEGATED_ACCOUNT: "Delegated account does not match the expected account",
    ErrorCode.INVALID_DELEGATED_STATE: "Delegated account is not in a valid state",
    ErrorCode.INVALID_REIMBURSEMENT_ACCOUNT: "Reimbursement account does not match the expected account",
    ErrorCode.INVALID_ACCOUNT_DATA_AFTER_CPI: "Invalid account data after CPI",
    ErrorCode.INVALID_VALIDATOR_BALANCE_AFTER_CPI: "Invalid validator balance after CPI",
    ErrorCode.INVALID_REIMBURSEMENT_ADDRESS_FOR_DELEGATION_RENT: "Invalid reimbursement address for delegation rent",
    ErrorCode.INVALID_WHITELIST_PROGRAM_CONFIG: "Authority is invalid for the delegated account program owner",
    ErrorCode.ALREADY_UNDELEGATED: "Account already undelegated",
    ErrorCode.NONCE_OUT_OF_ORDER: "Commit is out of order",
    ErrorCode.OVERFLOW: "Computation overflow detected",
    ErrorCode.TOO_MANY_SEEDS: "Too many seeds",
    ErrorCode.INVALID_DIFF: "Invalid diff passed to DiffSet.parse",
    ErrorCode.INVALID_DIFF_ALIGNMENT: "Diff is not properly aligned",
    ErrorCode.MERGE_DIFF_ERROR: "MergeDiff precondition did not meet",
    ErrorCode.INVALID_ARGUMENT: "Invalid argument",
    ErrorCode.INVALID_INSTRUCTION_DATA: "Invalid instruction data",
    ErrorCode.INVALID_ACCOUNT_DATA: "Invalid account data",
    ErrorCode.INSUFFICIENT_FUNDS: "Insufficient funds",
    ErrorCode.INCORRECT_PROGRAM_ID: "Incorrect program id",
    ErrorCode.MISSING_REQUIRED_SIGNATURE: "Missing required signature",
    ErrorCode.ACCOUNT_ALREADY_INITIALIZED: "Account already initialized",
    ErrorCode.NOT_ENOUGH_ACCOUNT_KEYS: "Not enough account keys",
    ErrorCode.INVALID_SEEDS: "Provided seeds do not result in a valid address",
    ErrorCode.INVALID_ACCOUNT_OWNER: "Invalid account owner",
    ErrorCode.ARITHMETIC_OVERFLOW: "Arithmetic overflow",
    ErrorCode.ACCOUNT_NOT_WRITABLE: "Account is not writable",
    ErrorCode.UNKNOWN_PROGRAM: "Invoked program is not registered",
    ErrorCode.UNBALANCED_INSTRUCTION: "Sum of lamports changed across the instruction",
    ErrorCode.MAX_SEED_LENGTH_EXCEEDED: "Seed exceeds the maximum seed length",
    ErrorCode.CALL_DEPTH_EXCEEDED: "Cross-program invocation depth exceeded",
}


@dataclass(eq=False)
class DelegationError(Exception):
    """
    Base delegation-program error.

    Attributes:
        code:    ErrorCode member; `int(code)` is the stable wire code.
        message: Human-readable explanation (defaults to the code's message).
        data:    Optional structured details (kept JSON-serializable).
    """

    code: ErrorCode = ErrorCode.INVALID_ARGUMENT
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.message:
            self.message = _MESSAGES.get(self.code, self.code.name.replace("_", " ").capitalize())
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.data:
            return f"{self.code.name}: {self.message} ({self.data})"
        return f"{self.code.name}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict for logs and tooling."""
        out: Dict[str, Any] = {
            "code": int(self.code),
            "name": self.code.name,
            "message": self.message,
        }
        if self.data:
            out["data"] = {k: _coerce_json(v) for k, v in self.data.items()}
        return out

    @staticmethod
    def from_code(code: ErrorCode, message: str = "", **data: Any) -> "DelegationError":
        """Build an instance of the category class registered for `code`."""
        cls = _CATEGORY.get(code, RuntimeFault)
        return cls(code=code, message=message, data=dict(data))


class AuthorizationError(DelegationError):
    """Signer missing, authority mismatch or validator not allow-listed."""


class AddressDerivationError(DelegationError):
    """A supplied address does not match its canonical derivation."""


class LifecycleError(DelegationError):
    """A cell is in the wrong lifecycle state for the operation."""


class OrderingError(DelegationError):
    """Commit ordering was violated or the account is latched for undelegation."""


class ArithmeticFault(DelegationError):
    """Lamport arithmetic over/underflowed."""


class MalformedDataError(DelegationError):
    """Wire data (diff, args, record bytes) is malformed or undersized."""


class PostconditionError(DelegationError):
    """A cross-program call returned but left the ledger in an unexpected state."""


class RuntimeFault(DelegationError):
    """Generic ledger/runtime misuse (unknown program, unbalanced lamports...)."""


_CATEGORY: Dict[ErrorCode, Type[DelegationError]] = {}


def _register(cls: Type[DelegationError], *codes: ErrorCode) -> None:
    for c in codes:
        _CATEGORY[c] = cls


_register(
    AuthorizationError,
    ErrorCode.INVALID_AUTHORITY,
    ErrorCode.UNAUTHORIZED,
    ErrorCode.INVALID_AUTHORITY_FOR_PROGRAM,
    ErrorCode.INVALID_WHITELIST_PROGRAM_CONFIG,
    ErrorCode.INVALID_REIMBURSEMENT_ACCOUNT,
    ErrorCode.INVALID_REIMBURSEMENT_ADDRESS_FOR_DELEGATION_RENT,
    ErrorCode.MISSING_REQUIRED_SIGNATURE,
    ErrorCode.ACCOUNT_NOT_WRITABLE,
)
_register(
    AddressDerivationError,
    ErrorCode.INVALID_SEEDS,
    ErrorCode.TOO_MANY_SEEDS,
    ErrorCode.MAX_SEED_LENGTH_EXCEEDED,
    ErrorCode.INVALID_DELEGATED_ACCOUNT,
    ErrorCode.COMMIT_STATE_INVALID_SEEDS,
    ErrorCode.COMMIT_RECORD_INVALID_SEEDS,
    ErrorCode.DELEGATION_RECORD_INVALID_SEEDS,
    ErrorCode.DELEGATION_METADATA_INVALID_SEEDS,
    ErrorCode.UNDELEGATE_BUFFER_INVALID_SEEDS,
)
_register(
    LifecycleError,
    ErrorCode.NOT_UNDELEGATABLE,
    ErrorCode.INVALID_DELEGATED_STATE,
    ErrorCode.ACCOUNT_ALREADY_INITIALIZED,
    ErrorCode.INVALID_ACCOUNT_OWNER,
    ErrorCode.COMMIT_STATE_INVALID_ACCOUNT_OWNER,
    ErrorCode.COMMIT_STATE_ALREADY_INITIALIZED,
    ErrorCode.COMMIT_STATE_IMMUTABLE,
    ErrorCode.COMMIT_RECORD_INVALID_ACCOUNT_OWNER,
    ErrorCode.COMMIT_RECORD_ALREADY_INITIALIZED,
    ErrorCode.COMMIT_RECORD_IMMUTABLE,
    ErrorCode.DELEGATION_RECORD_INVALID_ACCOUNT_OWNER,
    ErrorCode.DELEGATION_RECORD_ALREADY_INITIALIZED,
    ErrorCode.DELEGATION_RECORD_IMMUTABLE,
    ErrorCode.DELEGATION_METADATA_INVALID_ACCOUNT_OWNER,
    ErrorCode.DELEGATION_METADATA_ALREADY_INITIALIZED,
    ErrorCode.DELEGATION_METADATA_IMMUTABLE,
    ErrorCode.UNDELEGATE_BUFFER_INVALID_ACCOUNT_OWNER,
    ErrorCode.UNDELEGATE_BUFFER_ALREADY_INITIALIZED,
    ErrorCode.UNDELEGATE_BUFFER_IMMUTABLE,
)
_register(OrderingError, ErrorCode.NONCE_OUT_OF_ORDER, ErrorCode.ALREADY_UNDELEGATED)
_register(
    ArithmeticFault,
    ErrorCode.OVERFLOW,
    ErrorCode.ARITHMETIC_OVERFLOW,
    ErrorCode.INSUFFICIENT_FUNDS,
)
_register(
    MalformedDataError,
    ErrorCode.INVALID_DIFF,
    ErrorCode.INVALID_DIFF_ALIGNMENT,
    ErrorCode.MERGE_DIFF_ERROR,
    ErrorCode.INVALID_ARGUMENT,
    ErrorCode.INVALID_INSTRUCTION_DATA,
    ErrorCode.INVALID_ACCOUNT_DATA,
    ErrorCode.NOT_ENOUGH_ACCOUNT_KEYS,
)
_register(
    PostconditionError,
    ErrorCode.INVALID_ACCOUNT_DATA_AFTER_CPI,
    ErrorCode.INVALID_VALIDATOR_BALANCE_AFTER_CPI,
)
_register(
    RuntimeFault,
    ErrorCode.INCORRECT_PROGRAM_ID,
    ErrorCode.UNKNOWN_PROGRAM,
    ErrorCode.UNBALANCED_INSTRUCTION,
    ErrorCode.CALL_DEPTH_EXCEEDED,
)


# -------- per-record-kind error sets ----------------------------------------


class RecordKind(str, Enum):
    """Program-owned cells that carry their own error context."""

    COMMIT_STATE = "commit state"
    COMMIT_RECORD = "commit record"
    DELEGATION_RECORD = "delegation record"
    DELEGATION_METADATA = "delegation metadata"
    UNDELEGATE_BUFFER = "undelegate buffer"


@dataclass(frozen=True)
class RecordErrors:
    invalid_seeds: ErrorCode
    invalid_owner: ErrorCode
    already_initialized: ErrorCode
    immutable: ErrorCode


RECORD_ERRORS: Mapping[RecordKind, RecordErrors] = {
    RecordKind.COMMIT_STATE: RecordErrors(
        ErrorCode.COMMIT_STATE_INVALID_SEEDS,
        ErrorCode.COMMIT_STATE_INVALID_ACCOUNT_OWNER,
        ErrorCode.COMMIT_STATE_ALREADY_INITIALIZED,
        ErrorCode.COMMIT_STATE_IMMUTABLE,
    ),
    RecordKind.COMMIT_RECORD: RecordErrors(
        ErrorCode.COMMIT_RECORD_INVALID_SEEDS,
        ErrorCode.COMMIT_RECORD_INVALID_ACCOUNT_OWNER,
        ErrorCode.COMMIT_RECORD_ALREADY_INITIALIZED,
        ErrorCode.COMMIT_RECORD_IMMUTABLE,
    ),
    RecordKind.DELEGATION_RECORD: RecordErrors(
        ErrorCode.DELEGATION_RECORD_INVALID_SEEDS,
        ErrorCode.DELEGATION_RECORD_INVALID_ACCOUNT_OWNER,
        ErrorCode.DELEGATION_RECORD_ALREADY_INITIALIZED,
        ErrorCode.DELEGATION_RECORD_IMMUTABLE,
    ),
    RecordKind.DELEGATION_METADATA: RecordErrors(
        ErrorCode.DELEGATION_METADATA_INVALID_SEEDS,
        ErrorCode.DELEGATION_METADATA_INVALID_ACCOUNT_OWNER,
        ErrorCode.DELEGATION_METADATA_ALREADY_INITIALIZED,
        ErrorCode.DELEGATION_METADATA_IMMUTABLE,
    ),
    RecordKind.UNDELEGATE_BUFFER: RecordErrors(
        ErrorCode.UNDELEGATE_BUFFER_INVALID_SEEDS,
        ErrorCode.UNDELEGATE_BUFFER_INVALID_ACCOUNT_OWNER,
        ErrorCode.UNDELEGATE_BUFFER_ALREADY_INITIALIZED,
        ErrorCode.UNDELEGATE_BUFFER_IMMUTABLE,
    ),
}


def record_error(kind: RecordKind, which: str, **data: Any) -> DelegationError:
    """
    Build the error of `kind` for the failure `which`
    ('invalid_seeds' | 'invalid_owner' | 'already_initialized' | 'immutable').
    """
    errors = RECORD_ERRORS[kind]
    code = getattr(errors, which)
    return DelegationError.from_code(code, **data)


def fail(code: ErrorCode, message: str = "", **data: Any) -> DelegationError:
    """Shorthand used at raise sites: `raise fail(ErrorCode.X, key=value)`."""
    return DelegationError.from_code(code, message, **data)


def _coerce_json(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v).hex()
    if isinstance(v, (list, tuple)):
        return [_coerce_json(x) for x in v]
    if isinstance(v, dict):
        return {str(k): _coerce_json(x) for k, x in v.items()}
    return str(v)


__all__ = [
    "ErrorCode",
    "DelegationError",
    "AuthorizationError",
    "AddressDerivationError",
    "LifecycleError",
    "OrderingError",
    "ArithmeticFault",
    "MalformedDataError",
    "PostconditionError",
    "RuntimeFault",
    "RecordKind",
    "RecordErrors",
    "RECORD_ERRORS",
    "record_error",
    "fail",
]
