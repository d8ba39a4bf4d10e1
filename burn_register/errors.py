"""Failure taxonomy for registration attempts.

Transport errors are decoded once, where they leave the chain client, into a
``ChainError`` carrying a ``FailureReason``. Everything downstream matches on
the reason rather than on message text. Plain text is only tokenised when the
transport gave us nothing structured (or when a caller hands us a string).
"""
import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional


class Outcome(enum.Enum):
    RECOVERABLE = "recoverable"
    ALREADY_DONE = "already_done"
    FATAL = "fatal"


class FailureReason(enum.Enum):
    EXHAUSTS_RESOURCES = "exhausts_resources"
    RATE_LIMITED = "rate_limited"
    INVALID_TRANSACTION = "invalid_transaction"
    STALE = "stale"
    FUTURE = "future"
    OUTDATED = "outdated"
    PRIORITY_TOO_LOW = "priority_too_low"
    TEMPORARILY_BANNED = "temporarily_banned"
    DROPPED = "dropped"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    ALREADY_REGISTERED = "already_registered"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    MODULE_ERROR = "module_error"
    UNKNOWN = "unknown"


OUTCOMES = {
    FailureReason.EXHAUSTS_RESOURCES: Outcome.RECOVERABLE,
    FailureReason.RATE_LIMITED: Outcome.RECOVERABLE,
    FailureReason.INVALID_TRANSACTION: Outcome.RECOVERABLE,
    FailureReason.STALE: Outcome.RECOVERABLE,
    FailureReason.FUTURE: Outcome.RECOVERABLE,
    FailureReason.OUTDATED: Outcome.RECOVERABLE,
    FailureReason.PRIORITY_TOO_LOW: Outcome.RECOVERABLE,
    FailureReason.TEMPORARILY_BANNED: Outcome.RECOVERABLE,
    FailureReason.DROPPED: Outcome.RECOVERABLE,
    FailureReason.TIMEOUT: Outcome.RECOVERABLE,
    FailureReason.CANCELLED: Outcome.RECOVERABLE,
    FailureReason.ALREADY_REGISTERED: Outcome.ALREADY_DONE,
    FailureReason.INSUFFICIENT_BALANCE: Outcome.FATAL,
    FailureReason.MODULE_ERROR: Outcome.FATAL,
    FailureReason.UNKNOWN: Outcome.FATAL,
}


@dataclass(frozen=True)
class ChainError:
    reason: FailureReason
    name: str
    message: str = ""

    def __str__(self):
        if self.message and self.message != self.name:
            return f"{self.name}: {self.message}"
        return self.name


# ------------- exceptions -------------


class RegistrationError(Exception):
    """Base class for everything this package raises on purpose."""


class ChainConnectionError(RegistrationError):
    pass


class KeyParseError(RegistrationError):
    pass


class BlockFetchError(RegistrationError):
    pass


class _DetailedError(RegistrationError):
    def __init__(self, detail: ChainError):
        super().__init__(str(detail))
        self.detail = detail


class SubmissionError(_DetailedError):
    """The pending pool refused the extrinsic."""


class FinalizationError(_DetailedError):
    """The extrinsic reached a terminal state other than finalized success."""


class FinalizationTimeout(FinalizationError):
    pass


# ------------- decoding -------------

# Ordered: the first matching group wins. Matching is case-sensitive, so
# "Stale" and "Future" only hit the pool's own error names.
_TEXT_TOKENS = (
    (FailureReason.ALREADY_REGISTERED, ("AlreadyRegistered", "already registered", "duplicate")),
    (FailureReason.INSUFFICIENT_BALANCE, ("Inability to pay", "NotEnoughBalance", "BalanceWithdrawalError")),
    (FailureReason.RATE_LIMITED, ("TooManyRegistrations",)),
    (FailureReason.EXHAUSTS_RESOURCES, ("TooManyConsumers", "ExhaustsResources", "exhaust the block limits")),
    (FailureReason.PRIORITY_TOO_LOW, ("Priority is too low",)),
    (FailureReason.TEMPORARILY_BANNED, ("temporarily banned",)),
    (FailureReason.OUTDATED, ("outdated", "AncientBirthBlock")),
    (FailureReason.STALE, ("Stale", "nonce")),
    (FailureReason.FUTURE, ("Future",)),
    (FailureReason.INVALID_TRANSACTION, ("InvalidTransaction", "Invalid Transaction")),
)

_RPC_CODES = {
    1012: FailureReason.TEMPORARILY_BANNED,
    1014: FailureReason.PRIORITY_TOO_LOW,
}


def decode_text(text: str) -> ChainError:
    for reason, tokens in _TEXT_TOKENS:
        for token in tokens:
            if token in text:
                return ChainError(reason, token, text)
    return ChainError(FailureReason.UNKNOWN, "Unknown", text)


def decode_rpc_error(payload: Any) -> ChainError:
    """Decode the JSON-RPC error object returned by author_submitExtrinsic.

    Pool rejections look like ``{"code": 1010, "message": "Invalid Transaction",
    "data": "Transaction is outdated"}``.
    """
    if not isinstance(payload, dict):
        return decode_text(str(payload))
    code = payload.get("code")
    message = str(payload.get("message") or "")
    data = str(payload.get("data") or "")
    text = f"{message}: {data}" if data else message
    if code in _RPC_CODES:
        return ChainError(_RPC_CODES[code], message or str(code), text)
    if code == 1010:
        # The data field says why the transaction is invalid.
        detail = decode_text(data) if data else None
        if detail is not None and detail.reason is not FailureReason.UNKNOWN:
            return ChainError(detail.reason, message, text)
        return ChainError(FailureReason.INVALID_TRANSACTION, message, text)
    return decode_text(text)


_MODULE_ERRORS = {
    "HotKeyAlreadyRegisteredInSubNet": FailureReason.ALREADY_REGISTERED,
    "AlreadyRegistered": FailureReason.ALREADY_REGISTERED,
    "TooManyRegistrationsThisBlock": FailureReason.RATE_LIMITED,
    "TooManyRegistrationsThisInterval": FailureReason.RATE_LIMITED,
    "NotEnoughBalanceToStake": FailureReason.INSUFFICIENT_BALANCE,
    "NotEnoughBalance": FailureReason.INSUFFICIENT_BALANCE,
    "BalanceWithdrawalError": FailureReason.INSUFFICIENT_BALANCE,
}


def decode_dispatch_error(error_message: Any) -> ChainError:
    """Decode an ``ExtrinsicReceipt.error_message`` (a runtime dispatch error)."""
    if not isinstance(error_message, dict):
        return decode_text(str(error_message))
    name = str(error_message.get("name") or error_message.get("type") or "Unknown")
    docs = error_message.get("docs") or []
    message = " ".join(docs) if isinstance(docs, (list, tuple)) else str(docs)
    if name in _MODULE_ERRORS:
        return ChainError(_MODULE_ERRORS[name], name, message)
    if error_message.get("type") == "Module":
        return ChainError(FailureReason.MODULE_ERROR, name, message)
    return ChainError(FailureReason.UNKNOWN, name, message)


def decode_exception(exc: BaseException) -> ChainError:
    """Best structured reading of an exception raised by the substrate client."""
    detail = getattr(exc, "detail", None)
    if isinstance(detail, ChainError):
        return detail
    if exc.args and isinstance(exc.args[0], dict):
        return decode_rpc_error(exc.args[0])
    return decode_text(f"{type(exc).__name__}: {exc}")


# ------------- classification -------------


def classify(raw) -> Outcome:
    """Map any failure to Recoverable / AlreadyDone / Fatal."""
    if isinstance(raw, ChainError):
        detail = raw
    elif isinstance(raw, BaseException):
        detail = decode_exception(raw)
    else:
        detail = decode_text(str(raw))
    return OUTCOMES[detail.reason]


def report(logger: logging.Logger, outcome: Outcome, context: str, error) -> None:
    if outcome is Outcome.RECOVERABLE:
        logger.warning("%s: recoverable error, will retry on next matching slot: %s", context, error)
    elif outcome is Outcome.ALREADY_DONE:
        logger.warning("%s: hotkey appears to be already registered: %s", context, error)
    else:
        logger.error("%s: registration failed: %s", context, error)


def describe(error: Optional[BaseException]) -> str:
    if error is None:
        return ""
    detail = getattr(error, "detail", None)
    return str(detail) if detail is not None else f"{type(error).__name__}: {error}"
