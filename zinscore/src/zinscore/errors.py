"""
Exception taxonomy shared by the core library and the coordination service.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class InscriptionError(Exception):
    """Base class for all inscription engine errors."""


class CodecError(InscriptionError, ValueError):
    """Raised on malformed transaction data during encoding or decoding."""


class SignatureError(InscriptionError, ValueError):
    """Raised when a signature is malformed or does not verify."""


class MalformedEnvelopeError(InscriptionError, ValueError):
    """Raised when a script does not contain a well-formed inscription envelope."""


class InputUnavailableError(InscriptionError):
    """
    No eligible funding input could be found or reserved.

    Recoverable: the caller can fund the address or retry later.
    """

    def __init__(
        self,
        message: str,
        required_value: int | None = None,
        available_count: int = 0,
        available_value: int = 0,
    ):
        super().__init__(message)
        self.required_value = required_value
        self.available_count = available_count
        self.available_value = available_value


class LockConflictError(InscriptionError):
    """An outpoint is already held by another owner (or another attempt)."""

    def __init__(self, outpoint: Any, holder: str | None = None, attempt_id: str | None = None):
        who = f" by {holder}" if holder else ""
        super().__init__(f"Outpoint {outpoint} is locked{who}")
        self.outpoint = outpoint
        self.holder = holder
        self.attempt_id = attempt_id


@dataclass
class ProviderFailure:
    """A single provider's failure inside a fallback chain."""

    provider: str
    message: str

    def __str__(self) -> str:
        return f"{self.provider}: {self.message}"


class ProviderUnavailableError(InscriptionError):
    """Every provider in a fallback chain failed."""

    def __init__(self, operation: str, failures: list[ProviderFailure]):
        detail = "; ".join(str(f) for f in failures) or "no providers configured"
        super().__init__(f"{operation} failed on all providers: {detail}")
        self.operation = operation
        self.failures = failures


class EpochUnavailableError(InscriptionError):
    """The consensus branch id could not be obtained from any source."""

    def __init__(self, failures: list[ProviderFailure] | None = None):
        self.failures = failures or []
        detail = "; ".join(str(f) for f in self.failures)
        message = "Consensus branch id unavailable"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class BroadcastRejectedError(InscriptionError):
    """The network rejected an assembled transaction."""

    def __init__(self, reason: str, failures: list[ProviderFailure] | None = None):
        super().__init__(reason)
        self.reason = reason
        self.failures = failures or []


class ContextNotFoundError(InscriptionError, KeyError):
    """No transaction context exists for the given id."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Transaction context not found"


class InvalidContextStateError(InscriptionError):
    """An operation was attempted against a context in the wrong state."""

    def __init__(self, context_id: str, expected: Any, actual: Any):
        expected_str = (
            "/".join(str(getattr(e, "value", e)) for e in expected)
            if isinstance(expected, (list, tuple, set, frozenset))
            else str(getattr(expected, "value", expected))
        )
        actual_str = str(getattr(actual, "value", actual))
        super().__init__(
            f"Context {context_id} is {actual_str}, expected {expected_str}"
        )
        self.context_id = context_id
        self.expected = expected
        self.actual = actual
