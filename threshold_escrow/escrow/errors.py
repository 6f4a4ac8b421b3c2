"""Escrow orchestration error types."""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class EscrowError(Exception):
    """Base error for viewing-key escrow workflow issues."""


class InvalidStateTransition(EscrowError):
    """Raised when a reveal request is moved along an edge the lifecycle forbids."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"cannot move reveal request from {current} to {target}")


class EscrowStateError(EscrowError):
    """Raised when an operation is not allowed in the current escrow or request state."""


class UnauthorizedError(EscrowError):
    """Raised when the sender is not allowed to perform an operation."""


class ConflictingSubmissionError(EscrowError):
    """Raised when a resubmission differs from what the sender already recorded."""


class UnknownEscrowError(EscrowError, LookupError):
    """Raised for an escrow or reveal request id the ledger has never issued."""


class CommitmentMismatchError(EscrowError):
    """Raised when a reconstructed key hash does not match the escrow commitment."""


class LedgerUnavailableError(EscrowError):
    """Raised by ledger clients for transient failures; safe to retry."""


class DistributionError(EscrowError):
    """Raised when one or more share deliveries failed after retries."""

    def __init__(
        self,
        failures: Dict[str, BaseException],
        delivered: Sequence[Any] = (),
        message: Optional[str] = None,
    ):
        self.failures = dict(failures)
        self.delivered = list(delivered)
        super().__init__(
            message
            or f"share delivery failed for {len(self.failures)} holder(s): "
            + ", ".join(sorted(self.failures))
        )


class SchemaError(EscrowError):
    """Raised when a message fails schema validation."""


class SizeLimitError(EscrowError):
    """Raised when a message exceeds configured size limits."""
