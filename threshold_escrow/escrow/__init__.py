"""Viewing-key escrow orchestration on top of the threshold cryptography core."""

from .constants import DEFAULT_VOTING_PERIOD
from .errors import (
    CommitmentMismatchError,
    ConflictingSubmissionError,
    DistributionError,
    EscrowError,
    EscrowStateError,
    InvalidStateTransition,
    LedgerUnavailableError,
    SchemaError,
    SizeLimitError,
    UnauthorizedError,
    UnknownEscrowError,
)
from .ledger import EscrowLedger, InMemoryEscrowLedger
from .orchestrator import (
    DeliveryReceipt,
    EncryptedShareRecord,
    EscrowResult,
    RevealCoordinator,
    RevealData,
    ViewingKeyEscrow,
)
from .records import EncryptedMetadata, HolderInfo, HolderType
from .retry import RetryPolicy, with_retry
from .state import RevealPhase

__all__ = [
    "CommitmentMismatchError",
    "ConflictingSubmissionError",
    "DEFAULT_VOTING_PERIOD",
    "DeliveryReceipt",
    "DistributionError",
    "EncryptedMetadata",
    "EncryptedShareRecord",
    "EscrowError",
    "EscrowLedger",
    "EscrowResult",
    "EscrowStateError",
    "HolderInfo",
    "HolderType",
    "InMemoryEscrowLedger",
    "InvalidStateTransition",
    "LedgerUnavailableError",
    "RetryPolicy",
    "RevealCoordinator",
    "RevealData",
    "RevealPhase",
    "SchemaError",
    "SizeLimitError",
    "UnauthorizedError",
    "UnknownEscrowError",
    "ViewingKeyEscrow",
    "with_retry",
]
