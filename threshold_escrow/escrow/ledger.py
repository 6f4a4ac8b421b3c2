"""
Ledger of record for viewing-key escrows.

The ledger orders and audits escrow operations; it is never trusted for
cryptographic correctness. ``EscrowLedger`` is the async collaborator
interface the orchestrator depends on. ``InMemoryEscrowLedger`` is a
single-process reference implementation with the same rules a deployed
ledger enforces: holder authorization, vote tallying, expiry, idempotent
resubmission and immutability after reveal.
"""

from __future__ import annotations

import copy
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Sequence

import trio

from threshold_escrow.threshold_crypto.exceptions import InputValidationError
from threshold_escrow.threshold_crypto.security import constant_time_compare

from .constants import MAX_HOLDERS, MAX_REASON_BYTES, MAX_SHARE_MESSAGE_BYTES
from .errors import (
    CommitmentMismatchError,
    ConflictingSubmissionError,
    EscrowStateError,
    UnauthorizedError,
    UnknownEscrowError,
)
from .records import (
    EscrowRecord,
    HolderType,
    LedgerEvent,
    RevealRequest,
    ShareHolder,
    normalize_hash,
)
from .state import (
    OPEN_FOR_SHARES,
    OPEN_FOR_VOTING,
    RevealPhase,
    advance,
    tally_outcome,
)

logger = logging.getLogger(__name__)


class EscrowLedger(ABC):
    """Async collaborator interface to the ledger of record."""

    @abstractmethod
    async def create_escrow(
        self,
        dispute_id: int,
        viewing_key_commitment: str,
        encrypted_data_hash: str,
        threshold: int,
        total_shares: int,
        holders: Sequence[str],
        holder_types: Sequence[HolderType],
        *,
        sender: str,
    ) -> int:
        """Record a new escrow and return its id."""

    @abstractmethod
    async def submit_share_commitment(
        self, escrow_id: int, commitment: str, *, sender: str
    ) -> None:
        """Record a holder's proof of share possession."""

    @abstractmethod
    async def request_reveal(
        self,
        escrow_id: int,
        reason: str,
        legal_doc_hash: str,
        voting_period: int,
        *,
        sender: str,
    ) -> int:
        """Open a reveal request and return its id."""

    @abstractmethod
    async def vote_on_reveal(self, request_id: int, approve: bool, *, sender: str) -> None:
        """Record a holder's vote."""

    @abstractmethod
    async def submit_share_for_reveal(
        self, request_id: int, share_index: int, encrypted_share: bytes, *, sender: str
    ) -> None:
        """Record a holder's share, encrypted to the coordinator."""

    @abstractmethod
    async def finalize_reveal(
        self, request_id: int, reconstructed_key_hash: str, *, sender: str
    ) -> None:
        """Publish the hash of the reconstructed key and close the request."""

    @abstractmethod
    async def get_escrow(self, escrow_id: int) -> EscrowRecord:
        ...

    @abstractmethod
    async def get_share_holders(self, escrow_id: int) -> List[ShareHolder]:
        ...

    @abstractmethod
    async def get_reveal_request(self, request_id: int) -> RevealRequest:
        ...

    @abstractmethod
    async def is_share_holder(self, escrow_id: int, address: str) -> bool:
        ...

    @abstractmethod
    async def get_submitted_share_count(self, request_id: int) -> int:
        ...

    @abstractmethod
    async def is_threshold_met(self, request_id: int) -> bool:
        ...

    @abstractmethod
    async def get_submitted_shares(self, request_id: int) -> Dict[int, bytes]:
        """Encrypted share submissions keyed by 1-based share index."""

    @abstractmethod
    async def events(self) -> List[LedgerEvent]:
        """The append-only event log, oldest first."""


class InMemoryEscrowLedger(EscrowLedger):
    """
    Reference ledger kept in process memory.

    Args:
        clock: Wall-clock source in seconds; injectable for expiry tests
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._escrows: Dict[int, EscrowRecord] = {}
        self._requests: Dict[int, RevealRequest] = {}
        self._events: List[LedgerEvent] = []
        self._next_escrow_id = 1
        self._next_request_id = 1

    # ------------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------------

    def _emit(self, name: str, **data) -> None:
        event = LedgerEvent(
            sequence=len(self._events),
            name=name,
            timestamp=self._clock(),
            data=tuple(sorted(data.items())),
        )
        self._events.append(event)
        logger.debug("Ledger event %d: %s", event.sequence, name)

    def _escrow(self, escrow_id: int) -> EscrowRecord:
        try:
            return self._escrows[escrow_id]
        except KeyError:
            raise UnknownEscrowError(f"unknown escrow {escrow_id}") from None

    def _request(self, request_id: int) -> RevealRequest:
        try:
            request = self._requests[request_id]
        except KeyError:
            raise UnknownEscrowError(f"unknown reveal request {request_id}") from None
        self._expire_if_due(request)
        return request

    def _set_status(self, request: RevealRequest, target: RevealPhase) -> None:
        previous = request.status
        request.status = advance(previous, target)
        self._emit(
            "RevealStatusChanged",
            request_id=request.request_id,
            previous=previous.value,
            status=target.value,
        )

    def _expire_if_due(self, request: RevealRequest) -> None:
        if request.status in OPEN_FOR_VOTING and self._clock() > request.expires_at:
            self._set_status(request, RevealPhase.EXPIRED)

    @staticmethod
    def _require_holder(escrow: EscrowRecord, sender: str) -> ShareHolder:
        position = escrow.holder_position(sender)
        if position is None:
            raise UnauthorizedError(f"{sender} is not a share holder of escrow {escrow.escrow_id}")
        return escrow.holders[position]

    @staticmethod
    def _require_not_revealed(escrow: EscrowRecord) -> None:
        if escrow.revealed:
            raise EscrowStateError(f"escrow {escrow.escrow_id} has already been revealed")

    # ------------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------------

    async def create_escrow(
        self,
        dispute_id: int,
        viewing_key_commitment: str,
        encrypted_data_hash: str,
        threshold: int,
        total_shares: int,
        holders: Sequence[str],
        holder_types: Sequence[HolderType],
        *,
        sender: str,
    ) -> int:
        await trio.lowlevel.checkpoint()
        commitment = normalize_hash(viewing_key_commitment, "viewingKeyCommitment")
        data_hash = normalize_hash(encrypted_data_hash, "encryptedDataHash")
        if not 1 <= total_shares <= MAX_HOLDERS:
            raise InputValidationError(f"total shares must be in 1..{MAX_HOLDERS}")
        if not 1 <= threshold <= total_shares:
            raise InputValidationError("threshold must be in 1..total shares")
        if len(holders) != total_shares or len(holder_types) != total_shares:
            raise InputValidationError("holders and holder types must match total shares")
        if len(set(holders)) != len(holders):
            raise InputValidationError("holder addresses must be unique")

        escrow_id = self._next_escrow_id
        self._next_escrow_id += 1
        self._escrows[escrow_id] = EscrowRecord(
            escrow_id=escrow_id,
            dispute_id=dispute_id,
            viewing_key_commitment=commitment,
            encrypted_data_hash=data_hash,
            threshold=threshold,
            total_shares=total_shares,
            holders=[
                ShareHolder(address=address, holder_type=HolderType(kind))
                for address, kind in zip(holders, holder_types)
            ],
            created_at=self._clock(),
            creator=sender,
        )
        self._emit(
            "EscrowCreated",
            escrow_id=escrow_id,
            dispute_id=dispute_id,
            threshold=threshold,
            total_shares=total_shares,
        )
        return escrow_id

    async def submit_share_commitment(
        self, escrow_id: int, commitment: str, *, sender: str
    ) -> None:
        await trio.lowlevel.checkpoint()
        escrow = self._escrow(escrow_id)
        self._require_not_revealed(escrow)
        holder = self._require_holder(escrow, sender)
        commitment = normalize_hash(commitment, "shareCommitment")
        if holder.share_commitment is not None:
            if holder.share_commitment == commitment:
                return
            raise ConflictingSubmissionError(
                f"{sender} already committed a different share for escrow {escrow_id}"
            )
        holder.share_commitment = commitment
        self._emit("ShareCommitted", escrow_id=escrow_id, holder=sender)

    async def request_reveal(
        self,
        escrow_id: int,
        reason: str,
        legal_doc_hash: str,
        voting_period: int,
        *,
        sender: str,
    ) -> int:
        await trio.lowlevel.checkpoint()
        escrow = self._escrow(escrow_id)
        self._require_not_revealed(escrow)
        if not reason or len(reason.encode("utf-8")) > MAX_REASON_BYTES:
            raise InputValidationError(f"reason must be 1..{MAX_REASON_BYTES} bytes")
        if voting_period <= 0:
            raise InputValidationError("voting period must be positive")
        doc_hash = normalize_hash(legal_doc_hash, "legalDocHash")

        now = self._clock()
        request_id = self._next_request_id
        self._next_request_id += 1
        self._requests[request_id] = RevealRequest(
            request_id=request_id,
            escrow_id=escrow_id,
            requester=sender,
            reason=reason,
            legal_doc_hash=doc_hash,
            requested_at=now,
            expires_at=now + voting_period,
        )
        self._emit(
            "RevealRequested",
            request_id=request_id,
            escrow_id=escrow_id,
            requester=sender,
        )
        return request_id

    async def vote_on_reveal(self, request_id: int, approve: bool, *, sender: str) -> None:
        await trio.lowlevel.checkpoint()
        request = self._request(request_id)
        escrow = self._escrow(request.escrow_id)
        self._require_holder(escrow, sender)

        previous = request.votes.get(sender)
        if previous is not None:
            if previous == bool(approve):
                return
            raise ConflictingSubmissionError(f"{sender} already voted on request {request_id}")
        if request.status not in OPEN_FOR_VOTING:
            raise EscrowStateError(f"request {request_id} is {request.status}, voting is closed")

        if request.status is RevealPhase.REVEAL_REQUESTED:
            self._set_status(request, RevealPhase.VOTING)
        request.votes[sender] = bool(approve)
        self._emit("VoteCast", request_id=request_id, voter=sender, approve=bool(approve))

        outcome = tally_outcome(
            request.approvals, request.rejections, escrow.threshold, escrow.total_shares
        )
        if outcome is not None:
            self._set_status(request, outcome)

    async def submit_share_for_reveal(
        self, request_id: int, share_index: int, encrypted_share: bytes, *, sender: str
    ) -> None:
        await trio.lowlevel.checkpoint()
        request = self._request(request_id)
        escrow = self._escrow(request.escrow_id)
        holder = self._require_holder(escrow, sender)
        if escrow.holder_position(sender) != share_index - 1:
            raise UnauthorizedError(f"{sender} does not hold share {share_index}")
        if not isinstance(encrypted_share, (bytes, bytearray)) or not encrypted_share:
            raise InputValidationError("encrypted share must be non-empty bytes")
        if len(encrypted_share) > MAX_SHARE_MESSAGE_BYTES:
            raise InputValidationError("encrypted share too large")

        existing = request.submitted_shares.get(share_index)
        if existing is not None:
            if existing == bytes(encrypted_share):
                return
            raise ConflictingSubmissionError(
                f"share {share_index} was already submitted for request {request_id}"
            )
        if request.status not in OPEN_FOR_SHARES:
            raise EscrowStateError(
                f"request {request_id} is {request.status}, shares are only accepted after approval"
            )

        request.submitted_shares[share_index] = bytes(encrypted_share)
        holder.has_submitted = True
        self._emit("ShareSubmitted", request_id=request_id, share_index=share_index)

        if (
            request.status is RevealPhase.APPROVED
            and len(request.submitted_shares) >= escrow.threshold
        ):
            self._set_status(request, RevealPhase.SHARES_COLLECTED)

    async def finalize_reveal(
        self, request_id: int, reconstructed_key_hash: str, *, sender: str
    ) -> None:
        await trio.lowlevel.checkpoint()
        request = self._request(request_id)
        escrow = self._escrow(request.escrow_id)
        key_hash = normalize_hash(reconstructed_key_hash, "reconstructedKeyHash")
        if (
            request.status is RevealPhase.FINALIZED
            and request.reconstructed_key_hash == key_hash
        ):
            return
        if request.status is not RevealPhase.SHARES_COLLECTED:
            raise EscrowStateError(f"request {request_id} is {request.status}, cannot finalize")
        self._require_not_revealed(escrow)
        if not constant_time_compare(
            key_hash.encode("ascii"), escrow.viewing_key_commitment.encode("ascii")
        ):
            raise CommitmentMismatchError(
                "reconstructed key hash does not match the escrow commitment"
            )

        self._set_status(request, RevealPhase.RECONSTRUCTED)
        request.reconstructed_key_hash = key_hash
        self._set_status(request, RevealPhase.FINALIZED)
        escrow.revealed = True
        self._emit(
            "RevealFinalized",
            request_id=request_id,
            escrow_id=escrow.escrow_id,
            finalized_by=sender,
        )

    # ------------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------------

    async def get_escrow(self, escrow_id: int) -> EscrowRecord:
        await trio.lowlevel.checkpoint()
        return copy.deepcopy(self._escrow(escrow_id))

    async def get_share_holders(self, escrow_id: int) -> List[ShareHolder]:
        await trio.lowlevel.checkpoint()
        return copy.deepcopy(self._escrow(escrow_id).holders)

    async def get_reveal_request(self, request_id: int) -> RevealRequest:
        await trio.lowlevel.checkpoint()
        return copy.deepcopy(self._request(request_id))

    async def is_share_holder(self, escrow_id: int, address: str) -> bool:
        await trio.lowlevel.checkpoint()
        return self._escrow(escrow_id).holder_position(address) is not None

    async def get_submitted_share_count(self, request_id: int) -> int:
        await trio.lowlevel.checkpoint()
        return len(self._request(request_id).submitted_shares)

    async def is_threshold_met(self, request_id: int) -> bool:
        await trio.lowlevel.checkpoint()
        request = self._request(request_id)
        return len(request.submitted_shares) >= self._escrow(request.escrow_id).threshold

    async def get_submitted_shares(self, request_id: int) -> Dict[int, bytes]:
        await trio.lowlevel.checkpoint()
        return dict(self._request(request_id).submitted_shares)

    async def events(self) -> List[LedgerEvent]:
        await trio.lowlevel.checkpoint()
        return list(self._events)

    def __repr__(self) -> str:
        return (
            f"InMemoryEscrowLedger(escrows={len(self._escrows)}, "
            f"requests={len(self._requests)}, events={len(self._events)})"
        )
