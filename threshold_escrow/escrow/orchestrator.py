"""
WARNING: DRAFT - requires cryptographic review before production use.

Viewing-key escrow orchestration.

Creation:
    1. Draw a random 32-byte viewing key
    2. AEAD-encrypt the dispute metadata under it
    3. Shamir-split the key t-of-n and ECIES-encrypt each share to its holder
    4. Record keccak(viewing key) and keccak(encrypted metadata) on the ledger
    5. Wipe the viewing key; it is never returned

Reveal:
    1. A reveal request is filed (optionally backed by a council warrant)
    2. Holders vote; the ledger tallies
    3. Once approved, holders re-encrypt their shares to a coordinator key
    4. The coordinator reconstructs the key, checks it against the
       commitment, decrypts the metadata and publishes only the key hash
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import trio

from threshold_escrow.threshold_crypto.bls import (
    ThresholdSignature,
    WarrantMessage,
    create_warrant_message,
    verify_threshold_signature,
)
from threshold_escrow.threshold_crypto.config import NONCE_BYTES
from threshold_escrow.threshold_crypto.ecies import ECIES, KeyLike
from threshold_escrow.threshold_crypto.exceptions import (
    AuthenticationError,
    CryptographicError,
    InputValidationError,
    ReconstructionError,
    VersioningError,
)
from threshold_escrow.threshold_crypto.factory import get_crypto_providers
from threshold_escrow.threshold_crypto.interfaces import CryptoProviders
from threshold_escrow.threshold_crypto.security import (
    KeyMaterial,
    bytes_to_hex,
    constant_time_compare,
    keccak256,
)
from threshold_escrow.threshold_crypto.shamir import ShamirSecretSharing
from threshold_escrow.threshold_crypto.types import Ciphertext, KeyPair, Share

from .constants import DEFAULT_VOTING_PERIOD, MSG_V, VIEWING_KEY_BYTES
from .errors import (
    DistributionError,
    EscrowStateError,
    SchemaError,
    SizeLimitError,
    UnauthorizedError,
)
from .ledger import EscrowLedger
from .messages import ShareSubmission, decode_share_submission, encode_share_submission
from .records import (
    EncryptedMetadata,
    EscrowRecord,
    HolderInfo,
    RevealRequest,
    ShareHolder,
    normalize_hash,
)
from .retry import RetryPolicy, with_retry
from .state import OPEN_FOR_SHARES, RevealPhase

logger = logging.getLogger(__name__)

ShareDelivery = Callable[[str, Ciphertext], Awaitable[None]]


# ============================================================================
# RESULT TYPES
# ============================================================================


@dataclass(frozen=True)
class EncryptedShareRecord:
    """One holder's share, encrypted to that holder's public key."""

    address: str
    share_index: int
    encrypted_share: Ciphertext


@dataclass(frozen=True)
class EscrowResult:
    """
    Everything the escrow creator needs to hand out.

    The viewing key itself is deliberately absent.
    """

    escrow_id: int
    viewing_key_commitment: str
    encrypted_data_hash: str
    encrypted_metadata: EncryptedMetadata
    encrypted_shares: List[EncryptedShareRecord]
    threshold: int


@dataclass(frozen=True)
class DeliveryReceipt:
    address: str
    share_index: int


@dataclass(frozen=True)
class RevealData:
    metadata: Any
    reconstructed_key_hash: str


# ============================================================================
# METADATA ENCRYPTION
# ============================================================================


def encrypt_metadata(
    viewing_key: bytes, metadata: Any, providers: CryptoProviders
) -> EncryptedMetadata:
    """AEAD-encrypt JSON-serializable ``metadata`` under the viewing key."""
    try:
        plaintext = json.dumps(metadata, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise InputValidationError("metadata must be JSON-serializable") from exc
    iv = providers.rng.random_bytes(NONCE_BYTES)
    ciphertext, tag = providers.aead.encrypt(viewing_key, iv, plaintext)
    return EncryptedMetadata(iv=iv, ciphertext=ciphertext, auth_tag=tag)


def decrypt_metadata(
    viewing_key: bytes, encrypted: EncryptedMetadata, providers: CryptoProviders
) -> Any:
    """Decrypt and parse metadata; raises AuthenticationError on a wrong key."""
    plaintext = providers.aead.decrypt(
        viewing_key, encrypted.iv, encrypted.ciphertext, encrypted.auth_tag
    )
    return json.loads(plaintext.decode("utf-8"))


def _coerce_metadata(
    encrypted_metadata: Union[EncryptedMetadata, Dict[str, Any], str]
) -> EncryptedMetadata:
    if isinstance(encrypted_metadata, EncryptedMetadata):
        return encrypted_metadata
    if isinstance(encrypted_metadata, str):
        return EncryptedMetadata.from_json(encrypted_metadata)
    return EncryptedMetadata.from_dict(encrypted_metadata)


# ============================================================================
# ESCROW PARTICIPANT API
# ============================================================================


class ViewingKeyEscrow:
    """
    Escrow workflow for creators, holders and reveal requesters.

    Args:
        ledger: Ledger of record
        ecies: ECIES engine (built from ``providers`` when omitted)
        shamir: Shamir engine (built from ``providers`` when omitted)
        providers: Capability bundle shared by the engines
        council_public_key: When set, every reveal request must carry a
            council threshold signature over its warrant
        retry_policy: Policy for idempotent ledger writes and deliveries
    """

    def __init__(
        self,
        ledger: EscrowLedger,
        *,
        ecies: Optional[ECIES] = None,
        shamir: Optional[ShamirSecretSharing] = None,
        providers: Optional[CryptoProviders] = None,
        council_public_key: Optional[bytes] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.ledger = ledger
        self.providers = providers or get_crypto_providers()
        self.ecies = ecies or ECIES(self.providers)
        self.shamir = shamir or ShamirSecretSharing(self.providers)
        self.council_public_key = council_public_key
        self.retry_policy = retry_policy or RetryPolicy()

    # ------------------------------------------------------------------------
    # Creation and distribution
    # ------------------------------------------------------------------------

    async def create_escrow(
        self,
        dispute_id: int,
        metadata: Any,
        holders: Sequence[HolderInfo],
        threshold: int,
        *,
        sender: str,
    ) -> EscrowResult:
        """
        Encrypt ``metadata``, split its key among ``holders`` and record the escrow.

        All cryptographic work and validation happens before the ledger is
        touched, so a failure leaves no partial escrow behind.

        Raises:
            InputValidationError: On invalid holders, threshold or metadata
            CryptographicError: If a holder public key is not a valid point
        """
        holders = list(holders)
        addresses = [h.address for h in holders]
        if len(set(addresses)) != len(addresses):
            raise InputValidationError("holder addresses must be unique")

        with KeyMaterial(self.providers.rng.random_bytes(VIEWING_KEY_BYTES)) as viewing_key:
            encrypted_metadata = encrypt_metadata(
                viewing_key.value(), metadata, self.providers
            )
            shares = self.shamir.split(viewing_key.value(), len(holders), threshold)
            encrypted_shares = [
                EncryptedShareRecord(
                    address=holder.address,
                    share_index=share.index,
                    encrypted_share=self.ecies.encrypt(holder.public_key, share.to_bytes()),
                )
                for holder, share in zip(holders, shares)
            ]
            commitment = bytes_to_hex(keccak256(viewing_key.value()))
        data_hash = encrypted_metadata.content_hash()

        escrow_id = await self.ledger.create_escrow(
            dispute_id,
            commitment,
            data_hash,
            threshold,
            len(holders),
            addresses,
            [h.holder_type for h in holders],
            sender=sender,
        )
        logger.info(
            "Created escrow %d for dispute %d (%d-of-%d)",
            escrow_id,
            dispute_id,
            threshold,
            len(holders),
        )
        return EscrowResult(
            escrow_id=escrow_id,
            viewing_key_commitment=commitment,
            encrypted_data_hash=data_hash,
            encrypted_metadata=encrypted_metadata,
            encrypted_shares=encrypted_shares,
            threshold=threshold,
        )

    async def distribute_shares(
        self,
        result: EscrowResult,
        deliver: ShareDelivery,
        *,
        retry: Optional[RetryPolicy] = None,
    ) -> List[DeliveryReceipt]:
        """
        Deliver every encrypted share concurrently, each with its own retries.

        One holder's failure never blocks the others.

        Raises:
            DistributionError: Listing every holder whose delivery failed
        """
        policy = retry or self.retry_policy
        receipts: List[DeliveryReceipt] = []
        failures: Dict[str, BaseException] = {}

        async def deliver_one(record: EncryptedShareRecord) -> None:
            try:
                await with_retry(
                    lambda: deliver(record.address, record.encrypted_share),
                    policy,
                    description=f"share delivery to {record.address}",
                )
            except Exception as exc:
                failures[record.address] = exc
                return
            receipts.append(DeliveryReceipt(record.address, record.share_index))

        async with trio.open_nursery() as nursery:
            for record in result.encrypted_shares:
                nursery.start_soon(deliver_one, record)

        receipts.sort(key=lambda r: r.share_index)
        if failures:
            logger.error(
                "Share delivery for escrow %d failed for %d of %d holders",
                result.escrow_id,
                len(failures),
                len(result.encrypted_shares),
            )
            raise DistributionError(failures, delivered=receipts)
        return receipts

    def decrypt_share(self, private_key: KeyLike, encrypted_share: Ciphertext) -> Share:
        """Recover a holder's share from the ciphertext addressed to them."""
        return Share.from_bytes(self.ecies.decrypt(private_key, encrypted_share))

    async def submit_share_commitment(
        self, escrow_id: int, share: Share, *, sender: str
    ) -> str:
        """Prove possession of a share by recording its commitment."""
        commitment = self.shamir.generate_share_commitment(share)
        await with_retry(
            lambda: self.ledger.submit_share_commitment(escrow_id, commitment, sender=sender),
            self.retry_policy,
            description=f"share commitment for escrow {escrow_id}",
        )
        return commitment

    # ------------------------------------------------------------------------
    # Reveal
    # ------------------------------------------------------------------------

    async def _authorize_warrant(
        self,
        escrow_id: int,
        legal_doc_hash: str,
        warrant: Optional[WarrantMessage],
        council_signature: Optional[Union[ThresholdSignature, bytes]],
    ) -> None:
        if warrant is None or council_signature is None:
            raise UnauthorizedError("a council-signed warrant is required to request a reveal")
        escrow = await self.ledger.get_escrow(escrow_id)
        if warrant.dispute_id != escrow.dispute_id:
            raise UnauthorizedError("warrant was issued for a different dispute")
        if bytes_to_hex(warrant.document_hash) != normalize_hash(legal_doc_hash, "legalDocHash"):
            raise UnauthorizedError("warrant does not cover this legal document")
        message = create_warrant_message(warrant)
        if not verify_threshold_signature(council_signature, message, self.council_public_key):
            raise UnauthorizedError("council signature on warrant does not verify")
        logger.info("Council warrant %d verified for escrow %d", warrant.warrant_id, escrow_id)

    async def request_reveal(
        self,
        escrow_id: int,
        reason: str,
        legal_doc_hash: str,
        voting_period: int = DEFAULT_VOTING_PERIOD,
        *,
        sender: str,
        warrant: Optional[WarrantMessage] = None,
        council_signature: Optional[Union[ThresholdSignature, bytes]] = None,
    ) -> int:
        """
        File a reveal request.

        Raises:
            UnauthorizedError: If a council key is configured and the warrant
                is missing, mismatched or not validly signed
        """
        if self.council_public_key is not None:
            await self._authorize_warrant(escrow_id, legal_doc_hash, warrant, council_signature)
        request_id = await self.ledger.request_reveal(
            escrow_id, reason, legal_doc_hash, voting_period, sender=sender
        )
        logger.info("Reveal request %d filed for escrow %d", request_id, escrow_id)
        return request_id

    async def vote_on_reveal(self, request_id: int, approve: bool, *, sender: str) -> None:
        await with_retry(
            lambda: self.ledger.vote_on_reveal(request_id, approve, sender=sender),
            self.retry_policy,
            description=f"vote on request {request_id}",
        )

    async def submit_share(
        self,
        request_id: int,
        share: Share,
        coordinator_public_key: KeyLike,
        *,
        sender: str,
    ) -> None:
        """
        Re-encrypt a share to the coordinator and submit it.

        The ciphertext is produced once, so retried submissions are
        byte-identical and the ledger treats them as no-ops.

        Raises:
            EscrowStateError: If the request has not been approved
        """
        request = await self.ledger.get_reveal_request(request_id)
        if request.status not in OPEN_FOR_SHARES:
            raise EscrowStateError(
                f"request {request_id} is {request.status}; shares are only released after approval"
            )
        ciphertext = self.ecies.encrypt(coordinator_public_key, share.to_bytes())
        blob = encode_share_submission(
            ShareSubmission(msg_v=MSG_V, share_index=share.index, ciphertext=ciphertext)
        )
        await with_retry(
            lambda: self.ledger.submit_share_for_reveal(
                request_id, share.index, blob, sender=sender
            ),
            self.retry_policy,
            description=f"share submission for request {request_id}",
        )

    # ------------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------------

    async def get_status(self, request_id: int) -> RevealPhase:
        return (await self.ledger.get_reveal_request(request_id)).status

    async def get_escrow(self, escrow_id: int) -> EscrowRecord:
        return await self.ledger.get_escrow(escrow_id)

    async def get_share_holders(self, escrow_id: int) -> List[ShareHolder]:
        return await self.ledger.get_share_holders(escrow_id)

    async def get_reveal_request(self, request_id: int) -> RevealRequest:
        return await self.ledger.get_reveal_request(request_id)

    async def is_threshold_met(self, request_id: int) -> bool:
        return await self.ledger.is_threshold_met(request_id)


# ============================================================================
# REVEAL COORDINATOR
# ============================================================================


class RevealCoordinator:
    """
    Collects approved shares, reconstructs the viewing key and decrypts.

    The coordinator's key pair must not belong to any share holder, so that
    no single holder can reconstruct the key alone.
    """

    def __init__(
        self,
        ledger: EscrowLedger,
        key_pair: KeyPair,
        *,
        ecies: Optional[ECIES] = None,
        shamir: Optional[ShamirSecretSharing] = None,
        providers: Optional[CryptoProviders] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.ledger = ledger
        self._key_pair = key_pair
        self.providers = providers or get_crypto_providers()
        self.ecies = ecies or ECIES(self.providers)
        self.shamir = shamir or ShamirSecretSharing(self.providers)
        self.retry_policy = retry_policy or RetryPolicy()

    @property
    def public_key(self) -> bytes:
        return self._key_pair.public_key

    async def collect_shares(self, request_id: int) -> List[Share]:
        """
        Decrypt every share submitted for ``request_id``.

        Submissions that do not decode, do not decrypt under the coordinator
        key, or claim an index other than the one they were filed under are
        skipped and logged; the threshold check decides whether enough remain.
        """
        submissions = await self.ledger.get_submitted_shares(request_id)
        shares: List[Share] = []
        for index in sorted(submissions):
            try:
                message = decode_share_submission(submissions[index])
                payload = self.ecies.decrypt(self._key_pair.private_key, message.ciphertext)
                share = Share.from_bytes(payload)
            except (
                SchemaError,
                SizeLimitError,
                AuthenticationError,
                CryptographicError,
                InputValidationError,
                VersioningError,
            ) as exc:
                logger.warning(
                    "Skipping unusable share %d for request %d: %s",
                    index,
                    request_id,
                    type(exc).__name__,
                )
                continue
            if message.share_index != index or share.index != index:
                logger.warning(
                    "Skipping share filed as %d for request %d: index mismatch",
                    index,
                    request_id,
                )
                continue
            shares.append(share)
        return shares

    async def reconstruct_and_decrypt(
        self,
        request_id: int,
        encrypted_metadata: Union[EncryptedMetadata, Dict[str, Any], str],
    ) -> RevealData:
        """
        Reconstruct the viewing key and decrypt the escrowed metadata.

        The key lives only inside a wiped KeyMaterial scope.

        Raises:
            ReconstructionError: If fewer than the threshold of usable shares
                were submitted, the metadata does not belong to this escrow,
                or the reconstructed key does not match the commitment
        """
        encrypted_metadata = _coerce_metadata(encrypted_metadata)
        request = await self.ledger.get_reveal_request(request_id)
        escrow = await self.ledger.get_escrow(request.escrow_id)

        if encrypted_metadata.content_hash() != escrow.encrypted_data_hash:
            raise ReconstructionError("encrypted metadata does not match the escrow record")

        shares = await self.collect_shares(request_id)
        if len(shares) < escrow.threshold:
            raise ReconstructionError(
                f"need {escrow.threshold} shares to reconstruct, have {len(shares)}"
            )

        with KeyMaterial(self.shamir.combine(shares, threshold=escrow.threshold)) as key:
            key_hash = bytes_to_hex(keccak256(key.value()))
            if not constant_time_compare(
                key_hash.encode("ascii"), escrow.viewing_key_commitment.encode("ascii")
            ):
                raise ReconstructionError(
                    "reconstructed key does not match the escrow commitment"
                )
            metadata = decrypt_metadata(key.value(), encrypted_metadata, self.providers)

        logger.info(
            "Viewing key for escrow %d reconstructed from %d shares",
            escrow.escrow_id,
            len(shares),
        )
        return RevealData(metadata=metadata, reconstructed_key_hash=key_hash)

    async def finalize_reveal(
        self, request_id: int, reconstructed_key_hash: str, *, sender: str
    ) -> None:
        """Publish the reconstructed key hash; the key itself never leaves."""
        await with_retry(
            lambda: self.ledger.finalize_reveal(
                request_id, reconstructed_key_hash, sender=sender
            ),
            self.retry_policy,
            description=f"finalize request {request_id}",
        )
        logger.info("Reveal request %d finalized", request_id)
