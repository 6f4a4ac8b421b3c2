"""Escrow ledger records and the encrypted metadata envelope."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple

from threshold_escrow.threshold_crypto.config import NONCE_BYTES, TAG_BYTES
from threshold_escrow.threshold_crypto.exceptions import InputValidationError
from threshold_escrow.threshold_crypto.security import bytes_to_hex, hex_to_bytes, keccak256
from .constants import HASH_BYTES
from .state import RevealPhase


class HolderType(IntEnum):
    USER = 0
    DAO = 1
    AUDITOR = 2
    LEGAL_COUNSEL = 3
    REGULATOR = 4


@dataclass(frozen=True)
class HolderInfo:
    """A designated share holder: ledger address plus the key their share is encrypted to."""

    address: str
    public_key: bytes
    holder_type: HolderType = HolderType.USER


@dataclass
class ShareHolder:
    address: str
    holder_type: HolderType
    share_commitment: Optional[str] = None
    has_submitted: bool = False


@dataclass
class EscrowRecord:
    escrow_id: int
    dispute_id: int
    viewing_key_commitment: str
    encrypted_data_hash: str
    threshold: int
    total_shares: int
    holders: List[ShareHolder]
    created_at: float
    creator: str
    revealed: bool = False

    def holder_position(self, address: str) -> Optional[int]:
        """Zero-based position of ``address``; share index is position + 1."""
        for position, holder in enumerate(self.holders):
            if holder.address == address:
                return position
        return None


@dataclass
class RevealRequest:
    request_id: int
    escrow_id: int
    requester: str
    reason: str
    legal_doc_hash: str
    requested_at: float
    expires_at: float
    status: RevealPhase = RevealPhase.REVEAL_REQUESTED
    votes: Dict[str, bool] = field(default_factory=dict)
    submitted_shares: Dict[int, bytes] = field(default_factory=dict)
    reconstructed_key_hash: Optional[str] = None

    @property
    def approvals(self) -> int:
        return sum(1 for approve in self.votes.values() if approve)

    @property
    def rejections(self) -> int:
        return sum(1 for approve in self.votes.values() if not approve)


@dataclass(frozen=True)
class LedgerEvent:
    """One entry of the append-only ledger log."""

    sequence: int
    name: str
    timestamp: float
    data: Tuple[Tuple[str, Any], ...]

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.data)


@dataclass(frozen=True)
class EncryptedMetadata:
    """
    Dispute metadata encrypted under the escrow viewing key.

    The JSON form ``{iv, ciphertext, authTag}`` is what gets stored off-ledger;
    its keccak-256 is the escrow's encrypted-data hash.
    """

    iv: bytes
    ciphertext: bytes
    auth_tag: bytes

    def __post_init__(self):
        if len(self.iv) != NONCE_BYTES:
            raise InputValidationError(f"iv must be {NONCE_BYTES} bytes")
        if len(self.auth_tag) != TAG_BYTES:
            raise InputValidationError(f"auth tag must be {TAG_BYTES} bytes")

    def to_dict(self) -> dict:
        return {
            "iv": bytes_to_hex(self.iv),
            "ciphertext": bytes_to_hex(self.ciphertext),
            "authTag": bytes_to_hex(self.auth_tag),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedMetadata":
        if not isinstance(data, dict) or not all(
            k in data for k in ("iv", "ciphertext", "authTag")
        ):
            raise InputValidationError("encrypted metadata must have iv, ciphertext and authTag")
        return cls(
            iv=hex_to_bytes(data["iv"], field="iv", length=NONCE_BYTES),
            ciphertext=hex_to_bytes(data["ciphertext"], field="ciphertext"),
            auth_tag=hex_to_bytes(data["authTag"], field="authTag", length=TAG_BYTES),
        )

    def to_json(self) -> str:
        """Compact JSON; the byte-exact input of the encrypted-data hash."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def content_hash(self) -> str:
        """keccak-256 of the compact JSON form, as recorded on the ledger."""
        return bytes_to_hex(keccak256(self.to_json().encode("utf-8")))

    @classmethod
    def from_json(cls, text: str) -> "EncryptedMetadata":
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise InputValidationError("encrypted metadata is not valid JSON") from exc
        return cls.from_dict(data)


def normalize_hash(value: str, field_name: str) -> str:
    """Canonical ``0x``-prefixed lowercase form of a 32-byte hash."""
    return bytes_to_hex(hex_to_bytes(value, field=field_name, length=HASH_BYTES))
