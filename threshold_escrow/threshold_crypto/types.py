"""
WARNING: DRAFT - requires cryptographic review before production use.

Common types for the threshold cryptography core.

This module provides:
1. KeyPair - secp256k1 identity whose private half never leaves the device
2. Ciphertext - ECIES output with JSON (hex) and CBOR (raw bytes) wire forms
3. MultiRecipientCiphertext - shared payload plus one key share per recipient
4. Share / EncodedShare - Shamir fragments and their base64 transport form
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import cbor2

from .config import (
    COMPRESSED_PUBLIC_KEY_BYTES,
    MAX_CIPHERTEXT_CBOR_BYTES,
    NONCE_BYTES,
    PRIVATE_KEY_BYTES,
    PUBLIC_KEY_BYTES,
    SHAMIR_MAX_SHARES,
    TAG_BYTES,
)
from .exceptions import CryptographicError, InputValidationError
from .security import bytes_to_hex, hex_to_bytes

# ============================================================================
# KEY PAIR
# ============================================================================


@dataclass(frozen=True)
class KeyPair:
    """
    An asymmetric secp256k1 identity.

    Attributes:
        private_key: 32-byte big-endian scalar
        public_key: 65-byte uncompressed SEC1 point

    The private key is excluded from ``repr`` and from ``to_dict``; only the
    public half has a wire form.
    """

    private_key: bytes = field(repr=False)
    public_key: bytes

    def __post_init__(self):
        if len(self.private_key) != PRIVATE_KEY_BYTES:
            raise InputValidationError(
                f"private key must be {PRIVATE_KEY_BYTES} bytes"
            )
        if len(self.public_key) not in (PUBLIC_KEY_BYTES, COMPRESSED_PUBLIC_KEY_BYTES):
            raise InputValidationError(
                f"public key must be {PUBLIC_KEY_BYTES} or "
                f"{COMPRESSED_PUBLIC_KEY_BYTES} bytes"
            )

    @property
    def public_key_hex(self) -> str:
        return bytes_to_hex(self.public_key)

    def to_dict(self) -> dict:
        return {"publicKey": self.public_key_hex}


# ============================================================================
# CIPHERTEXT
# ============================================================================


@dataclass(frozen=True)
class Ciphertext:
    """
    ECIES ciphertext.

    Attributes:
        version: Format version; 0 means the legacy format without a version field
        ephemeral_public_key: Sender's single-use public key
        iv: 96-bit AEAD nonce
        ciphertext: Encrypted payload without the tag
        auth_tag: 128-bit AEAD tag

    Serialization:
        - JSON via ``to_dict``/``from_dict`` (hex fields)
        - CBOR via ``serialize``/``deserialize`` (raw bytes, compact)
    """

    version: int
    ephemeral_public_key: bytes
    iv: bytes
    ciphertext: bytes
    auth_tag: bytes

    def __post_init__(self):
        if isinstance(self.version, bool) or not isinstance(self.version, int):
            raise InputValidationError(
                f"version must be an integer, got {type(self.version)}"
            )
        if self.version < 0:
            raise InputValidationError(f"version must be >= 0, got {self.version}")
        if len(self.iv) != NONCE_BYTES:
            raise InputValidationError(f"iv must be {NONCE_BYTES} bytes")
        if len(self.auth_tag) != TAG_BYTES:
            raise InputValidationError(f"auth tag must be {TAG_BYTES} bytes")

    # ------------------------------------------------------------------------
    # JSON wire form
    # ------------------------------------------------------------------------

    def to_dict(self) -> dict:
        """
        Convert to the JSON wire form.

        Returns:
            dict: ``{version, ephemeralPublicKey, iv, ciphertext, authTag}``
        """
        return {
            "version": self.version,
            "ephemeralPublicKey": bytes_to_hex(self.ephemeral_public_key),
            "iv": bytes_to_hex(self.iv),
            "ciphertext": bytes_to_hex(self.ciphertext),
            "authTag": bytes_to_hex(self.auth_tag),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ciphertext":
        """
        Parse the JSON wire form. A missing ``version`` means legacy format 0.

        Raises:
            InputValidationError: If fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise InputValidationError("ciphertext must be a mapping")
        missing = [
            key
            for key in ("ephemeralPublicKey", "iv", "ciphertext", "authTag")
            if key not in data
        ]
        if missing:
            raise InputValidationError(
                f"ciphertext missing required fields: {', '.join(missing)}"
            )
        version = data.get("version")
        return cls(
            version=0 if version is None else version,
            ephemeral_public_key=hex_to_bytes(
                data["ephemeralPublicKey"], field="ephemeralPublicKey"
            ),
            iv=hex_to_bytes(data["iv"], field="iv", length=NONCE_BYTES),
            ciphertext=hex_to_bytes(data["ciphertext"], field="ciphertext"),
            auth_tag=hex_to_bytes(data["authTag"], field="authTag", length=TAG_BYTES),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, text: str) -> "Ciphertext":
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise InputValidationError("ciphertext is not valid JSON") from exc
        return cls.from_dict(data)

    # ------------------------------------------------------------------------
    # CBOR wire form
    # ------------------------------------------------------------------------

    def serialize(self) -> bytes:
        """
        Serialize to CBOR with raw byte fields.

        Raises:
            CryptographicError: If the encoded form exceeds the size limit
        """
        blob = cbor2.dumps(
            {
                "v": self.version,
                "e": self.ephemeral_public_key,
                "n": self.iv,
                "c": self.ciphertext,
                "t": self.auth_tag,
            }
        )
        if len(blob) > MAX_CIPHERTEXT_CBOR_BYTES:
            raise CryptographicError("serialized ciphertext too large")
        return blob

    @classmethod
    def deserialize(cls, blob: bytes) -> "Ciphertext":
        """
        Parse the CBOR form. A missing ``v`` key means legacy format 0.

        Raises:
            InputValidationError: If the blob is malformed
        """
        if not isinstance(blob, (bytes, bytearray)):
            raise InputValidationError("ciphertext blob must be bytes")
        if len(blob) > MAX_CIPHERTEXT_CBOR_BYTES:
            raise InputValidationError("ciphertext blob too large")
        try:
            obj = cbor2.loads(bytes(blob))
        except cbor2.CBORDecodeError as exc:
            raise InputValidationError(f"Failed to decode ciphertext: {exc}") from exc
        if not isinstance(obj, dict) or not all(k in obj for k in ("e", "n", "c", "t")):
            raise InputValidationError("Invalid ciphertext format: missing required fields")
        for key in ("e", "n", "c", "t"):
            if not isinstance(obj[key], bytes):
                raise InputValidationError(f"ciphertext field {key!r} must be bytes")
        return cls(
            version=obj.get("v", 0),
            ephemeral_public_key=obj["e"],
            iv=obj["n"],
            ciphertext=obj["c"],
            auth_tag=obj["t"],
        )


@dataclass(frozen=True)
class MultiRecipientCiphertext:
    """Payload encrypted once under a DEK, plus the DEK encrypted per recipient."""

    shared_ciphertext: Ciphertext
    key_shares: List[Ciphertext]

    def to_dict(self) -> dict:
        return {
            "sharedCiphertext": self.shared_ciphertext.to_dict(),
            "keyShares": [share.to_dict() for share in self.key_shares],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MultiRecipientCiphertext":
        try:
            return cls(
                shared_ciphertext=Ciphertext.from_dict(data["sharedCiphertext"]),
                key_shares=[Ciphertext.from_dict(s) for s in data["keyShares"]],
            )
        except (KeyError, TypeError) as exc:
            raise InputValidationError(
                "Invalid multi-recipient ciphertext format"
            ) from exc


# ============================================================================
# SHAMIR SHARES
# ============================================================================


def _validate_share_index(index: Any) -> None:
    if isinstance(index, bool) or not isinstance(index, int):
        raise InputValidationError(f"share index must be an integer, got {type(index)}")
    if not 1 <= index <= SHAMIR_MAX_SHARES:
        raise InputValidationError(
            f"share index must be in 1..{SHAMIR_MAX_SHARES}, got {index}"
        )


@dataclass(frozen=True)
class Share:
    """
    A single Shamir fragment.

    Attributes:
        index: 1-based evaluation point (never 0, which is the secret itself)
        data: One field element per secret byte
    """

    index: int
    data: bytes = field(repr=False)

    def __post_init__(self):
        _validate_share_index(self.index)
        if not isinstance(self.data, (bytes, bytearray)):
            raise InputValidationError(f"share data must be bytes, got {type(self.data)}")
        if isinstance(self.data, bytearray):
            object.__setattr__(self, "data", bytes(self.data))

    def to_bytes(self) -> bytes:
        """Payload form used when encrypting a share: ``index || data``."""
        return bytes([self.index]) + self.data

    @classmethod
    def from_bytes(cls, payload: bytes) -> "Share":
        if len(payload) < 2:
            raise InputValidationError("share payload too short")
        return cls(index=payload[0], data=bytes(payload[1:]))


@dataclass(frozen=True)
class EncodedShare:
    """Share transport form: ``{index, data: base64}``."""

    index: int
    data: str

    def to_dict(self) -> dict:
        return {"index": self.index, "data": self.data}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncodedShare":
        if not isinstance(data, dict) or "index" not in data or "data" not in data:
            raise InputValidationError("encoded share must have index and data")
        return cls(index=data["index"], data=data["data"])

    def decode(self, expected_length: Optional[int] = None) -> Share:
        """
        Decode to a Share.

        Args:
            expected_length: Secret length the share must match, if known

        Raises:
            InputValidationError: On invalid base64, index or length
        """
        _validate_share_index(self.index)
        if not isinstance(self.data, str):
            raise InputValidationError("encoded share data must be a base64 string")
        try:
            raw = base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InputValidationError("encoded share data is not valid base64") from exc
        if not raw:
            raise InputValidationError("encoded share data is empty")
        if expected_length is not None and len(raw) != expected_length:
            raise InputValidationError(
                f"share length {len(raw)} does not match secret length {expected_length}"
            )
        return Share(index=self.index, data=raw)

    @classmethod
    def encode(cls, share: Share) -> "EncodedShare":
        return cls(index=share.index, data=base64.b64encode(share.data).decode("ascii"))
