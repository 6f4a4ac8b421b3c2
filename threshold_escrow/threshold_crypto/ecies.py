"""
WARNING: DRAFT - requires cryptographic review before production use.

ECIES (Elliptic Curve Integrated Encryption Scheme) on secp256k1.

Properties:
    - Asymmetric encryption using ECDH key exchange
    - Authenticated encryption (AES-256-GCM by default)
    - Forward secrecy via a fresh ephemeral key pair per message

Flow:
    1. Generate ephemeral key pair
    2. ECDH with the recipient's public key; keep only the x-coordinate
       (the shared point without its encoding prefix byte)
    3. HKDF-SHA256(shared, salt=ECIES_HKDF_SALT, info="ecies-encryption")
    4. AEAD-encrypt under a fresh 96-bit nonce
    5. Return (version, ephemeral public key, nonce, ciphertext, tag)

The scheme accepts wallet-style keys: 32-byte private scalars and 65-byte
uncompressed (or 33-byte compressed) public keys.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from .config import (
    ECIES_HKDF_INFO,
    ECIES_HKDF_SALT,
    ECIES_VERSION,
    MULTI_RECIPIENT_PLACEHOLDER_KEY,
    NONCE_BYTES,
    PRIVATE_KEY_BYTES,
    SECP256K1_ORDER,
    SYMMETRIC_KEY_BYTES,
)
from .exceptions import CryptographicError, InputValidationError, VersioningError
from .factory import get_crypto_providers
from .interfaces import CryptoProviders
from .security import KeyMaterial, hex_to_bytes
from .types import Ciphertext, KeyPair, MultiRecipientCiphertext

KeyLike = Union[bytes, bytearray, str]
Plaintext = Union[bytes, bytearray, str]

_CURVE = ec.SECP256K1()


# ============================================================================
# KEY HELPERS
# ============================================================================


def _coerce_key_bytes(key: KeyLike, field: str) -> bytes:
    if isinstance(key, str):
        return hex_to_bytes(key, field=field)
    if isinstance(key, (bytes, bytearray)):
        return bytes(key)
    raise InputValidationError(f"{field} must be bytes or hex, got {type(key)}")


def _load_private_key(private_key: KeyLike) -> ec.EllipticCurvePrivateKey:
    raw = _coerce_key_bytes(private_key, "private key")
    if len(raw) != PRIVATE_KEY_BYTES:
        raise InputValidationError(f"private key must be {PRIVATE_KEY_BYTES} bytes")
    scalar = int.from_bytes(raw, "big")
    if not 1 <= scalar < SECP256K1_ORDER:
        raise InputValidationError("private key is outside the secp256k1 scalar range")
    return ec.derive_private_key(scalar, _CURVE)


def _load_public_key(public_key: KeyLike) -> ec.EllipticCurvePublicKey:
    raw = _coerce_key_bytes(public_key, "public key")
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(_CURVE, raw)
    except ValueError as exc:
        raise CryptographicError("public key is not a valid secp256k1 point") from exc


def _encode_public_key(key: ec.EllipticCurvePublicKey) -> bytes:
    return key.public_bytes(
        serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
    )


def _to_plaintext_bytes(plaintext: Plaintext) -> bytes:
    if isinstance(plaintext, str):
        return plaintext.encode("utf-8")
    if isinstance(plaintext, (bytes, bytearray)):
        return bytes(plaintext)
    raise InputValidationError(f"plaintext must be bytes or str, got {type(plaintext)}")


# ============================================================================
# ECIES ENGINE
# ============================================================================


class ECIES:
    """
    ECIES encryption/decryption engine.

    Example:
        >>> ecies = ECIES()
        >>> pair = ecies.generate_key_pair()
        >>> ct = ecies.encrypt(pair.public_key, b"viewing key")
        >>> ecies.decrypt(pair.private_key, ct)
        b'viewing key'
    """

    def __init__(self, providers: Optional[CryptoProviders] = None) -> None:
        self.providers = providers or get_crypto_providers()

    # ------------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------------

    def generate_key_pair(self) -> KeyPair:
        """Generate a new secp256k1 key pair from the injected randomness source."""
        scalar = self.providers.rng.random_scalar(SECP256K1_ORDER)
        private_key = ec.derive_private_key(scalar, _CURVE)
        return KeyPair(
            private_key=scalar.to_bytes(PRIVATE_KEY_BYTES, "big"),
            public_key=_encode_public_key(private_key.public_key()),
        )

    def public_key_from_private(self, private_key: KeyLike) -> bytes:
        """Derive the 65-byte uncompressed public key."""
        return _encode_public_key(_load_private_key(private_key).public_key())

    # ------------------------------------------------------------------------
    # Single recipient
    # ------------------------------------------------------------------------

    def _derive_key(self, shared_secret: bytes) -> bytes:
        return self.providers.kdf.derive(
            shared_secret,
            salt=ECIES_HKDF_SALT,
            info=ECIES_HKDF_INFO,
            length=SYMMETRIC_KEY_BYTES,
        )

    def encrypt(self, recipient_public_key: KeyLike, plaintext: Plaintext) -> Ciphertext:
        """
        Encrypt data to a recipient's public key.

        Args:
            recipient_public_key: 65-byte uncompressed or 33-byte compressed key (bytes or hex)
            plaintext: Data to encrypt; ``str`` is UTF-8 encoded

        Returns:
            Ciphertext: Current-version ciphertext
        """
        data = _to_plaintext_bytes(plaintext)
        recipient = _load_public_key(recipient_public_key)

        ephemeral = _load_private_key(
            self.providers.rng.random_scalar(SECP256K1_ORDER).to_bytes(
                PRIVATE_KEY_BYTES, "big"
            )
        )
        # cryptography returns the x-coordinate only, i.e. the shared point
        # with its encoding prefix byte already removed.
        shared = ephemeral.exchange(ec.ECDH(), recipient)
        with KeyMaterial(self._derive_key(shared)) as key:
            iv = self.providers.rng.random_bytes(NONCE_BYTES)
            ciphertext, tag = self.providers.aead.encrypt(key.value(), iv, data)

        return Ciphertext(
            version=ECIES_VERSION,
            ephemeral_public_key=_encode_public_key(ephemeral.public_key()),
            iv=iv,
            ciphertext=ciphertext,
            auth_tag=tag,
        )

    def decrypt(self, private_key: KeyLike, ciphertext: Ciphertext) -> bytes:
        """
        Decrypt an ECIES ciphertext with the recipient's private key.

        Raises:
            VersioningError: If the ciphertext version is newer than supported
            AuthenticationError: If the tag does not verify
        """
        self._check_version(ciphertext)
        recipient = _load_private_key(private_key)
        ephemeral = _load_public_key(ciphertext.ephemeral_public_key)

        shared = recipient.exchange(ec.ECDH(), ephemeral)
        with KeyMaterial(self._derive_key(shared)) as key:
            return self.providers.aead.decrypt(
                key.value(), ciphertext.iv, ciphertext.ciphertext, ciphertext.auth_tag
            )

    @staticmethod
    def _check_version(ciphertext: Ciphertext) -> None:
        if not isinstance(ciphertext, Ciphertext):
            raise InputValidationError(
                f"ciphertext must be a Ciphertext, got {type(ciphertext)}"
            )
        if ciphertext.version > ECIES_VERSION:
            raise VersioningError(ciphertext.version, ECIES_VERSION)

    # ------------------------------------------------------------------------
    # Multiple recipients
    # ------------------------------------------------------------------------

    def encrypt_multi(
        self, recipient_public_keys: Sequence[KeyLike], plaintext: Plaintext
    ) -> MultiRecipientCiphertext:
        """
        Encrypt data once under a random DEK and wrap the DEK per recipient.

        The shared ciphertext carries a zeroed placeholder ephemeral key; only
        its nonce, body and tag are meaningful.
        """
        if not recipient_public_keys:
            raise InputValidationError("at least one recipient is required")
        data = _to_plaintext_bytes(plaintext)

        with KeyMaterial(self.providers.rng.random_bytes(SYMMETRIC_KEY_BYTES)) as dek:
            iv = self.providers.rng.random_bytes(NONCE_BYTES)
            body, tag = self.providers.aead.encrypt(dek.value(), iv, data)
            key_shares = [self.encrypt(pub, dek.value()) for pub in recipient_public_keys]

        shared = Ciphertext(
            version=ECIES_VERSION,
            ephemeral_public_key=MULTI_RECIPIENT_PLACEHOLDER_KEY,
            iv=iv,
            ciphertext=body,
            auth_tag=tag,
        )
        return MultiRecipientCiphertext(shared_ciphertext=shared, key_shares=key_shares)

    def decrypt_multi(
        self,
        private_key: KeyLike,
        shared_ciphertext: Ciphertext,
        my_key_share: Ciphertext,
    ) -> bytes:
        """Recover the DEK from ``my_key_share`` and decrypt the shared payload."""
        self._check_version(shared_ciphertext)
        with KeyMaterial(self.decrypt(private_key, my_key_share)) as dek:
            if len(dek) != SYMMETRIC_KEY_BYTES:
                raise CryptographicError("recovered data-encryption key has wrong length")
            return self.providers.aead.decrypt(
                dek.value(),
                shared_ciphertext.iv,
                shared_ciphertext.ciphertext,
                shared_ciphertext.auth_tag,
            )


# ============================================================================
# SERIALIZATION HELPERS
# ============================================================================


def serialize_ciphertext(ciphertext: Ciphertext) -> str:
    """Serialize an ECIES ciphertext to its JSON wire form."""
    return ciphertext.to_json()


def deserialize_ciphertext(text: str) -> Ciphertext:
    """Parse an ECIES ciphertext from its JSON wire form."""
    return Ciphertext.from_json(text)
