"""
WARNING: DRAFT - requires cryptographic review before production use.

Concrete AEAD and KDF providers.

- AesGcmProvider: AES-256-GCM via ``cryptography``
- ChaCha20Poly1305Provider: ChaCha20-Poly1305 (IETF) via PyNaCl
- HkdfSha256Provider: HKDF-SHA256 via ``cryptography``

All AEADs here use a 96-bit nonce and a 128-bit tag so that ciphertexts keep
the same wire shape whichever provider is selected.
"""

from __future__ import annotations

from typing import Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from nacl import bindings as nacl_bindings
from nacl.exceptions import CryptoError as NaclCryptoError

from .config import (
    AEAD_AES_256_GCM,
    AEAD_CHACHA20_POLY1305,
    NONCE_BYTES,
    SYMMETRIC_KEY_BYTES,
    TAG_BYTES,
)
from .exceptions import AuthenticationError, InputValidationError
from .interfaces import AeadProvider, KdfProvider


def _check_aead_inputs(key: bytes, nonce: bytes, tag: Optional[bytes] = None) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != SYMMETRIC_KEY_BYTES:
        raise InputValidationError(f"key must be {SYMMETRIC_KEY_BYTES} bytes")
    if not isinstance(nonce, (bytes, bytearray)) or len(nonce) != NONCE_BYTES:
        raise InputValidationError(f"nonce must be {NONCE_BYTES} bytes")
    if tag is not None and len(tag) != TAG_BYTES:
        raise InputValidationError(f"auth tag must be {TAG_BYTES} bytes")


class AesGcmProvider(AeadProvider):
    """AES-256-GCM with a detached 16-byte tag."""

    @property
    def name(self) -> str:
        return AEAD_AES_256_GCM

    def encrypt(
        self,
        key: bytes,
        nonce: bytes,
        plaintext: bytes,
        aad: Optional[bytes] = None,
    ) -> Tuple[bytes, bytes]:
        _check_aead_inputs(key, nonce)
        ct_full = AESGCM(bytes(key)).encrypt(bytes(nonce), bytes(plaintext), aad)
        return ct_full[:-TAG_BYTES], ct_full[-TAG_BYTES:]

    def decrypt(
        self,
        key: bytes,
        nonce: bytes,
        ciphertext: bytes,
        tag: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        _check_aead_inputs(key, nonce, tag)
        try:
            return AESGCM(bytes(key)).decrypt(
                bytes(nonce), bytes(ciphertext) + bytes(tag), aad
            )
        except InvalidTag as exc:
            raise AuthenticationError(
                "Decryption failed: authentication tag mismatch"
            ) from exc


class ChaCha20Poly1305Provider(AeadProvider):
    """ChaCha20-Poly1305 (RFC 8439) for platforms without AES acceleration."""

    @property
    def name(self) -> str:
        return AEAD_CHACHA20_POLY1305

    def encrypt(
        self,
        key: bytes,
        nonce: bytes,
        plaintext: bytes,
        aad: Optional[bytes] = None,
    ) -> Tuple[bytes, bytes]:
        _check_aead_inputs(key, nonce)
        ct_full = nacl_bindings.crypto_aead_chacha20poly1305_ietf_encrypt(
            bytes(plaintext), aad, bytes(nonce), bytes(key)
        )
        return ct_full[:-TAG_BYTES], ct_full[-TAG_BYTES:]

    def decrypt(
        self,
        key: bytes,
        nonce: bytes,
        ciphertext: bytes,
        tag: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        _check_aead_inputs(key, nonce, tag)
        try:
            return nacl_bindings.crypto_aead_chacha20poly1305_ietf_decrypt(
                bytes(ciphertext) + bytes(tag), aad, bytes(nonce), bytes(key)
            )
        except NaclCryptoError as exc:
            raise AuthenticationError(
                "Decryption failed: authentication tag mismatch"
            ) from exc


class HkdfSha256Provider(KdfProvider):
    """HKDF (RFC 5869) with SHA-256."""

    @property
    def name(self) -> str:
        return "hkdf-sha256"

    def derive(
        self, ikm: bytes, *, salt: bytes, info: bytes, length: int = SYMMETRIC_KEY_BYTES
    ) -> bytes:
        if not ikm:
            raise InputValidationError("input key material cannot be empty")
        return HKDF(
            algorithm=hashes.SHA256(),
            length=length,
            salt=salt,
            info=info,
        ).derive(bytes(ikm))
