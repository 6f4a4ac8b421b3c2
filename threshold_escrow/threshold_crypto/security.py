"""
WARNING: DRAFT - requires cryptographic review before production use.

Security utilities shared by the engines: randomness sources, hashing,
constant-time comparison, hex helpers and zeroable key material.
"""

import hashlib
import hmac
import os
import secrets
from typing import Optional, Union

from Crypto.Hash import keccak

from .exceptions import InputValidationError
from .interfaces import RandomSource


# ============================================================================
# RANDOMNESS SOURCES
# ============================================================================


class SystemRandomSource(RandomSource):
    """
    Cryptographically secure randomness with fork detection.

    Prevents catastrophic randomness reuse if the process forks.

    Example:
        >>> rng = SystemRandomSource()
        >>> nonce = rng.random_bytes(12)
        >>> # After fork, the source automatically reinitializes
    """

    def __init__(self):
        """Initialize randomness source with fork detection."""
        self._pid = os.getpid()
        self._rng = secrets.SystemRandom()

    def _check_fork(self) -> None:
        if os.getpid() != self._pid:
            self.__init__()

    def random_bytes(self, n: int) -> bytes:
        """
        Get n cryptographically secure random bytes.

        Args:
            n: Number of bytes to generate

        Returns:
            n random bytes
        """
        if n < 0:
            raise InputValidationError(f"n must be >= 0, got {n}")
        self._check_fork()
        return secrets.token_bytes(n)

    def random_scalar(self, order: int) -> int:
        """
        Get a random scalar in [1, order).

        Note:
            SystemRandom.randrange is already unbiased, so the rejection
            loop of the base class is not needed here.
        """
        if order <= 2:
            raise InputValidationError(f"order must be > 2, got {order}")
        self._check_fork()
        return self._rng.randrange(1, order)


class DeterministicRandomSource(RandomSource):
    """
    Reproducible byte stream for tests and test vectors.

    ⚠️ NEVER use in production: anyone who knows the seed knows every key,
    nonce and polynomial coefficient drawn from it.

    The stream is SHAKE-256(seed || counter) with a counter that advances on
    every call, so two calls never return overlapping output.
    """

    def __init__(self, seed: Union[bytes, str] = b"threshold-escrow-test-seed"):
        if isinstance(seed, str):
            seed = seed.encode("utf-8")
        if not seed:
            raise InputValidationError("seed cannot be empty")
        self._seed = bytes(seed)
        self._counter = 0

    def random_bytes(self, n: int) -> bytes:
        if n < 0:
            raise InputValidationError(f"n must be >= 0, got {n}")
        block = hashlib.shake_256(
            self._seed + self._counter.to_bytes(8, "big")
        ).digest(n)
        self._counter += 1
        return block


# ============================================================================
# HASH FUNCTIONS
# ============================================================================


def keccak256(data: bytes) -> bytes:
    """Keccak-256 as used by the ledger of record (not NIST SHA3-256)."""
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(f"data must be bytes, got {type(data)}")
    k = keccak.new(digest_bits=256)
    k.update(bytes(data))
    return k.digest()


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


# ============================================================================
# CONSTANT-TIME OPERATIONS
# ============================================================================


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """
    Constant-time comparison to prevent timing attacks.

    Args:
        a: First byte string
        b: Second byte string

    Returns:
        True if a == b, False otherwise
    """
    return hmac.compare_digest(a, b)


# ============================================================================
# HEX ENCODING
# ============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Encode bytes as ``0x``-prefixed lowercase hex."""
    return "0x" + bytes(data).hex()


def hex_to_bytes(value: str, *, field: str = "value", length: Optional[int] = None) -> bytes:
    """
    Decode hex with or without a ``0x`` prefix.

    Args:
        value: Hex string
        field: Field name used in error messages
        length: Expected decoded length, if fixed

    Raises:
        InputValidationError: If the string is not valid hex or has the wrong length
    """
    if not isinstance(value, str):
        raise InputValidationError(f"{field} must be a hex string, got {type(value)}")
    clean = value[2:] if value[:2] in ("0x", "0X") else value
    try:
        decoded = bytes.fromhex(clean)
    except ValueError as exc:
        raise InputValidationError(f"{field} is not valid hex") from exc
    if length is not None and len(decoded) != length:
        raise InputValidationError(
            f"{field} must be {length} bytes, got {len(decoded)}"
        )
    return decoded


# ============================================================================
# KEY MATERIAL
# ============================================================================


class KeyMaterial:
    """
    Mutable secret buffer that is zeroed when its scope exits.

    Python cannot guarantee that no other copy of a secret exists, but the
    buffer held here is overwritten on every exit path, including errors and
    cancellation.

    Example:
        >>> with KeyMaterial(secret_bytes) as key:
        ...     plaintext = aead.decrypt(key.value(), nonce, ct, tag)
        >>> key.is_wiped
        True
    """

    def __init__(self, data: Union[bytes, bytearray]):
        self._buffer = bytearray(data)
        self._wiped = False

    def __enter__(self) -> "KeyMaterial":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __len__(self) -> int:
        return len(self._buffer)

    def __repr__(self) -> str:
        state = "wiped" if self._wiped else f"{len(self._buffer)} bytes"
        return f"KeyMaterial(<{state}>)"

    @property
    def is_wiped(self) -> bool:
        return self._wiped

    def value(self) -> bytes:
        if self._wiped:
            raise InputValidationError("key material has been wiped")
        return bytes(self._buffer)

    def wipe(self) -> None:
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._wiped = True
