"""
Capability interfaces for the threshold cryptography core.

The engines never branch on their runtime environment. Instead they are
handed an AEAD, a KDF and a randomness source, chosen once at startup by
``factory.get_crypto_providers``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple


class AeadProvider(ABC):
    """Authenticated encryption with a 96-bit nonce and a 128-bit tag."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name of the algorithm."""

    @abstractmethod
    def encrypt(
        self,
        key: bytes,
        nonce: bytes,
        plaintext: bytes,
        aad: Optional[bytes] = None,
    ) -> Tuple[bytes, bytes]:
        """Return ``(ciphertext, tag)``."""

    @abstractmethod
    def decrypt(
        self,
        key: bytes,
        nonce: bytes,
        ciphertext: bytes,
        tag: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """Return the plaintext or raise ``AuthenticationError``."""


class KdfProvider(ABC):
    """Key derivation from a shared secret."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name of the algorithm."""

    @abstractmethod
    def derive(
        self, ikm: bytes, *, salt: bytes, info: bytes, length: int = 32
    ) -> bytes:
        """Derive ``length`` bytes of key material."""


class RandomSource(ABC):
    """Source of randomness for keys, nonces and polynomial coefficients."""

    @abstractmethod
    def random_bytes(self, n: int) -> bytes:
        """Return ``n`` random bytes."""

    def random_scalar(self, order: int) -> int:
        """Return a uniformly distributed scalar in ``[1, order)``.

        Uses rejection sampling over ``random_bytes`` so that every source
        gets the same unbiased reduction.
        """
        if order <= 2:
            raise ValueError(f"order must be > 2, got {order}")
        n_bytes = (order.bit_length() + 7) // 8
        excess_bits = n_bytes * 8 - order.bit_length()
        while True:
            candidate = int.from_bytes(self.random_bytes(n_bytes), "big")
            candidate >>= excess_bits
            if 1 <= candidate < order:
                return candidate


@dataclass(frozen=True)
class CryptoProviders:
    """The capability bundle handed to every engine."""

    aead: AeadProvider
    kdf: KdfProvider
    rng: RandomSource
