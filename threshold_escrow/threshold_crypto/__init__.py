"""Public API for the threshold cryptography core.

ECIES hybrid encryption, Shamir secret sharing over GF(2^8) and threshold
BLS signatures, all built on a provider bundle chosen once at startup.
"""
from __future__ import annotations

from .ecies import ECIES, deserialize_ciphertext, serialize_ciphertext
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    CryptographicError,
    InputValidationError,
    ReconstructionError,
    ThresholdCryptoError,
    VersioningError,
)
from .factory import get_crypto_providers
from .feature_flags import get_aead_type, set_aead_type
from .interfaces import AeadProvider, CryptoProviders, KdfProvider, RandomSource
from .security import DeterministicRandomSource, KeyMaterial, SystemRandomSource
from .shamir import GF256, ShamirSecretSharing
from .types import Ciphertext, EncodedShare, KeyPair, MultiRecipientCiphertext, Share

__all__ = [
    "AeadProvider",
    "AuthenticationError",
    "Ciphertext",
    "ConfigurationError",
    "CryptoProviders",
    "CryptographicError",
    "DeterministicRandomSource",
    "ECIES",
    "EncodedShare",
    "GF256",
    "InputValidationError",
    "KdfProvider",
    "KeyMaterial",
    "KeyPair",
    "MultiRecipientCiphertext",
    "RandomSource",
    "ReconstructionError",
    "ShamirSecretSharing",
    "Share",
    "SystemRandomSource",
    "ThresholdCryptoError",
    "VersioningError",
    "deserialize_ciphertext",
    "get_aead_type",
    "get_crypto_providers",
    "serialize_ciphertext",
    "set_aead_type",
]
