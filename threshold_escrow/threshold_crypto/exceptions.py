"""
Custom exceptions for the threshold cryptography core.

Every failure raised by this package is local and synchronous. Reporting
them to audit or alerting systems is the orchestration layer's concern.
"""

from typing import Optional


class ThresholdCryptoError(Exception):
    """Base exception for threshold cryptography errors."""

    pass


class InputValidationError(ThresholdCryptoError, ValueError):
    """Bad lengths, out-of-range parameters, empty secrets or duplicate indices.

    Raised before any cryptographic work starts. Never retried automatically.
    """

    pass


class AuthenticationError(ThresholdCryptoError):
    """AEAD tag mismatch. No plaintext is ever returned alongside it."""

    pass


class VersioningError(ThresholdCryptoError):
    """Ciphertext format is newer than this package supports."""

    def __init__(self, version: int, supported: int, message: Optional[str] = None):
        self.version = version
        self.supported = supported
        super().__init__(
            message
            or (
                f"Unsupported ECIES ciphertext version {version}; "
                f"this package supports up to version {supported}. Please upgrade."
            )
        )


class ReconstructionError(ThresholdCryptoError):
    """Insufficient or inconsistent shares or signatures."""

    pass


class ConfigurationError(ThresholdCryptoError):
    """Configuration error."""

    pass


class CryptographicError(ThresholdCryptoError):
    """Cryptographic operation error (malformed keys, points or encodings)."""

    pass
