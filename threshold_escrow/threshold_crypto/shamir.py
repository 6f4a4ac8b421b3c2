"""
WARNING: DRAFT - requires cryptographic review before production use.

Shamir secret sharing over GF(2^8).

Each secret byte is the constant term of its own random polynomial of
degree t-1; share i holds the evaluations at x = i. Any t shares recover the
secret by Lagrange interpolation at x = 0, while any t-1 shares are
consistent with every possible secret.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .config import (
    GF256_GENERATOR,
    GF256_MULTIPLICATIVE_ORDER,
    GF256_POLYNOMIAL,
    SHAMIR_MAX_SHARES,
    SHAMIR_MIN_THRESHOLD,
)
from .exceptions import ConfigurationError, InputValidationError, ReconstructionError
from .factory import get_crypto_providers
from .interfaces import CryptoProviders
from .security import constant_time_compare, keccak256
from .types import EncodedShare, Share

logger = logging.getLogger(__name__)


# ============================================================================
# GF(2^8) ARITHMETIC
# ============================================================================


def _carryless_mul(a: int, b: int, polynomial: int) -> int:
    result = 0
    while b:
        if b & 1:
            result ^= a
        a <<= 1
        if a & 0x100:
            a ^= polynomial
        b >>= 1
    return result


class GF256:
    """
    The finite field GF(2^8) with log/exp lookup tables.

    Addition is XOR. Multiplication and division go through the tables built
    from ``generator``, which must generate the whole multiplicative group.

    Raises:
        ConfigurationError: If ``generator`` does not have order 255
    """

    def __init__(self, polynomial: int = GF256_POLYNOMIAL, generator: int = GF256_GENERATOR):
        self.polynomial = polynomial
        self.generator = generator
        self._exp = [0] * (2 * GF256_MULTIPLICATIVE_ORDER)
        self._log = [0] * 256

        x = 1
        seen = set()
        for i in range(GF256_MULTIPLICATIVE_ORDER):
            if x in seen:
                raise ConfigurationError(
                    f"generator 0x{generator:02x} has order {i} under polynomial "
                    f"0x{polynomial:x}, expected {GF256_MULTIPLICATIVE_ORDER}"
                )
            seen.add(x)
            self._exp[i] = x
            self._log[x] = i
            x = _carryless_mul(x, generator, polynomial)
        if x != 1:
            raise ConfigurationError(
                f"generator 0x{generator:02x} does not cycle back to 1 after "
                f"{GF256_MULTIPLICATIVE_ORDER} steps"
            )
        # Doubled table so that log[a] + log[b] never needs a reduction.
        for i in range(GF256_MULTIPLICATIVE_ORDER, 2 * GF256_MULTIPLICATIVE_ORDER):
            self._exp[i] = self._exp[i - GF256_MULTIPLICATIVE_ORDER]

    @property
    def generator_order(self) -> int:
        x, order = self.generator, 1
        while x != 1:
            x = self.mul(x, self.generator)
            order += 1
        return order

    @staticmethod
    def add(a: int, b: int) -> int:
        return a ^ b

    def mul(self, a: int, b: int) -> int:
        if a == 0 or b == 0:
            return 0
        return self._exp[self._log[a] + self._log[b]]

    def div(self, a: int, b: int) -> int:
        if b == 0:
            raise ZeroDivisionError("division by zero in GF(2^8)")
        if a == 0:
            return 0
        return self._exp[
            (self._log[a] - self._log[b]) % GF256_MULTIPLICATIVE_ORDER
        ]

    def evaluate(self, coefficients: Sequence[int], x: int) -> int:
        """Evaluate a polynomial (constant term first) at ``x`` with Horner's rule."""
        result = 0
        for coefficient in reversed(coefficients):
            result = self.mul(result, x) ^ coefficient
        return result

    def lagrange_basis(self, xs: Sequence[int], x: int = 0) -> List[int]:
        """Lagrange basis values l_i(x) for distinct nodes ``xs``."""
        basis = []
        for i, xi in enumerate(xs):
            numerator, denominator = 1, 1
            for j, xj in enumerate(xs):
                if i == j:
                    continue
                numerator = self.mul(numerator, x ^ xj)
                denominator = self.mul(denominator, xi ^ xj)
            basis.append(self.div(numerator, denominator))
        return basis

    def interpolate(self, points: Sequence[Tuple[int, int]], x: int = 0) -> int:
        """
        Evaluate at ``x`` the unique polynomial through ``points``.

        Args:
            points: ``(x_i, y_i)`` pairs with distinct ``x_i``
            x: Evaluation point (0 recovers the constant term)
        """
        xs = [px for px, _ in points]
        if len(set(xs)) != len(xs):
            raise InputValidationError("interpolation points must be distinct")
        result = 0
        for (_, y), basis in zip(points, self.lagrange_basis(xs, x)):
            result ^= self.mul(y, basis)
        return result


# ============================================================================
# SHAMIR SECRET SHARING
# ============================================================================


class ShamirSecretSharing:
    """
    Threshold secret splitting over GF(2^8).

    Example:
        >>> sss = ShamirSecretSharing()
        >>> shares = sss.split(b"viewing key", n=5, t=3)
        >>> sss.combine(shares[:3])
        b'viewing key'
    """

    def __init__(
        self,
        providers: Optional[CryptoProviders] = None,
        field: Optional[GF256] = None,
    ):
        self.providers = providers or get_crypto_providers()
        self.field = field or GF256()

    def split(self, secret: bytes, n: int, t: int) -> List[Share]:
        """
        Split ``secret`` into ``n`` shares, any ``t`` of which recover it.

        Raises:
            InputValidationError: If t < 2, t > n, n > 255 or the secret is empty
        """
        if not isinstance(secret, (bytes, bytearray)) or len(secret) == 0:
            raise InputValidationError("secret must be non-empty bytes")
        if isinstance(t, bool) or not isinstance(t, int) or t < SHAMIR_MIN_THRESHOLD:
            raise InputValidationError(
                f"threshold must be at least {SHAMIR_MIN_THRESHOLD}, got {t}"
            )
        if isinstance(n, bool) or not isinstance(n, int) or n > SHAMIR_MAX_SHARES:
            raise InputValidationError(
                f"total shares cannot exceed {SHAMIR_MAX_SHARES}, got {n}"
            )
        if t > n:
            raise InputValidationError(
                f"threshold ({t}) cannot exceed total shares ({n})"
            )

        degree = t - 1
        randomness = self.providers.rng.random_bytes(degree * len(secret))
        polynomials = [
            [byte] + list(randomness[pos * degree:(pos + 1) * degree])
            for pos, byte in enumerate(bytes(secret))
        ]

        shares = [
            Share(
                index=x,
                data=bytes(self.field.evaluate(poly, x) for poly in polynomials),
            )
            for x in range(1, n + 1)
        ]
        logger.debug("Split %d-byte secret into %d shares (threshold %d)", len(secret), n, t)
        return shares

    def combine(self, shares: Sequence[Share], threshold: Optional[int] = None) -> bytes:
        """
        Recover the secret from shares by interpolating at x = 0.

        Args:
            shares: At least two shares with distinct indices and equal lengths
            threshold: When given, fewer shares than this is a reconstruction error

        Raises:
            InputValidationError: On malformed, duplicate or mismatched shares,
                or a ``threshold`` below 2
            ReconstructionError: If fewer than ``threshold`` shares are supplied
        """
        shares = list(shares)
        for share in shares:
            if not isinstance(share, Share):
                raise InputValidationError(f"expected Share, got {type(share)}")
        if threshold is not None and (
            isinstance(threshold, bool)
            or not isinstance(threshold, int)
            or threshold < SHAMIR_MIN_THRESHOLD
        ):
            raise InputValidationError(
                f"threshold must be an integer >= {SHAMIR_MIN_THRESHOLD}"
            )
        if threshold is not None and len(shares) < threshold:
            raise ReconstructionError(
                f"need {threshold} shares to reconstruct, got {len(shares)}"
            )
        if len(shares) < SHAMIR_MIN_THRESHOLD:
            raise InputValidationError(
                f"at least {SHAMIR_MIN_THRESHOLD} shares are required"
            )

        indices = [share.index for share in shares]
        if len(set(indices)) != len(indices):
            raise InputValidationError("duplicate share indices")

        length = len(shares[0].data)
        if length == 0:
            raise InputValidationError("share data cannot be empty")
        if any(len(share.data) != length for share in shares):
            raise InputValidationError("all shares must have the same length")

        basis = self.field.lagrange_basis(indices, 0)
        secret = bytearray(length)
        for share, weight in zip(shares, basis):
            for pos, y in enumerate(share.data):
                secret[pos] ^= self.field.mul(y, weight)
        return bytes(secret)

    # ------------------------------------------------------------------------
    # Transport encoding
    # ------------------------------------------------------------------------

    @staticmethod
    def encode_share(share: Share) -> EncodedShare:
        return EncodedShare.encode(share)

    @staticmethod
    def decode_share(
        encoded: Union[EncodedShare, Dict], expected_length: Optional[int] = None
    ) -> Share:
        if isinstance(encoded, dict):
            encoded = EncodedShare.from_dict(encoded)
        if not isinstance(encoded, EncodedShare):
            raise InputValidationError(f"expected EncodedShare, got {type(encoded)}")
        return encoded.decode(expected_length)

    # ------------------------------------------------------------------------
    # Commitments
    # ------------------------------------------------------------------------

    @staticmethod
    def generate_share_commitment(share: Share) -> str:
        """keccak-256(uint8 index || data) as ``0x``-prefixed hex."""
        return "0x" + keccak256(share.to_bytes()).hex()

    @classmethod
    def verify_share_commitment(cls, share: Share, commitment: str) -> bool:
        """Case-insensitive, constant-time check of a share commitment."""
        if not isinstance(commitment, str):
            return False
        expected = cls.generate_share_commitment(share)
        provided = commitment.lower()
        if not provided.startswith("0x"):
            provided = "0x" + provided
        return constant_time_compare(expected.encode("ascii"), provided.encode("utf-8"))

