"""
WARNING: DRAFT - requires cryptographic review before production use.

Threshold BLS signatures over BLS12-381 with Feldman verifiable shares.

- Key generation: a degree t-1 polynomial over the scalar field; share i is
  f(i), commitments are G1 * a_j, the group key is G1 * f(0).
- Signing: each holder signs with the basic (NUL) ciphersuite, signatures in G2.
- Aggregation: Lagrange-weighted sum of partial signatures in G2.

⚠️ TRUSTED DEALER: ``generate_key_shares`` sees the whole polynomial, and
with it the master secret. It is a dealer-based Feldman VSS, not a
dealerless DKG. Run it only where a single trusted party is acceptable.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from py_ecc.bls import G2Basic
from py_ecc.bls.g2_primitives import (
    G1_to_pubkey,
    G2_to_signature,
    pubkey_to_G1,
    signature_to_G2,
)
from py_ecc.optimized_bls12_381 import G1, Z1, Z2, add, eq, is_inf, multiply, normalize

from .config import (
    BLS12_381_ORDER,
    BLS_FIELD_ELEMENT_BYTES,
    BLS_G1_BYTES,
    BLS_G2_BYTES,
    BLS_SCALAR_BYTES,
    NONCE_BYTES,
    TAG_BYTES,
    VIEWING_KEY_ENVELOPE_MIN_BYTES,
    WARRANT_DOMAIN_SEPARATOR,
)
from .exceptions import (
    CryptographicError,
    InputValidationError,
    ReconstructionError,
)
from .factory import get_crypto_providers
from .interfaces import CryptoProviders, RandomSource
from .security import KeyMaterial, SystemRandomSource, bytes_to_hex, hex_to_bytes, sha256

logger = logging.getLogger(__name__)

CURVE_ORDER = BLS12_381_ORDER


# ============================================================================
# TYPES
# ============================================================================


@dataclass(frozen=True)
class KeyShare:
    """
    One participant's share of the group signing key.

    Attributes:
        index: 1-based participant index (the polynomial evaluation point)
        secret_share: 32-byte big-endian scalar f(index)
        public_key: 48-byte compressed G1 point, G1 * f(index)
    """

    index: int
    secret_share: bytes = field(repr=False)
    public_key: bytes

    def __post_init__(self):
        if isinstance(self.index, bool) or not isinstance(self.index, int) or self.index < 1:
            raise InputValidationError(f"key share index must be >= 1, got {self.index!r}")
        if len(self.secret_share) != BLS_SCALAR_BYTES:
            raise InputValidationError(f"secret share must be {BLS_SCALAR_BYTES} bytes")
        if len(self.public_key) != BLS_G1_BYTES:
            raise InputValidationError(f"share public key must be {BLS_G1_BYTES} bytes")

    @property
    def scalar(self) -> int:
        return int.from_bytes(self.secret_share, "big")

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "secretShare": bytes_to_hex(self.secret_share),
            "publicKey": bytes_to_hex(self.public_key),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeyShare":
        return cls(
            index=data["index"],
            secret_share=hex_to_bytes(
                data["secretShare"], field="secretShare", length=BLS_SCALAR_BYTES
            ),
            public_key=hex_to_bytes(
                data["publicKey"], field="publicKey", length=BLS_G1_BYTES
            ),
        )


@dataclass(frozen=True)
class DKGOutput:
    """
    Result of threshold key generation.

    Attributes:
        threshold: Signatures needed (t)
        total_participants: Shares issued (n)
        shares: One KeyShare per participant
        aggregated_public_key: 48-byte group public key, G1 * f(0)
        commitments: Feldman commitments G1 * a_j, one per coefficient
    """

    threshold: int
    total_participants: int
    shares: List[KeyShare]
    aggregated_public_key: bytes
    commitments: List[bytes]

    def to_dict(self) -> dict:
        return {
            "threshold": self.threshold,
            "totalParticipants": self.total_participants,
            "shares": [share.to_dict() for share in self.shares],
            "aggregatedPublicKey": bytes_to_hex(self.aggregated_public_key),
            "commitments": [bytes_to_hex(c) for c in self.commitments],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DKGOutput":
        """
        Parse the transport form.

        Raises:
            InputValidationError: If fields are missing or malformed
        """
        try:
            output = cls(
                threshold=int(data["threshold"]),
                total_participants=int(data["totalParticipants"]),
                shares=[KeyShare.from_dict(s) for s in data["shares"]],
                aggregated_public_key=hex_to_bytes(
                    data["aggregatedPublicKey"],
                    field="aggregatedPublicKey",
                    length=BLS_G1_BYTES,
                ),
                commitments=[
                    hex_to_bytes(c, field="commitment", length=BLS_G1_BYTES)
                    for c in data["commitments"]
                ],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InputValidationError("Invalid DKG output format") from exc
        if len(output.commitments) != output.threshold:
            raise InputValidationError("commitment count must equal the threshold")
        return output


@dataclass(frozen=True)
class PartialSignature:
    """A single participant's signature over a message (96-byte G2 point)."""

    signer_index: int
    signature: bytes


@dataclass(frozen=True)
class ThresholdSignature:
    """Aggregated group signature and the participants that produced it."""

    signature: bytes
    signer_indices: Tuple[int, ...]


@dataclass(frozen=True)
class WarrantMessage:
    """Council authorization for a compliance reveal."""

    warrant_id: int
    dispute_id: int
    document_hash: bytes
    execution_time: int


# ============================================================================
# SCALAR HELPERS
# ============================================================================


def _scalar_to_bytes(value: int) -> bytes:
    return value.to_bytes(BLS_SCALAR_BYTES, "big")


def _evaluate_polynomial(coefficients: Sequence[int], x: int) -> int:
    result = 0
    for coefficient in reversed(coefficients):
        result = (result * x + coefficient) % CURVE_ORDER
    return result


def lagrange_coefficient(index: int, indices: Sequence[int], order: int = CURVE_ORDER) -> int:
    """
    Lagrange basis value at x = 0 for ``index`` among ``indices``.

    lambda_i = prod_{j != i} j / (j - i)  (mod order)
    """
    if index not in indices:
        raise InputValidationError(f"index {index} is not among the signer indices")
    if len(set(indices)) != len(indices):
        raise InputValidationError("duplicate indices")
    numerator, denominator = 1, 1
    for j in indices:
        if j == index:
            continue
        numerator = (numerator * j) % order
        denominator = (denominator * (j - index)) % order
    return (numerator * pow(denominator, -1, order)) % order


def _check_distinct(indices: Sequence[int]) -> None:
    if len(set(indices)) != len(indices):
        raise InputValidationError("duplicate share indices")


# ============================================================================
# KEY GENERATION
# ============================================================================


def generate_key_shares(
    threshold: int,
    total: int,
    master_secret: Optional[bytes] = None,
    *,
    rng: Optional[RandomSource] = None,
) -> DKGOutput:
    """
    Deal t-of-n key shares with Feldman commitments.

    Args:
        threshold: Signatures needed (1 <= t <= n)
        total: Number of participants
        master_secret: Optional 32-byte scalar in [1, r); random when omitted
        rng: Randomness source for the polynomial coefficients

    Returns:
        DKGOutput with shares, commitments and the group public key

    Raises:
        InputValidationError: On invalid threshold, total or master secret
    """
    if isinstance(total, bool) or not isinstance(total, int) or total < 1:
        raise InputValidationError(f"total participants must be >= 1, got {total!r}")
    if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 1:
        raise InputValidationError(f"threshold must be >= 1, got {threshold!r}")
    if threshold > total:
        raise InputValidationError(
            f"threshold ({threshold}) cannot exceed total participants ({total})"
        )
    rng = rng or SystemRandomSource()

    if master_secret is None:
        secret = rng.random_scalar(CURVE_ORDER)
    else:
        if len(master_secret) != BLS_SCALAR_BYTES:
            raise InputValidationError(f"master secret must be {BLS_SCALAR_BYTES} bytes")
        secret = int.from_bytes(master_secret, "big")
        if not 1 <= secret < CURVE_ORDER:
            raise InputValidationError("master secret is outside the scalar field")

    # A share of exactly zero cannot sign; redraw the polynomial in that case.
    while True:
        coefficients = [secret] + [
            rng.random_scalar(CURVE_ORDER) for _ in range(threshold - 1)
        ]
        scalars = [_evaluate_polynomial(coefficients, i) for i in range(1, total + 1)]
        if all(scalars):
            break

    shares = [
        KeyShare(
            index=i,
            secret_share=_scalar_to_bytes(s),
            public_key=G1_to_pubkey(multiply(G1, s)),
        )
        for i, s in enumerate(scalars, start=1)
    ]
    commitments = [G1_to_pubkey(multiply(G1, c)) for c in coefficients]

    logger.info("Dealt %d-of-%d threshold key shares", threshold, total)
    return DKGOutput(
        threshold=threshold,
        total_participants=total,
        shares=shares,
        aggregated_public_key=commitments[0],
        commitments=commitments,
    )


def verify_share(share: KeyShare, commitments: Sequence[bytes]) -> bool:
    """
    Check a share against the dealer's Feldman commitments.

    Recomputes sum_j C_j * i^j and compares it with both the share's published
    public key and G1 * secret_share. Malformed input verifies as False.
    """
    if not commitments:
        return False
    try:
        expected = Z1
        power = 1
        for commitment in commitments:
            expected = add(expected, multiply(pubkey_to_G1(bytes(commitment)), power))
            power = (power * share.index) % CURVE_ORDER
        published = pubkey_to_G1(bytes(share.public_key))
    except (ValueError, TypeError, AssertionError):
        return False
    derived = multiply(G1, share.scalar % CURVE_ORDER)
    return eq(expected, published) and eq(expected, derived)


# ============================================================================
# SIGNING
# ============================================================================


def sign_partial(share: KeyShare, message: bytes) -> PartialSignature:
    """Sign ``message`` with one key share."""
    if not isinstance(message, (bytes, bytearray)):
        raise InputValidationError("message must be bytes")
    scalar = share.scalar
    if not 1 <= scalar < CURVE_ORDER:
        raise InputValidationError("key share scalar is outside the signing range")
    return PartialSignature(
        signer_index=share.index,
        signature=bytes(G2Basic.Sign(scalar, bytes(message))),
    )


def verify_partial_signature(
    partial: PartialSignature, message: bytes, signer_public_key: bytes
) -> bool:
    """Verify one partial signature against the signer's share public key."""
    if not isinstance(message, (bytes, bytearray)):
        return False
    return G2Basic.Verify(
        bytes(signer_public_key), bytes(message), bytes(partial.signature)
    )


def aggregate_signatures(
    partials: Sequence[PartialSignature], threshold: Optional[int] = None
) -> ThresholdSignature:
    """
    Combine partial signatures by Lagrange interpolation in G2.

    Args:
        partials: Partial signatures with distinct signer indices
        threshold: When given, fewer partials than this fails immediately

    Raises:
        InputValidationError: On an empty set, duplicate or invalid indices
        ReconstructionError: If fewer than ``threshold`` partials are given
        CryptographicError: If a signature does not decode to a G2 point
    """
    partials = list(partials)
    if not partials:
        raise InputValidationError("no partial signatures to aggregate")
    indices = [p.signer_index for p in partials]
    if any(isinstance(i, bool) or not isinstance(i, int) or i < 1 for i in indices):
        raise InputValidationError("signer indices must be integers >= 1")
    _check_distinct(indices)
    if threshold is not None and len(partials) < threshold:
        raise ReconstructionError(
            f"need {threshold} partial signatures, got {len(partials)}"
        )

    combined = Z2
    for partial in partials:
        if len(partial.signature) != BLS_G2_BYTES:
            raise InputValidationError(f"partial signature must be {BLS_G2_BYTES} bytes")
        try:
            point = signature_to_G2(bytes(partial.signature))
        except (ValueError, AssertionError) as exc:
            raise CryptographicError(
                f"partial signature from signer {partial.signer_index} is malformed"
            ) from exc
        weight = lagrange_coefficient(partial.signer_index, indices)
        combined = add(combined, multiply(point, weight))

    return ThresholdSignature(
        signature=bytes(G2_to_signature(combined)), signer_indices=tuple(indices)
    )


def verify_threshold_signature(
    signature: Union[ThresholdSignature, bytes],
    message: bytes,
    aggregated_public_key: bytes,
) -> bool:
    """Verify a group signature against the aggregated public key."""
    if isinstance(signature, ThresholdSignature):
        signature = signature.signature
    if not isinstance(signature, (bytes, bytearray)) or not isinstance(
        message, (bytes, bytearray)
    ):
        return False
    return G2Basic.Verify(bytes(aggregated_public_key), bytes(message), bytes(signature))


# ============================================================================
# SECRET RECONSTRUCTION AND VIEWING-KEY WRAPPING
# ============================================================================


def reconstruct_secret(
    shares: Sequence[KeyShare],
    threshold: int,
    *,
    expected_public_key: Optional[bytes] = None,
) -> bytes:
    """
    Recover the master secret f(0) from the first ``threshold`` shares.

    This collapses the threshold property for whoever runs it, so every call
    is logged as an audit event.

    Raises:
        ReconstructionError: If fewer than ``threshold`` shares are supplied, or
            the result does not match ``expected_public_key``
        InputValidationError: On duplicate indices
    """
    shares = list(shares)
    if threshold < 1:
        raise InputValidationError(f"threshold must be >= 1, got {threshold}")
    if len(shares) < threshold:
        raise ReconstructionError(f"need {threshold} shares, got {len(shares)}")
    _check_distinct([s.index for s in shares])

    subset = shares[:threshold]
    indices = [s.index for s in subset]
    secret = 0
    for share in subset:
        secret = (secret + share.scalar * lagrange_coefficient(share.index, indices)) % CURVE_ORDER

    if expected_public_key is not None:
        if G1_to_pubkey(multiply(G1, secret)) != bytes(expected_public_key):
            raise ReconstructionError("reconstructed secret does not match the group key")

    logger.warning("AUDIT: master secret reconstructed from share indices %s", indices)
    return _scalar_to_bytes(secret)


def encrypt_viewing_key(
    viewing_key: bytes,
    secret: bytes,
    *,
    providers: Optional[CryptoProviders] = None,
) -> bytes:
    """
    Wrap a viewing key under SHA-256(secret).

    Returns:
        bytes: ``iv || ciphertext || tag``
    """
    if not viewing_key:
        raise InputValidationError("viewing key cannot be empty")
    providers = providers or get_crypto_providers()
    with KeyMaterial(sha256(bytes(secret))) as key:
        iv = providers.rng.random_bytes(NONCE_BYTES)
        ciphertext, tag = providers.aead.encrypt(key.value(), iv, bytes(viewing_key))
    return iv + ciphertext + tag


def decrypt_viewing_key(
    encrypted: bytes,
    shares: Sequence[KeyShare],
    threshold: int,
    *,
    providers: Optional[CryptoProviders] = None,
) -> bytes:
    """
    Reconstruct the master secret from shares and unwrap a viewing key.

    Raises:
        InputValidationError: If ``encrypted`` is shorter than iv + tag
        ReconstructionError: If too few shares are supplied
        AuthenticationError: If the tag does not verify
    """
    if len(encrypted) < VIEWING_KEY_ENVELOPE_MIN_BYTES:
        raise InputValidationError(
            f"encrypted viewing key must be at least {VIEWING_KEY_ENVELOPE_MIN_BYTES} bytes"
        )
    providers = providers or get_crypto_providers()
    iv = bytes(encrypted[:NONCE_BYTES])
    ciphertext = bytes(encrypted[NONCE_BYTES:-TAG_BYTES])
    tag = bytes(encrypted[-TAG_BYTES:])

    with KeyMaterial(reconstruct_secret(shares, threshold)) as secret:
        with KeyMaterial(sha256(secret.value())) as key:
            return providers.aead.decrypt(key.value(), iv, ciphertext, tag)


# ============================================================================
# WARRANTS AND ENCODING HELPERS
# ============================================================================


def create_warrant_message(warrant: WarrantMessage) -> bytes:
    """
    Digest signed by the council to authorize a reveal.

    SHA-256("COMPLIANCE_REVEAL" || warrantId || disputeId || documentHash || executionTime),
    with the integers as 32-byte big-endian words.
    """
    if len(warrant.document_hash) != 32:
        raise InputValidationError("document hash must be 32 bytes")
    for name in ("warrant_id", "dispute_id", "execution_time"):
        value = getattr(warrant, name)
        if not isinstance(value, int) or value < 0 or value >= 2**256:
            raise InputValidationError(f"{name} must be an unsigned 256-bit integer")
    return sha256(
        WARRANT_DOMAIN_SEPARATOR
        + warrant.warrant_id.to_bytes(32, "big")
        + warrant.dispute_id.to_bytes(32, "big")
        + bytes(warrant.document_hash)
        + warrant.execution_time.to_bytes(32, "big")
    )


def public_key_coordinates(public_key: bytes) -> Tuple[bytes, bytes]:
    """
    Affine (x, y) coordinates of a compressed G1 public key, 48 bytes each.

    Raises:
        CryptographicError: If the key is malformed or the point at infinity
    """
    try:
        point = pubkey_to_G1(bytes(public_key))
    except (ValueError, AssertionError) as exc:
        raise CryptographicError("public key is not a valid G1 point") from exc
    if is_inf(point):
        raise CryptographicError("public key is the point at infinity")
    x, y = normalize(point)
    return (
        int(x.n).to_bytes(BLS_FIELD_ELEMENT_BYTES, "big"),
        int(y.n).to_bytes(BLS_FIELD_ELEMENT_BYTES, "big"),
    )
