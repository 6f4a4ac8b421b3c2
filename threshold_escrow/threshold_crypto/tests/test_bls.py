"""
WARNING: DRAFT - requires cryptographic review before production use.

Unit tests for threshold BLS over BLS12-381.

Pairing checks are slow in pure Python, so most tests compare group
elements directly and only a few go through full verification.
"""

import hashlib
import logging

import pytest
from py_ecc.bls import G2Basic
from py_ecc.bls.g2_primitives import G1_to_pubkey
from py_ecc.optimized_bls12_381 import G1, multiply, normalize

from threshold_escrow.threshold_crypto import bls
from threshold_escrow.threshold_crypto.bls import (
    CURVE_ORDER,
    DKGOutput,
    KeyShare,
    PartialSignature,
    WarrantMessage,
)
from threshold_escrow.threshold_crypto.exceptions import (
    AuthenticationError,
    CryptographicError,
    InputValidationError,
    ReconstructionError,
)
from threshold_escrow.threshold_crypto.security import DeterministicRandomSource

MASTER = (123456789).to_bytes(32, "big")


@pytest.fixture(scope="module")
def dealt() -> DKGOutput:
    return bls.generate_key_shares(
        3, 5, master_secret=MASTER, rng=DeterministicRandomSource(b"bls-tests")
    )


class TestKeyGeneration:
    """Test dealing and Feldman verification."""

    def test_output_shape(self, dealt):
        """Test share count, indices and commitment count."""
        assert dealt.threshold == 3
        assert dealt.total_participants == 5
        assert [s.index for s in dealt.shares] == [1, 2, 3, 4, 5]
        assert len(dealt.commitments) == 3
        assert dealt.aggregated_public_key == dealt.commitments[0]

    def test_group_key_matches_master_secret(self, dealt):
        """Test the group key is G1 * master."""
        expected = G1_to_pubkey(multiply(G1, int.from_bytes(MASTER, "big")))
        assert dealt.aggregated_public_key == expected

    def test_every_share_verifies(self, dealt):
        """Test each dealt share against the commitments."""
        for share in dealt.shares:
            assert bls.verify_share(share, dealt.commitments)

    def test_tampered_share_fails(self, dealt):
        """Test a modified scalar or swapped commitments."""
        share = dealt.shares[0]
        tampered = KeyShare(
            index=share.index,
            secret_share=((share.scalar + 1) % CURVE_ORDER).to_bytes(32, "big"),
            public_key=share.public_key,
        )
        assert not bls.verify_share(tampered, dealt.commitments)
        assert not bls.verify_share(dealt.shares[1], list(reversed(dealt.commitments)))
        assert not bls.verify_share(share, [])
        assert not bls.verify_share(share, [b"\x00" * 48])

    def test_random_master_secret(self):
        """Test dealing without a fixed master secret."""
        output = bls.generate_key_shares(1, 1, rng=DeterministicRandomSource(b"one"))
        assert len(output.shares) == 1
        assert output.shares[0].public_key == output.aggregated_public_key

    @pytest.mark.parametrize(
        "threshold,total,master",
        [
            (0, 3, None),
            (4, 3, None),
            (2, 0, None),
            (2, 3, b"\x01" * 31),
            (2, 3, b"\x00" * 32),
            (2, 3, CURVE_ORDER.to_bytes(32, "big")),
        ],
    )
    def test_validation(self, threshold, total, master):
        """Test invalid dealing parameters."""
        with pytest.raises(InputValidationError):
            bls.generate_key_shares(threshold, total, master_secret=master)

    def test_dkg_output_round_trip(self, dealt):
        """Test the transport form."""
        restored = DKGOutput.from_dict(dealt.to_dict())
        assert restored == dealt

    def test_dkg_output_rejects_bad_input(self, dealt):
        """Test missing fields, a non-numeric threshold and a commitment count mismatch."""
        data = dealt.to_dict()
        with pytest.raises(InputValidationError):
            DKGOutput.from_dict({k: v for k, v in data.items() if k != "shares"})
        with pytest.raises(InputValidationError):
            DKGOutput.from_dict(dict(data, commitments=data["commitments"][:2]))
        with pytest.raises(InputValidationError):
            DKGOutput.from_dict(dict(data, threshold="three"))

    def test_key_share_validation(self):
        """Test KeyShare field checks."""
        with pytest.raises(InputValidationError):
            KeyShare(index=0, secret_share=b"\x01" * 32, public_key=b"\x00" * 48)
        with pytest.raises(InputValidationError):
            KeyShare(index=1, secret_share=b"\x01" * 31, public_key=b"\x00" * 48)


class TestLagrange:
    """Test scalar-field Lagrange coefficients."""

    def test_coefficients_sum_to_one(self):
        """Test interpolating the constant polynomial 1."""
        indices = [1, 3, 7]
        total = sum(bls.lagrange_coefficient(i, indices) for i in indices) % CURVE_ORDER
        assert total == 1

    def test_rejects_foreign_or_duplicate_index(self):
        """Test index membership and distinctness."""
        with pytest.raises(InputValidationError):
            bls.lagrange_coefficient(2, [1, 3])
        with pytest.raises(InputValidationError):
            bls.lagrange_coefficient(1, [1, 1, 3])


class TestReconstruction:
    """Test master secret recovery."""

    def test_any_threshold_subset(self, dealt):
        """Test several t-subsets recover the master secret."""
        shares = dealt.shares
        for subset in ([0, 1, 2], [1, 3, 4], [4, 2, 0]):
            chosen = [shares[i] for i in subset]
            assert bls.reconstruct_secret(chosen, 3) == MASTER

    def test_expected_public_key(self, dealt):
        """Test the optional group key check."""
        assert (
            bls.reconstruct_secret(
                dealt.shares[:3], 3, expected_public_key=dealt.aggregated_public_key
            )
            == MASTER
        )
        with pytest.raises(ReconstructionError):
            bls.reconstruct_secret(
                dealt.shares[:3], 3, expected_public_key=dealt.commitments[1]
            )

    def test_too_few_or_duplicate_shares(self, dealt):
        """Test short and duplicate share sets."""
        with pytest.raises(ReconstructionError):
            bls.reconstruct_secret(dealt.shares[:2], 3)
        with pytest.raises(InputValidationError):
            bls.reconstruct_secret([dealt.shares[0]] * 3, 3)

    def test_reconstruction_is_audited(self, dealt, caplog):
        """Test the audit log entry."""
        with caplog.at_level(logging.WARNING, logger="threshold_escrow.threshold_crypto.bls"):
            bls.reconstruct_secret(dealt.shares[:3], 3)
        assert any("AUDIT" in record.getMessage() for record in caplog.records)


class TestSignatures:
    """Test partial signing and aggregation."""

    def test_aggregate_equals_master_signature(self, dealt):
        """Test Lagrange aggregation yields the master key's signature."""
        message = b"aggregate me"
        partials = [bls.sign_partial(dealt.shares[i], message) for i in (0, 2, 3)]
        aggregated = bls.aggregate_signatures(partials, threshold=3)
        assert aggregated.signer_indices == (1, 3, 4)
        assert aggregated.signature == G2Basic.Sign(int.from_bytes(MASTER, "big"), message)

    def test_aggregate_verifies_and_partial_verifies(self, dealt):
        """Test full verification once for the group and per signer."""
        message = b"verify me"
        partials = [bls.sign_partial(dealt.shares[i], message) for i in (1, 2, 4)]
        aggregated = bls.aggregate_signatures(partials)
        assert bls.verify_threshold_signature(
            aggregated, message, dealt.aggregated_public_key
        )
        assert bls.verify_partial_signature(partials[0], message, dealt.shares[1].public_key)
        assert not bls.verify_partial_signature(
            partials[0], message, dealt.shares[2].public_key
        )

    def test_below_threshold_aggregate_fails_verification(self, dealt):
        """Test t-1 partials give a signature the group key rejects."""
        message = b"not enough"
        partials = [bls.sign_partial(dealt.shares[i], message) for i in (0, 1)]
        aggregated = bls.aggregate_signatures(partials)
        assert not bls.verify_threshold_signature(
            aggregated.signature, message, dealt.aggregated_public_key
        )

    def test_aggregate_validation(self, dealt):
        """Test empty, duplicate, short and malformed partial sets."""
        sig = bls.sign_partial(dealt.shares[0], b"m")
        with pytest.raises(InputValidationError):
            bls.aggregate_signatures([])
        with pytest.raises(InputValidationError):
            bls.aggregate_signatures([sig, sig])
        with pytest.raises(InputValidationError):
            bls.aggregate_signatures([PartialSignature(signer_index=0, signature=sig.signature)])
        with pytest.raises(ReconstructionError):
            bls.aggregate_signatures([sig], threshold=3)
        with pytest.raises(InputValidationError):
            bls.aggregate_signatures([PartialSignature(signer_index=1, signature=b"\x00" * 95)])
        with pytest.raises(CryptographicError):
            bls.aggregate_signatures([PartialSignature(signer_index=1, signature=b"\x00" * 96)])

    def test_sign_requires_bytes(self, dealt):
        """Test non-bytes messages."""
        with pytest.raises(InputValidationError):
            bls.sign_partial(dealt.shares[0], "text")
        assert not bls.verify_threshold_signature(b"\x00" * 96, "text", dealt.aggregated_public_key)


class TestViewingKeyWrapping:
    """Test viewing-key encryption under the reconstructed secret."""

    def test_round_trip(self, dealt):
        """Test wrap with the master secret, unwrap with shares."""
        viewing_key = bytes(range(32))
        envelope = bls.encrypt_viewing_key(viewing_key, MASTER)
        assert len(envelope) == 12 + 32 + 16
        assert bls.decrypt_viewing_key(envelope, dealt.shares[2:], 3) == viewing_key

    def test_tampered_envelope(self, dealt):
        """Test a modified envelope fails authentication."""
        envelope = bytearray(bls.encrypt_viewing_key(b"\x07" * 32, MASTER))
        envelope[15] ^= 0x01
        with pytest.raises(AuthenticationError):
            bls.decrypt_viewing_key(bytes(envelope), dealt.shares[:3], 3)

    def test_short_envelope_and_too_few_shares(self, dealt):
        """Test input length and share count checks."""
        with pytest.raises(InputValidationError):
            bls.decrypt_viewing_key(b"\x00" * 27, dealt.shares[:3], 3)
        envelope = bls.encrypt_viewing_key(b"\x07" * 32, MASTER)
        with pytest.raises(ReconstructionError):
            bls.decrypt_viewing_key(envelope, dealt.shares[:2], 3)

    def test_empty_viewing_key(self):
        """Test an empty key is rejected."""
        with pytest.raises(InputValidationError):
            bls.encrypt_viewing_key(b"", MASTER)


class TestEncodingHelpers:
    """Test warrant digests and public key coordinates."""

    def test_warrant_digest_layout(self):
        """Test the digest byte layout."""
        doc = hashlib.sha256(b"court order").digest()
        warrant = WarrantMessage(
            warrant_id=7, dispute_id=42, document_hash=doc, execution_time=1_700_000_000
        )
        expected = hashlib.sha256(
            b"COMPLIANCE_REVEAL"
            + (7).to_bytes(32, "big")
            + (42).to_bytes(32, "big")
            + doc
            + (1_700_000_000).to_bytes(32, "big")
        ).digest()
        assert bls.create_warrant_message(warrant) == expected

    def test_warrant_validation(self):
        """Test document hash length and integer ranges."""
        with pytest.raises(InputValidationError):
            bls.create_warrant_message(WarrantMessage(1, 1, b"\x00" * 31, 0))
        with pytest.raises(InputValidationError):
            bls.create_warrant_message(WarrantMessage(-1, 1, b"\x00" * 32, 0))
        with pytest.raises(InputValidationError):
            bls.create_warrant_message(WarrantMessage(1, 2**256, b"\x00" * 32, 0))

    def test_generator_coordinates(self):
        """Test coordinates of the G1 generator."""
        x, y = bls.public_key_coordinates(G1_to_pubkey(G1))
        gx, gy = normalize(G1)
        assert len(x) == len(y) == 48
        assert int.from_bytes(x, "big") == gx.n
        assert int.from_bytes(y, "big") == gy.n

    def test_bad_coordinates_input(self):
        """Test infinity and malformed keys."""
        infinity = bytes([0xC0]) + b"\x00" * 47
        with pytest.raises(CryptographicError):
            bls.public_key_coordinates(infinity)
        with pytest.raises(CryptographicError):
            bls.public_key_coordinates(b"\x00" * 48)
