"""
WARNING: DRAFT - requires cryptographic review before production use.

Full viewing-key escrow flows: creation, distribution, voting, threshold
reveal and council-authorized requests.
"""

import hashlib

import pytest
import trio

from threshold_escrow.escrow import (
    EscrowStateError,
    HolderInfo,
    HolderType,
    InMemoryEscrowLedger,
    RetryPolicy,
    RevealCoordinator,
    RevealPhase,
    UnauthorizedError,
    ViewingKeyEscrow,
)
from threshold_escrow.threshold_crypto import ECIES, ReconstructionError, bls
from threshold_escrow.threshold_crypto.bls import WarrantMessage
from threshold_escrow.threshold_crypto.security import DeterministicRandomSource

FAST = RetryPolicy(max_retries=1, base_delay=0, jitter=0, attempt_timeout=None)
HOLDER_TYPES = {
    "user": HolderType.USER,
    "dao": HolderType.DAO,
    "auditor": HolderType.AUDITOR,
    "counsel": HolderType.LEGAL_COUNSEL,
    "regulator": HolderType.REGULATOR,
}
METADATA = {
    "disputeId": 42,
    "claimant": "0x1111111111111111111111111111111111111111",
    "respondent": "0x2222222222222222222222222222222222222222",
    "evidence": ["ipfs://bafy-contract", "ipfs://bafy-invoice"],
}
DOC = hashlib.sha256(b"court order 42").digest()
DOC_HASH = "0x" + DOC.hex()


class Deployment:
    """One ledger with five holders of different types and a coordinator."""

    def __init__(self, council_public_key=None) -> None:
        self.ledger = InMemoryEscrowLedger()
        self.escrow = ViewingKeyEscrow(
            self.ledger, council_public_key=council_public_key, retry_policy=FAST
        )
        ecies = ECIES()
        self.keys = {name: ecies.generate_key_pair() for name in HOLDER_TYPES}
        self.holders = [
            HolderInfo(name, self.keys[name].public_key, kind)
            for name, kind in HOLDER_TYPES.items()
        ]
        self.coordinator = RevealCoordinator(
            self.ledger, ecies.generate_key_pair(), retry_policy=FAST
        )
        self.inbox = {}

    async def deliver(self, address, ciphertext) -> None:
        await trio.sleep(0)
        self.inbox[address] = ciphertext

    async def create_and_distribute(self, threshold: int = 3):
        result = await self.escrow.create_escrow(
            42, METADATA, self.holders, threshold, sender="creator"
        )
        await self.escrow.distribute_shares(result, self.deliver)
        shares = {
            name: self.escrow.decrypt_share(self.keys[name].private_key, self.inbox[name])
            for name in HOLDER_TYPES
        }
        for name, share in shares.items():
            await self.escrow.submit_share_commitment(result.escrow_id, share, sender=name)
        return result, shares


def test_full_escrow_flow() -> None:
    async def main() -> None:
        d = Deployment()
        result, shares = await d.create_and_distribute()
        holders = await d.escrow.get_share_holders(result.escrow_id)
        assert all(h.share_commitment for h in holders)

        request_id = await d.escrow.request_reveal(
            result.escrow_id, "court-ordered disclosure", DOC_HASH, sender="court"
        )
        await d.escrow.vote_on_reveal(request_id, False, sender="user")
        for name in ("dao", "auditor"):
            await d.escrow.vote_on_reveal(request_id, True, sender=name)
        assert await d.escrow.get_status(request_id) is RevealPhase.VOTING
        await d.escrow.vote_on_reveal(request_id, True, sender="counsel")
        assert await d.escrow.get_status(request_id) is RevealPhase.APPROVED

        for name in ("dao", "counsel", "regulator"):
            await d.escrow.submit_share(
                request_id, shares[name], d.coordinator.public_key, sender=name
            )
        assert await d.escrow.is_threshold_met(request_id)

        revealed = await d.coordinator.reconstruct_and_decrypt(
            request_id, result.encrypted_metadata.to_dict()
        )
        assert revealed.metadata == METADATA
        await d.coordinator.finalize_reveal(
            request_id, revealed.reconstructed_key_hash, sender="coordinator"
        )

        assert await d.escrow.get_status(request_id) is RevealPhase.FINALIZED
        assert (await d.escrow.get_escrow(result.escrow_id)).revealed
        with pytest.raises(EscrowStateError):
            await d.escrow.request_reveal(
                result.escrow_id, "second look", DOC_HASH, sender="court"
            )

        events = [e.name for e in await d.ledger.events()]
        assert events[0] == "EscrowCreated"
        assert events.count("ShareCommitted") == 5
        assert events[-1] == "RevealFinalized"

    trio.run(main)


def test_below_threshold_reveal_is_refused() -> None:
    async def main() -> None:
        d = Deployment()
        result, shares = await d.create_and_distribute()
        request_id = await d.escrow.request_reveal(
            result.escrow_id, "court-ordered disclosure", DOC_HASH, sender="court"
        )
        for name in ("user", "dao", "auditor"):
            await d.escrow.vote_on_reveal(request_id, True, sender=name)
        for name in ("user", "dao"):
            await d.escrow.submit_share(
                request_id, shares[name], d.coordinator.public_key, sender=name
            )

        assert not await d.escrow.is_threshold_met(request_id)
        with pytest.raises(ReconstructionError):
            await d.coordinator.reconstruct_and_decrypt(request_id, result.encrypted_metadata)
        with pytest.raises(EscrowStateError):
            await d.coordinator.finalize_reveal(
                request_id, result.viewing_key_commitment, sender="coordinator"
            )
        assert not (await d.escrow.get_escrow(result.escrow_id)).revealed

    trio.run(main)


def test_rejected_request_releases_nothing() -> None:
    async def main() -> None:
        d = Deployment()
        result, shares = await d.create_and_distribute()
        request_id = await d.escrow.request_reveal(
            result.escrow_id, "unsupported request", DOC_HASH, sender="court"
        )
        for name in ("user", "dao", "auditor"):
            await d.escrow.vote_on_reveal(request_id, False, sender=name)
        assert await d.escrow.get_status(request_id) is RevealPhase.REJECTED
        with pytest.raises(EscrowStateError):
            await d.escrow.submit_share(
                request_id, shares["counsel"], d.coordinator.public_key, sender="counsel"
            )

    trio.run(main)


@pytest.fixture(scope="module")
def council():
    return bls.generate_key_shares(2, 3, rng=DeterministicRandomSource(b"council"))


def _sign_warrant(council, warrant):
    message = bls.create_warrant_message(warrant)
    partials = [bls.sign_partial(council.shares[i], message) for i in (0, 2)]
    return bls.aggregate_signatures(partials, threshold=council.threshold)


def test_council_authorized_reveal(council) -> None:
    async def main() -> None:
        d = Deployment(council_public_key=council.aggregated_public_key)
        result, _ = await d.create_and_distribute()
        warrant = WarrantMessage(
            warrant_id=1, dispute_id=42, document_hash=DOC, execution_time=1_700_000_000
        )
        signature = _sign_warrant(council, warrant)

        with pytest.raises(UnauthorizedError):
            await d.escrow.request_reveal(
                result.escrow_id, "court order", DOC_HASH, sender="court"
            )

        request_id = await d.escrow.request_reveal(
            result.escrow_id,
            "court order",
            DOC_HASH,
            sender="court",
            warrant=warrant,
            council_signature=signature,
        )
        assert await d.escrow.get_status(request_id) is RevealPhase.REVEAL_REQUESTED

    trio.run(main)


def test_council_warrant_must_match(council) -> None:
    async def main() -> None:
        d = Deployment(council_public_key=council.aggregated_public_key)
        result, _ = await d.create_and_distribute()
        signed = WarrantMessage(
            warrant_id=2, dispute_id=42, document_hash=DOC, execution_time=1_700_000_000
        )
        signature = _sign_warrant(council, signed)

        other_dispute = WarrantMessage(2, 43, DOC, 1_700_000_000)
        other_document = WarrantMessage(2, 42, b"\x00" * 32, 1_700_000_000)
        unsigned = WarrantMessage(3, 42, DOC, 1_700_000_000)
        for warrant in (other_dispute, other_document, unsigned):
            with pytest.raises(UnauthorizedError):
                await d.escrow.request_reveal(
                    result.escrow_id,
                    "court order",
                    DOC_HASH,
                    sender="court",
                    warrant=warrant,
                    council_signature=signature,
                )
        assert not any(e.name == "RevealRequested" for e in await d.ledger.events())

    trio.run(main)
