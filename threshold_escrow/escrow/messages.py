"""CBOR message schema for share submissions sent through the ledger."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import cbor2

from threshold_escrow.threshold_crypto.exceptions import ThresholdCryptoError
from threshold_escrow.threshold_crypto.types import Ciphertext

from .constants import MAX_SHARE_MESSAGE_BYTES, MSG_V
from .errors import SchemaError, SizeLimitError


def _require_bytes(value: Any, field: str) -> bytes:
    if not isinstance(value, (bytes, bytearray)):
        raise SchemaError(f"{field} must be bytes")
    return bytes(value)


@dataclass(frozen=True)
class ShareSubmission:
    """A holder's share re-encrypted to the reveal coordinator."""

    msg_v: int
    share_index: int
    ciphertext: Ciphertext

    def validate(self) -> None:
        if self.msg_v != MSG_V:
            raise SchemaError("unsupported msg_v")
        if isinstance(self.share_index, bool) or not isinstance(self.share_index, int):
            raise SchemaError("share_index must be an integer")
        if not 1 <= self.share_index <= 255:
            raise SchemaError("share_index out of range")
        if not isinstance(self.ciphertext, Ciphertext):
            raise SchemaError("ciphertext must be a Ciphertext")


def encode_share_submission(submission: ShareSubmission) -> bytes:
    submission.validate()
    payload = {
        "msg_v": submission.msg_v,
        "i": submission.share_index,
        "ct": submission.ciphertext.serialize(),
    }
    data = cbor2.dumps(payload)
    if len(data) > MAX_SHARE_MESSAGE_BYTES:
        raise SizeLimitError("share submission too large")
    return data


def decode_share_submission(data: bytes) -> ShareSubmission:
    if len(data) > MAX_SHARE_MESSAGE_BYTES:
        raise SizeLimitError("share submission too large")
    try:
        obj = cbor2.loads(data)
    except cbor2.CBORDecodeError as exc:
        raise SchemaError("invalid CBOR") from exc
    if not isinstance(obj, dict):
        raise SchemaError("submission must be a map")
    for key in ("msg_v", "i", "ct"):
        if key not in obj:
            raise SchemaError(f"missing field: {key}")
    try:
        ciphertext = Ciphertext.deserialize(_require_bytes(obj["ct"], "ct"))
    except ThresholdCryptoError as exc:
        raise SchemaError(f"invalid ciphertext: {exc}") from exc
    submission = ShareSubmission(msg_v=obj["msg_v"], share_index=obj["i"], ciphertext=ciphertext)
    submission.validate()
    return submission
