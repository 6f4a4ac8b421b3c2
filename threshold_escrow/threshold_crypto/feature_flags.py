"""
AEAD selection for ECIES and metadata encryption.

Ciphertexts do not record which AEAD sealed them, so a deployment picks one
and every decrypting party must agree. Resolution order: an explicit
``prefer`` argument, then the in-process override, then the
``THRESHOLD_ESCROW_AEAD`` environment variable, then AES-256-GCM.
"""

from __future__ import annotations

import os
from typing import Final, Optional

from .config import DEFAULT_AEAD, SUPPORTED_AEADS
from .exceptions import InputValidationError

AEAD_ENV_VAR: Final[str] = "THRESHOLD_ESCROW_AEAD"

_pinned_aead: Optional[str] = None


def _parse_aead_name(raw: object, source: str) -> Optional[str]:
    # Blank means "not set" so an exported-but-empty variable is harmless.
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise InputValidationError(f"{source}: AEAD name must be a string, got {type(raw)}")
    name = raw.strip().lower()
    if not name:
        return None
    if name not in SUPPORTED_AEADS:
        raise InputValidationError(
            f"{source}: unknown AEAD {raw!r}; expected one of {', '.join(SUPPORTED_AEADS)}"
        )
    return name


def get_aead_type(prefer: Optional[str] = None) -> str:
    """
    Name of the AEAD a new provider bundle should use.

    Raises:
        InputValidationError: If ``prefer``, the override or the environment
            names an unsupported AEAD (also a ``ValueError``)
    """
    chosen = _parse_aead_name(prefer, "prefer")
    if chosen is not None:
        return chosen
    if _pinned_aead is not None:
        return _pinned_aead
    from_env = _parse_aead_name(os.environ.get(AEAD_ENV_VAR), AEAD_ENV_VAR)
    return from_env if from_env is not None else DEFAULT_AEAD


def set_aead_type(value: Optional[str]) -> None:
    """Pin the AEAD for this process; ``None`` restores env/default lookup."""
    global _pinned_aead
    _pinned_aead = _parse_aead_name(value, "override")
