"""Escrow orchestration constants."""

from __future__ import annotations

MSG_V = 1

VIEWING_KEY_BYTES = 32
HASH_BYTES = 32
DEFAULT_VOTING_PERIOD = 7 * 24 * 60 * 60  # seconds

MAX_HOLDERS = 255
MAX_REASON_BYTES = 4096
MAX_SHARE_MESSAGE_BYTES = 8192

# Retry defaults for idempotent ledger and delivery calls (seconds).
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_JITTER = 0.1
DEFAULT_ATTEMPT_TIMEOUT = 30.0
