"""Utility helpers for hashing and time operations."""

from .hashing import redact_token, sha256_hex
from .time import ManualClock, utc_now

__all__ = ["sha256_hex", "redact_token", "utc_now", "ManualClock"]
