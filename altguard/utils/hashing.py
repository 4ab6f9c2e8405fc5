"""Hashing helpers used to keep token values out of logs."""

from __future__ import annotations

import hashlib


def sha256_hex(value: str) -> str:
    """Return SHA-256 hex digest for the provided string value."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def redact_token(value: str | None) -> str:
    """Return a short stable digest safe to print in place of a token."""
    if not value:
        return "<empty>"
    return f"tok:{sha256_hex(value)[:8]}"
