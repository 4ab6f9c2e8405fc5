"""Exception types raised by altguard components."""

from __future__ import annotations


class AltGuardError(Exception):
    """Base class for all altguard errors."""


class StorageError(AltGuardError):
    """Storage backend unavailable or returned a malformed record."""


class ConfigError(AltGuardError):
    """Environment configuration could not be parsed."""
