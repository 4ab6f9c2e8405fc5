"""Identity correlation for alt account detection."""

from .correlator import IdentityCorrelator
from .types import Candidate, CorrelationResult, Identity, MatchType

__all__ = ["IdentityCorrelator", "Candidate", "CorrelationResult", "Identity", "MatchType"]
