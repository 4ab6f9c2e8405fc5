"""Identity correlation datatypes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Candidate:
    """Identity presented by a verification submission, not yet trusted."""

    fingerprint: str
    source_address: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Identity:
    """Recorded (subject, fingerprint, address) triple. Never updated or expired."""

    subject_id: str
    fingerprint: str
    source_address: str
    recorded_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)


class MatchType(str, Enum):
    """Which signal tied a candidate to an existing identity."""

    NONE = "none"
    FINGERPRINT = "fingerprint"
    IP = "ip"


@dataclass(frozen=True)
class CorrelationResult:
    match_type: MatchType
    existing: Optional[Identity] = None
    recorded: Optional[Identity] = None

    @property
    def matched(self) -> bool:
        return self.match_type is not MatchType.NONE

    @classmethod
    def no_match(cls) -> "CorrelationResult":
        return cls(MatchType.NONE)
