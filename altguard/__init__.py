"""altguard package.

Time-limited verification tokens for new community members, and fingerprint
plus network address correlation to catch alt accounts.
"""

from .config import VerifierConfig
from .identity import Candidate, IdentityCorrelator, MatchType
from .service import VerificationService, build_service
from .storage import InMemoryStorage, JsonFileStorage, PostgresStorage, VerificationStorage, create_storage_from_env
from .token import TokenLedger
from .verification import EnforcementSink, JoiningMember, VerificationCoordinator, VerificationOutcome

__all__ = [
    "build_service",
    "VerificationService",
    "VerifierConfig",
    "TokenLedger",
    "IdentityCorrelator",
    "Candidate",
    "MatchType",
    "VerificationCoordinator",
    "VerificationOutcome",
    "EnforcementSink",
    "JoiningMember",
    "VerificationStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "PostgresStorage",
    "create_storage_from_env",
]
