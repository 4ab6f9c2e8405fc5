"""Verification token issuance and single-use consumption."""

from .ledger import TokenLedger
from .types import DEFAULT_TOKEN_TTL, ConsumeReason, ConsumeResult, Token

__all__ = ["TokenLedger", "Token", "ConsumeReason", "ConsumeResult", "DEFAULT_TOKEN_TTL"]
