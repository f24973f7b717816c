"""Canonical schema (Pydantic) - Market, Commitment, balances, resolutions, previews."""

from predsettle.models.commitment import Commitment, CommitmentStatus, Position, UserBalance
from predsettle.models.market import Market, MarketOption, MarketStatus
from predsettle.models.payout import CreatorPayoutInfo, PayoutEntry, PayoutPreview
from predsettle.models.resolution import (
    EVIDENCE_TYPES,
    CreatorPayout,
    Evidence,
    HousePayout,
    MarketResolution,
    ResolutionLog,
    ResolutionPayout,
    TokenTransaction,
)

__all__ = [
    "Market",
    "MarketOption",
    "MarketStatus",
    "Commitment",
    "CommitmentStatus",
    "Position",
    "UserBalance",
    "PayoutPreview",
    "PayoutEntry",
    "CreatorPayoutInfo",
    "Evidence",
    "EVIDENCE_TYPES",
    "MarketResolution",
    "ResolutionPayout",
    "CreatorPayout",
    "HousePayout",
    "TokenTransaction",
    "ResolutionLog",
]
