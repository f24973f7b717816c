"""MarketResolution and the records a settlement writes alongside it."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

EvidenceType = Literal["url", "description", "screenshot"]
EVIDENCE_TYPES: tuple[str, ...] = EvidenceType.__args__

ResolutionLogAction = Literal[
    "resolution_started",
    "evidence_validated",
    "payouts_calculated",
    "tokens_distributed",
    "resolution_completed",
    "resolution_failed",
    "cancellation_started",
    "market_cancelled",
    "cancellation_failed",
]

TransactionType = Literal["commit", "win", "loss", "refund", "creator_fee"]


class Evidence(BaseModel):
    """Supporting material for a resolution decision.

    Type and content are checked by the resolution validators rather than here,
    so malformed evidence surfaces as a field-level ValidationError.
    """

    type: str
    content: str
    description: str | None = None


class MarketResolution(BaseModel):
    """Immutable record of how a market was settled."""

    resolution_id: str
    market_id: str
    winning_option_id: str | None = None  # None for cancellations
    resolved_by: str
    resolved_at: int  # ms epoch
    evidence: list[Evidence] = Field(default_factory=list)
    total_payout: int = 0
    winner_count: int = 0
    creator_fee_amount: int = 0
    house_fee_amount: int = 0
    status: Literal["completed", "cancelled"] = "completed"
    cancellation_reason: str | None = None


class ResolutionPayout(BaseModel):
    """Tokens paid to one winning commitment."""

    payout_id: str
    resolution_id: str
    market_id: str
    user_id: str
    option_id: str
    tokens_staked: int
    payout_amount: int
    profit: int
    processed_at: int


class CreatorPayout(BaseModel):
    resolution_id: str
    market_id: str
    creator_id: str
    fee_amount: int
    fee_percentage: float  # fraction, e.g. 0.02
    processed_at: int


class HousePayout(BaseModel):
    resolution_id: str
    market_id: str
    fee_amount: int
    fee_percentage: float = 5.0  # percent
    processed_at: int


class TokenTransaction(BaseModel):
    """Ledger entry for one balance change."""

    transaction_id: str
    user_id: str
    type: TransactionType
    amount: int
    balance_before: int
    balance_after: int
    related_id: str | None = None
    market_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: int


class ResolutionLog(BaseModel):
    """Audit trail entry for resolution and cancellation workflows."""

    log_id: str
    market_id: str
    action: ResolutionLogAction
    admin_id: str
    timestamp: int
    details: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
