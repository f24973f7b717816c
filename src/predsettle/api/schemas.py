"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from predsettle.models import CreatorPayout, PayoutPreview, ResolutionLog, ResolutionPayout
from predsettle.resolution.odds import OddsImpact, OptionOdds, PayoutEstimate
from predsettle.resolution.state import EvidenceIssue


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. validation_failed, not_found")
    market_id: str | None = None
    details: dict[str, Any] | None = None


# --- Fees ---
class FeeConfigResponse(BaseModel):
    house_fee_percentage: float = Field(..., description="Fraction of the pool, e.g. 0.05")
    min_creator_fee: float
    max_creator_fee: float
    default_creator_fee: float


# --- Markets ---
class MarketListItem(BaseModel):
    market_id: str
    title: str | None = None
    status: str
    created_by: str
    total_tokens_staked: int
    total_participants: int
    option_count: int
    ends_at: int | None = None


class MarketsListResponse(BaseModel):
    markets: list[MarketListItem]
    total: int


class MarketOddsResponse(BaseModel):
    market_id: str
    total_tokens_staked: int
    odds: dict[str, OptionOdds]
    formatted: dict[str, str]
    competitiveness: int = Field(..., description="0-100, 100 when stakes are spread evenly")


class StakeImpactResponse(BaseModel):
    market_id: str
    option_id: str
    tokens: int
    estimate: PayoutEstimate
    impact: OddsImpact


# --- Resolution ---
class ResolveRequest(BaseModel):
    winning_option_id: str
    evidence: list[Any] = Field(default_factory=list)
    creator_fee_percentage: float | None = Field(None, description="Fraction in [0.01, 0.05]; default 0.02")


class ResolveResponse(BaseModel):
    resolution_id: str
    market_id: str
    winning_option_id: str
    total_pool: int
    total_payout: int
    winner_count: int
    house_fee: int
    creator_fee: int
    warnings: list[EvidenceIssue] = Field(default_factory=list)
    preview: PayoutPreview


class CancelRequest(BaseModel):
    reason: str
    refund_tokens: bool = True


class CancelResponse(BaseModel):
    resolution_id: str
    market_id: str
    refunds_processed: int
    tokens_refunded: int


class ResolutionLogsResponse(BaseModel):
    market_id: str
    logs: list[ResolutionLog]


class ResolutionStatusResponse(BaseModel):
    market_id: str
    status: str = Field(..., description="not_started | in_progress | completed | failed")
    last_action: str | None = None
    error: str | None = None
    log_count: int = 0


# --- Users ---
class UserPayoutsResponse(BaseModel):
    user_id: str
    winner_payouts: list[ResolutionPayout]
    creator_payouts: list[CreatorPayout]
    total_winnings: int
    total_creator_fees: int
