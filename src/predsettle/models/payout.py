"""PayoutPreview - ephemeral settlement projection."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PayoutEntry(BaseModel):
    """Projected payout for one winning commitment."""

    user_id: str
    commitment_id: str | None = None
    current_stake: int
    projected_payout: int
    projected_profit: int


class CreatorPayoutInfo(BaseModel):
    user_id: str
    fee_amount: int
    fee_percentage: float = Field(..., description="Percent, e.g. 2.0 for a 2% creator fee")


class PayoutPreview(BaseModel):
    """Fee breakdown and per-winner payouts for a (hypothetical) winning option."""

    market_id: str
    winning_option_id: str
    total_pool: int
    house_fee: int
    creator_fee: int
    winner_pool: int
    winner_count: int
    largest_payout: int = 0
    smallest_payout: int = 0
    creator_payout: CreatorPayoutInfo
    payouts: list[PayoutEntry] = Field(default_factory=list)

    @property
    def total_distributed(self) -> int:
        return sum(p.projected_payout for p in self.payouts)
