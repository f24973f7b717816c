"""Market, MarketOption - canonical entities."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

MarketStatus = Literal["draft", "active", "closed", "pending_resolution", "resolved", "cancelled"]


class MarketOption(BaseModel):
    """One mutually exclusive outcome of a market."""

    option_id: str
    text: str = ""
    total_tokens: int = Field(0, ge=0)
    participant_count: int = Field(0, ge=0)


class Market(BaseModel):
    """Prediction market with cached per-option aggregates."""

    market_id: str
    title: str = ""
    created_by: str
    status: MarketStatus = "active"
    options: list[MarketOption] = Field(default_factory=list)
    # Denormalized; must equal the sums over options
    total_tokens_staked: int = Field(0, ge=0)
    total_participants: int = Field(0, ge=0)
    ends_at: int | None = None  # ms epoch
    resolved_at: int | None = None  # ms epoch
    cancellation_reason: str | None = None
    version: int = 0

    @property
    def option_ids(self) -> list[str]:
        return [o.option_id for o in self.options]

    def get_option(self, option_id: str) -> MarketOption | None:
        for option in self.options:
            if option.option_id == option_id:
                return option
        return None

    @property
    def is_binary(self) -> bool:
        return len(self.options) == 2
