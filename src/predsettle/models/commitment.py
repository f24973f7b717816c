"""Commitment, UserBalance - stakes and token accounts."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

CommitmentStatus = Literal["active", "won", "lost", "refunded"]
Position = Literal["yes", "no"]


class Commitment(BaseModel):
    """One user's stake on one option of one market."""

    commitment_id: str
    user_id: str
    market_id: str
    option_id: str  # canonical; legacy position is derived at the storage boundary
    tokens_committed: int = Field(..., gt=0)
    odds: float | None = None  # snapshot at commit time, display only
    status: CommitmentStatus = "active"
    committed_at: int | None = None  # ms epoch
    resolved_at: int | None = None


class UserBalance(BaseModel):
    """Per-user token account with optimistic-concurrency version."""

    user_id: str
    available_tokens: int = Field(0, ge=0)
    committed_tokens: int = Field(0, ge=0)
    total_earned: int = 0
    total_spent: int = 0
    version: int = 0
    last_updated: int | None = None
