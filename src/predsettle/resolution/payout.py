"""Payout calculation: fee breakdown and proportional winner payouts.

Pure and side-effect free. The same function backs the admin preview and the
in-transaction settlement, so a preview and a settlement over the same snapshot
always agree.

Rounding is floor at every step (house fee, creator fee, each payout), so the
distributed total never exceeds the pool. The remainder, at most
winner_count + 2 tokens, stays with the house.
"""

from __future__ import annotations

import math
from decimal import ROUND_FLOOR, Decimal
from numbers import Real
from typing import Iterable

import structlog

from predsettle.errors import ValidationError
from predsettle.models import Commitment, CreatorPayoutInfo, Market, PayoutEntry, PayoutPreview

log = structlog.get_logger(__name__)

HOUSE_FEE_PERCENTAGE = 0.05
MIN_CREATOR_FEE = 0.01
MAX_CREATOR_FEE = 0.05
DEFAULT_CREATOR_FEE = 0.02


def validate_creator_fee(value: object, market_id: str | None = None) -> float:
    """Return the fee as float if it is a real number in [0.01, 0.05]."""
    if isinstance(value, bool) or not isinstance(value, Real) or math.isnan(float(value)):
        raise ValidationError(
            "Creator fee percentage must be a number",
            field="creator_fee_percentage",
            market_id=market_id,
            details={"value": repr(value)},
        )
    fee = float(value)
    if not (MIN_CREATOR_FEE <= fee <= MAX_CREATOR_FEE):
        raise ValidationError(
            f"Creator fee percentage must be between {MIN_CREATOR_FEE} and {MAX_CREATOR_FEE}",
            field="creator_fee_percentage",
            market_id=market_id,
            details={"value": fee, "min": MIN_CREATOR_FEE, "max": MAX_CREATOR_FEE},
        )
    return fee


def floor_fee(total_pool: int, percentage: float) -> int:
    """floor(total_pool * percentage) without binary float error (0.07 * 100 == 7, not 6)."""
    amount = Decimal(total_pool) * Decimal(str(percentage))
    return int(amount.to_integral_value(rounding=ROUND_FLOOR))


def calculate_payout_preview(
    market: Market,
    commitments: Iterable[Commitment],
    winning_option_id: str,
    creator_fee_percentage: float = DEFAULT_CREATOR_FEE,
) -> PayoutPreview:
    """Project the settlement of market if winning_option_id wins.

    commitments is the market's commitment snapshot; only active ones count. The
    pool is every active stake on every option, so winners receive their own
    stake back as part of their share.
    """
    if market.get_option(winning_option_id) is None:
        raise ValidationError(
            f"Option {winning_option_id!r} is not an option of market {market.market_id}",
            field="winning_option_id",
            market_id=market.market_id,
            details={"valid_options": market.option_ids},
        )
    fee_pct = validate_creator_fee(creator_fee_percentage, market.market_id)

    active = [c for c in commitments if c.status == "active" and c.market_id == market.market_id]
    total_pool = sum(c.tokens_committed for c in active)
    if total_pool != market.total_tokens_staked:
        log.warning(
            "market_totals_drift",
            market_id=market.market_id,
            cached_total=market.total_tokens_staked,
            commitment_total=total_pool,
        )

    house_fee = floor_fee(total_pool, HOUSE_FEE_PERCENTAGE)
    creator_fee = floor_fee(total_pool, fee_pct)
    winner_pool = total_pool - house_fee - creator_fee

    winners = [c for c in active if c.option_id == winning_option_id]
    total_winner_tokens = sum(c.tokens_committed for c in winners)

    payouts: list[PayoutEntry] = []
    for c in winners:
        payout = winner_pool * c.tokens_committed // total_winner_tokens
        payouts.append(
            PayoutEntry(
                user_id=c.user_id,
                commitment_id=c.commitment_id,
                current_stake=c.tokens_committed,
                projected_payout=payout,
                projected_profit=payout - c.tokens_committed,
            )
        )
    payouts.sort(key=lambda p: p.projected_payout, reverse=True)
    amounts = [p.projected_payout for p in payouts]

    return PayoutPreview(
        market_id=market.market_id,
        winning_option_id=winning_option_id,
        total_pool=total_pool,
        house_fee=house_fee,
        creator_fee=creator_fee,
        winner_pool=winner_pool,
        winner_count=len(winners),
        largest_payout=max(amounts) if amounts else 0,
        smallest_payout=min(amounts) if amounts else 0,
        creator_payout=CreatorPayoutInfo(
            user_id=market.created_by,
            fee_amount=creator_fee,
            fee_percentage=round(fee_pct * 100, 4),
        ),
        payouts=payouts,
    )
