"""Implied odds and pool statistics from the current token distribution.

Odds are display values only. Settlement pays by stake share at resolution time,
never by the odds snapshot stored on a commitment.
"""

from __future__ import annotations

import math

from pydantic import BaseModel

from predsettle.models import Market

MIN_ODDS = 1.01
MAX_ODDS = 999.0


class OptionOdds(BaseModel):
    odds: float
    percentage: float
    total_tokens: int
    participant_count: int


class PayoutEstimate(BaseModel):
    gross_payout: int
    net_profit: int
    roi: float


class OddsImpact(BaseModel):
    current: dict[str, float]
    projected: dict[str, float]
    impact_level: str  # minimal | moderate | significant


def _total_staked(market: Market) -> int:
    if market.total_tokens_staked:
        return market.total_tokens_staked
    return sum(o.total_tokens for o in market.options)


def calculate_option_stats(market: Market) -> dict[str, OptionOdds]:
    """Odds, share of pool (percent) and participation per option."""
    total = _total_staked(market)
    stats: dict[str, OptionOdds] = {}
    if total == 0 or not market.options:
        equal_odds = float(max(len(market.options), 2))
        percentage = 100.0 / len(market.options) if market.options else 0.0
        for option in market.options:
            stats[option.option_id] = OptionOdds(
                odds=equal_odds,
                percentage=round(percentage, 2),
                total_tokens=option.total_tokens,
                participant_count=option.participant_count,
            )
        return stats

    for option in market.options:
        if option.total_tokens == 0:
            # Every token in the pool is against this option
            odds = min(MAX_ODDS, float(total))
        else:
            odds = total / option.total_tokens
        odds = max(MIN_ODDS, min(odds, MAX_ODDS))
        stats[option.option_id] = OptionOdds(
            odds=round(odds, 2),
            percentage=round(option.total_tokens / total * 100, 2),
            total_tokens=option.total_tokens,
            participant_count=option.participant_count,
        )
    return stats


def calculate_odds(market: Market) -> dict[str, float]:
    """Decimal odds per option id, clamped to [1.01, 999]."""
    return {option_id: s.odds for option_id, s in calculate_option_stats(market).items()}


def format_odds(odds: float | None) -> str:
    """Display odds as 'Even' or 'N.N:1'."""
    if not odds or math.isnan(odds):
        return "2.0:1"
    if 1.95 <= odds <= 2.05:
        return "Even"
    return f"{odds:.1f}:1"


def estimate_payout(tokens: int, option_id: str, market: Market) -> PayoutEstimate:
    """Gross payout if option_id wins, after adding this commitment to the pool.

    Fees are not deducted; this is the pre-fee pool share a committer would see
    before placing the stake.
    """
    if tokens <= 0:
        return PayoutEstimate(gross_payout=0, net_profit=0, roi=0.0)
    option = market.get_option(option_id)
    if option is None:
        gross = math.floor(tokens * calculate_odds(market).get(option_id, 2.0))
    else:
        new_total = _total_staked(market) + tokens
        new_option_tokens = option.total_tokens + tokens
        gross = new_total * tokens // new_option_tokens
    net = gross - tokens
    return PayoutEstimate(gross_payout=gross, net_profit=net, roi=round(net / tokens * 100, 2))


def preview_odds_impact(tokens: int, option_id: str, market: Market) -> OddsImpact:
    """Odds before and after a prospective commitment, with a coarse impact label."""
    current = calculate_odds(market)
    simulated = market.model_copy(deep=True)
    simulated.total_tokens_staked = _total_staked(market) + tokens
    simulated.total_participants = market.total_participants + 1
    for option in simulated.options:
        if option.option_id == option_id:
            option.total_tokens += tokens
            option.participant_count += 1
    projected = calculate_odds(simulated)

    max_change = 0.0
    for oid, before in current.items():
        after = projected.get(oid, before)
        if before > 0:
            max_change = max(max_change, abs(after - before) / before)
    if max_change < 0.05:
        level = "minimal"
    elif max_change < 0.20:
        level = "moderate"
    else:
        level = "significant"
    return OddsImpact(current=current, projected=projected, impact_level=level)


def calculate_competitiveness(market: Market) -> int:
    """0-100 score; 100 means tokens are spread evenly across options."""
    total = _total_staked(market)
    n = len(market.options)
    if n < 2 or total == 0:
        return 0
    perfect_share = 1 / n
    deviation = sum(abs(o.total_tokens / total - perfect_share) for o in market.options)
    max_deviation = 2 * (n - 1) / n
    return round(max(0.0, 100 - deviation / max_deviation * 100))
