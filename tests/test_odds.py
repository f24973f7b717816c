"""Odds calculator and display helpers."""

import math

from predsettle.models import Market, MarketOption
from predsettle.resolution.odds import (
    MAX_ODDS,
    MIN_ODDS,
    calculate_competitiveness,
    calculate_odds,
    calculate_option_stats,
    estimate_payout,
    format_odds,
    preview_odds_impact,
)


def _market(**tokens):
    return Market(
        market_id="m1",
        created_by="creator",
        options=[MarketOption(option_id=k, total_tokens=v) for k, v in tokens.items()],
        total_tokens_staked=sum(tokens.values()),
    )


def test_equal_stakes_are_even():
    odds = calculate_odds(_market(yes=500, no=500))
    assert odds == {"yes": 2.0, "no": 2.0}
    assert format_odds(odds["yes"]) == "Even"


def test_empty_market_equal_odds():
    assert calculate_odds(_market(yes=0, no=0)) == {"yes": 2.0, "no": 2.0}
    assert calculate_odds(_market(a=0, b=0, c=0)) == {"a": 3.0, "b": 3.0, "c": 3.0}
    stats = calculate_option_stats(_market(a=0, b=0, c=0))
    assert stats["a"].percentage == 33.33


def test_odds_clamped():
    odds = calculate_odds(_market(yes=5000, no=0))
    assert odds["yes"] == MIN_ODDS
    assert odds["no"] == MAX_ODDS
    assert calculate_odds(_market(yes=10, no=0))["no"] == 10.0


def test_odds_from_shares():
    odds = calculate_odds(_market(yes=900, no=100))
    assert odds == {"yes": 1.11, "no": 10.0}
    stats = calculate_option_stats(_market(yes=900, no=100))
    assert stats["yes"].percentage == 90.0


def test_format_odds():
    assert format_odds(1.95) == "Even"
    assert format_odds(2.05) == "Even"
    assert format_odds(2.5) == "2.5:1"
    assert format_odds(10.0) == "10.0:1"
    assert format_odds(None) == "2.0:1"
    assert format_odds(math.nan) == "2.0:1"


def test_estimate_payout():
    est = estimate_payout(100, "no", _market(yes=900, no=100))
    assert est.gross_payout == 550
    assert est.net_profit == 450
    assert est.roi == 450.0
    assert estimate_payout(0, "no", _market(yes=900, no=100)).gross_payout == 0


def test_preview_odds_impact_levels():
    market = _market(yes=10000, no=10000)
    assert preview_odds_impact(10, "yes", market).impact_level == "minimal"
    impact = preview_odds_impact(20000, "yes", market)
    assert impact.impact_level == "significant"
    assert impact.projected["yes"] < impact.current["yes"]
    # Input market is untouched
    assert market.options[0].total_tokens == 10000


def test_competitiveness():
    assert calculate_competitiveness(_market(yes=500, no=500)) == 100
    assert calculate_competitiveness(_market(yes=1000, no=0)) == 0
    assert calculate_competitiveness(_market(yes=0, no=0)) == 0
    assert 0 < calculate_competitiveness(_market(yes=700, no=300)) < 100
