"""Payout calculator: fees, proportional shares, rounding bounds."""

import random

import pytest

from predsettle.errors import ValidationError
from predsettle.models import Commitment, Market, MarketOption
from predsettle.resolution.payout import calculate_payout_preview, floor_fee, validate_creator_fee


def _market(stakes, options=("yes", "no")):
    totals = {o: 0 for o in options}
    for _, option_id, tokens in stakes:
        totals[option_id] += tokens
    market = Market(
        market_id="m1",
        created_by="creator",
        status="pending_resolution",
        options=[MarketOption(option_id=o, total_tokens=totals[o]) for o in options],
        total_tokens_staked=sum(totals.values()),
    )
    commitments = [
        Commitment(commitment_id=f"c{i}", user_id=u, market_id="m1", option_id=o, tokens_committed=t)
        for i, (u, o, t) in enumerate(stakes)
    ]
    return market, commitments


def test_worked_example():
    market, commitments = _market([("a", "yes", 500), ("b", "yes", 300), ("c", "yes", 100), ("d", "no", 100)])
    p = calculate_payout_preview(market, commitments, "yes", 0.02)
    assert p.total_pool == 1000
    assert p.house_fee == 50
    assert p.creator_fee == 20
    assert p.winner_pool == 930
    assert [e.projected_payout for e in p.payouts] == [516, 310, 103]
    assert [e.user_id for e in p.payouts] == ["a", "b", "c"]
    assert p.total_distributed == 929
    assert p.largest_payout == 516 and p.smallest_payout == 103
    assert p.creator_payout.user_id == "creator"
    assert p.creator_payout.fee_percentage == 2.0
    assert p.payouts[0].projected_profit == 16


def test_zero_winners_still_charges_fees():
    market, commitments = _market([("a", "yes", 400), ("b", "yes", 600)])
    p = calculate_payout_preview(market, commitments, "no", 0.03)
    assert p.winner_count == 0
    assert p.payouts == []
    assert p.largest_payout == 0 and p.smallest_payout == 0
    assert p.house_fee == 50
    assert p.creator_fee == 30
    assert p.winner_pool == 920


def test_empty_market():
    market, commitments = _market([])
    p = calculate_payout_preview(market, commitments, "yes")
    assert p.total_pool == 0
    assert p.house_fee == 0 and p.creator_fee == 0 and p.winner_pool == 0


def test_only_active_commitments_count():
    market, commitments = _market([("a", "yes", 100), ("b", "no", 100)])
    commitments.append(
        Commitment(commitment_id="old", user_id="z", market_id="m1", option_id="yes", tokens_committed=500, status="refunded")
    )
    p = calculate_payout_preview(market, commitments, "yes")
    assert p.total_pool == 200
    assert p.winner_count == 1


@pytest.mark.parametrize("fee", [0.0, 0.009, 0.051, 0.1, -0.02, float("nan"), "0.02", None, True])
def test_fee_bounds_rejected(fee):
    market, commitments = _market([("a", "yes", 100)])
    with pytest.raises(ValidationError) as exc:
        calculate_payout_preview(market, commitments, "yes", fee)
    assert exc.value.field == "creator_fee_percentage"


@pytest.mark.parametrize("fee", [0.01, 0.02, 0.05])
def test_fee_bounds_accepted(fee):
    assert validate_creator_fee(fee) == fee


def test_unknown_winning_option():
    market, commitments = _market([("a", "yes", 100)])
    with pytest.raises(ValidationError) as exc:
        calculate_payout_preview(market, commitments, "maybe")
    assert exc.value.field == "winning_option_id"


def test_floor_fee_is_exact():
    assert floor_fee(100, 0.07) == 7
    assert floor_fee(999, 0.05) == 49
    assert floor_fee(0, 0.05) == 0


def test_conservation_and_proportionality():
    rng = random.Random(1234)
    for _ in range(200):
        options = ("a", "b", "c")
        stakes = [(f"u{i}", rng.choice(options), rng.randint(1, 5000)) for i in range(rng.randint(1, 25))]
        market, commitments = _market(stakes, options)
        fee = rng.choice([0.01, 0.02, 0.035, 0.05])
        winner = rng.choice(options)
        p = calculate_payout_preview(market, commitments, winner, fee)

        distributed = p.house_fee + p.creator_fee + p.total_distributed
        assert distributed <= p.total_pool
        if p.winner_count:
            assert p.total_pool - distributed < p.winner_count + 2
        stake_total = sum(e.current_stake for e in p.payouts)
        for e in p.payouts:
            exact = p.winner_pool * e.current_stake / stake_total
            assert exact - 1 < e.projected_payout <= exact
        amounts = [e.projected_payout for e in p.payouts]
        assert amounts == sorted(amounts, reverse=True)


def test_double_stake_gets_double_payout():
    market, commitments = _market([("a", "yes", 200), ("b", "yes", 100), ("c", "no", 700)])
    p = calculate_payout_preview(market, commitments, "yes")
    by_user = {e.user_id: e.projected_payout for e in p.payouts}
    assert abs(by_user["a"] - 2 * by_user["b"]) <= 2
