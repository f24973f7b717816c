"""Legacy position <-> option id adapter."""

import pytest

from predsettle.errors import NotFound, ValidationError
from predsettle.models import Market, MarketOption
from predsettle.resolution.compat import canonical_option_id, option_id_to_position, position_to_option_id


def _market(*option_ids):
    return Market(market_id="m1", created_by="c", options=[MarketOption(option_id=o) for o in option_ids])


def test_position_maps_to_first_and_second_option():
    market = _market("opt-a", "opt-b", "opt-c")
    assert position_to_option_id("yes", market) == "opt-a"
    assert position_to_option_id("No ", market) == "opt-b"
    assert option_id_to_position("opt-a", market) == "yes"
    assert option_id_to_position("opt-c", market) == "no"


def test_single_option_market():
    market = _market("only")
    assert position_to_option_id("no", market) == "only"


def test_errors():
    with pytest.raises(ValidationError):
        position_to_option_id("yes", _market())
    with pytest.raises(ValidationError):
        position_to_option_id("maybe", _market("a", "b"))
    with pytest.raises(NotFound):
        option_id_to_position("zzz", _market("a", "b"))


def test_canonical_option_id():
    market = _market("a", "b")
    assert canonical_option_id("b", "yes", market) == "b"
    assert canonical_option_id(None, "no", market) == "b"
    with pytest.raises(ValidationError):
        canonical_option_id(None, None, market)
