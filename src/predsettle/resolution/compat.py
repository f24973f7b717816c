"""Legacy binary position <-> option id adapter.

Older commitments carry only a 'yes'/'no' position. By convention 'yes' maps to the
first option and 'no' to the second (or the first, for a single-option market);
any option other than the first maps back to 'no'.
"""

from __future__ import annotations

from predsettle.errors import NotFound, ValidationError
from predsettle.models import Market


def position_to_option_id(position: str, market: Market) -> str:
    """Map a legacy binary position onto the market's canonical option id."""
    if not market.options:
        raise ValidationError(f"Market {market.market_id} has no options defined", field="options", market_id=market.market_id)
    position = (position or "").strip().lower()
    if position == "yes":
        return market.options[0].option_id
    if position == "no":
        return market.options[1].option_id if len(market.options) > 1 else market.options[0].option_id
    raise ValidationError(f"Unknown position: {position!r}", field="position", market_id=market.market_id)


def option_id_to_position(option_id: str, market: Market) -> str:
    """Derive the legacy binary position for an option id."""
    if not market.options:
        raise ValidationError(f"Market {market.market_id} has no options defined", field="options", market_id=market.market_id)
    for index, option in enumerate(market.options):
        if option.option_id == option_id:
            return "yes" if index == 0 else "no"
    raise NotFound(f"Option {option_id} not found in market {market.market_id}", market_id=market.market_id)


def canonical_option_id(option_id: str | None, position: str | None, market: Market) -> str:
    """Option id for a stored commitment row: explicit option_id wins, else derive from position."""
    if option_id:
        return option_id
    if position:
        return position_to_option_id(position, market)
    raise ValidationError(
        f"Commitment on market {market.market_id} has neither option_id nor position",
        field="option_id",
        market_id=market.market_id,
    )
