"""Pure resolution logic: odds, payouts, lifecycle checks."""

from predsettle.resolution.odds import calculate_odds, format_odds
from predsettle.resolution.payout import (
    DEFAULT_CREATOR_FEE,
    HOUSE_FEE_PERCENTAGE,
    MAX_CREATOR_FEE,
    MIN_CREATOR_FEE,
    calculate_payout_preview,
)
from predsettle.resolution.state import check_transition, validate_cancellation, validate_resolution_request

__all__ = [
    "calculate_odds",
    "format_odds",
    "calculate_payout_preview",
    "HOUSE_FEE_PERCENTAGE",
    "DEFAULT_CREATOR_FEE",
    "MIN_CREATOR_FEE",
    "MAX_CREATOR_FEE",
    "check_transition",
    "validate_resolution_request",
    "validate_cancellation",
]
