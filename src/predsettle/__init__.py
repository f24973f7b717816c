"""predsettle - market resolution and payout engine."""

__version__ = "0.1.0"
