"""Token commitment: reserve a user's tokens against one option of an active market."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog

from predsettle.errors import NotFound, ValidationError
from predsettle.models import Commitment
from predsettle.resolution.odds import calculate_odds
from predsettle.settlement.transaction import run_in_transaction
from predsettle.storage.balances import apply_balance_change, get_balance
from predsettle.storage.commitments import insert_commitment, user_has_commitment
from predsettle.storage.db import now_ms
from predsettle.storage.ledger import append_transaction
from predsettle.storage.markets import add_stake_to_totals, get_market

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


def commit_tokens(
    conn: DuckDBPyConnection,
    market_id: str,
    user_id: str,
    option_id: str,
    tokens: int,
    *,
    max_attempts: int = 5,
    base_delay_sec: float = 0.05,
    max_delay_sec: float = 1.0,
) -> Commitment:
    """Move tokens from available to committed and record the stake.

    Only active markets accept commitments. The odds snapshot stored on the
    commitment is taken before the stake is added.
    """
    if isinstance(tokens, bool) or not isinstance(tokens, int) or tokens <= 0:
        raise ValidationError("Tokens must be a positive integer", field="tokens", market_id=market_id)

    def work(c: DuckDBPyConnection) -> Commitment:
        market = get_market(c, market_id)
        if market is None:
            raise NotFound(f"Market {market_id} not found", market_id=market_id)
        if market.status != "active":
            raise ValidationError(
                f"Market is {market.status}; commitments are only accepted while active",
                field="market_id",
                market_id=market_id,
                details={"status": market.status},
            )
        if market.get_option(option_id) is None:
            raise ValidationError(
                f"Option {option_id!r} is not an option of market {market_id}",
                field="option_id",
                market_id=market_id,
                details={"valid_options": market.option_ids},
            )
        balance = get_balance(c, user_id)
        if balance is None or balance.available_tokens < tokens:
            raise ValidationError(
                "Insufficient available tokens",
                field="tokens",
                market_id=market_id,
                details={"available": balance.available_tokens if balance else 0, "requested": tokens},
            )

        new_option_participant = not user_has_commitment(c, market_id, user_id, option_id)
        new_market_participant = not user_has_commitment(c, market_id, user_id)
        committed_at = now_ms()
        commitment = Commitment(
            commitment_id=uuid.uuid4().hex,
            user_id=user_id,
            market_id=market_id,
            option_id=option_id,
            tokens_committed=tokens,
            odds=calculate_odds(market).get(option_id),
            status="active",
            committed_at=committed_at,
        )
        add_stake_to_totals(
            c,
            market,
            option_id,
            tokens,
            new_option_participant=new_option_participant,
            new_market_participant=new_market_participant,
        )
        updated = apply_balance_change(
            c,
            balance,
            available_delta=-tokens,
            committed_delta=tokens,
            spent_delta=tokens,
        )
        insert_commitment(c, commitment, market)
        append_transaction(
            c,
            user_id,
            "commit",
            tokens,
            balance.available_tokens,
            updated.available_tokens,
            related_id=commitment.commitment_id,
            market_id=market_id,
            metadata={"option_id": option_id, "odds": commitment.odds},
            created_at=committed_at,
        )
        return commitment

    commitment = run_in_transaction(
        conn,
        work,
        max_attempts=max_attempts,
        base_delay_sec=base_delay_sec,
        max_delay_sec=max_delay_sec,
        operation="commit_tokens",
        market_id=market_id,
    )
    log.info(
        "tokens_committed",
        market_id=market_id,
        user_id=user_id,
        option_id=option_id,
        tokens=tokens,
        commitment_id=commitment.commitment_id,
    )
    return commitment
