"""Shared fixtures: temp DuckDB and a seeded market factory."""

import tempfile
from pathlib import Path

import pytest

from predsettle.models import Commitment, Market, MarketOption, UserBalance
from predsettle.storage.balances import get_balance, upsert_balance
from predsettle.storage.commitments import insert_commitment
from predsettle.storage.db import get_connection, init_schema
from predsettle.storage.markets import recalculate_market_totals, upsert_market

# Worked example: pool 1000, three winners on yes, one loser on no
EXAMPLE_STAKES = [("alice", "yes", 500), ("bob", "yes", 300), ("carol", "yes", 100), ("dave", "no", 100)]

EVIDENCE = [
    {"type": "url", "content": "https://example.com/official-result"},
    {"type": "description", "content": "Official results were published by the organiser."},
]


@pytest.fixture
def temp_db():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    conn = get_connection(path)
    init_schema(conn)
    yield conn
    conn.close()
    for f in Path(tmp).iterdir():
        f.unlink()
    Path(tmp).rmdir()


@pytest.fixture
def seed_market(temp_db):
    """Factory: market with options, commitments and matching balances.

    Each staking user gets `available` free tokens plus their stakes as committed.
    """

    def _seed(
        market_id: str = "m1",
        status: str = "pending_resolution",
        stakes=None,
        options=("yes", "no"),
        created_by: str = "creator",
        available: int = 1000,
        ends_at: int | None = None,
    ) -> Market:
        stakes = EXAMPLE_STAKES if stakes is None else stakes
        market = Market(
            market_id=market_id,
            title=f"Market {market_id}",
            created_by=created_by,
            status=status,
            options=[MarketOption(option_id=o, text=o.title()) for o in options],
            ends_at=ends_at,
        )
        upsert_market(temp_db, market)
        for i, (user_id, option_id, tokens) in enumerate(stakes):
            insert_commitment(
                temp_db,
                Commitment(
                    commitment_id=f"{market_id}-c{i}",
                    user_id=user_id,
                    market_id=market_id,
                    option_id=option_id,
                    tokens_committed=tokens,
                    committed_at=1000 + i,
                ),
                market,
            )
            balance = get_balance(temp_db, user_id) or UserBalance(user_id=user_id, available_tokens=available)
            upsert_balance(
                temp_db,
                balance.model_copy(update={"committed_tokens": balance.committed_tokens + tokens}),
            )
        return recalculate_market_totals(temp_db, market_id)

    return _seed
