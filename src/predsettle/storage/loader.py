"""Bulk-load markets, balances and commitments from a JSON-style snapshot."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

import structlog

from predsettle.errors import NotFound
from predsettle.models import Commitment, Market, UserBalance
from predsettle.storage.balances import upsert_balance
from predsettle.storage.commitments import insert_commitment, insert_legacy_commitment
from predsettle.storage.db import now_ms
from predsettle.storage.markets import get_market, recalculate_market_totals, upsert_market

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


def load_snapshot(conn: DuckDBPyConnection, data: dict[str, Any]) -> dict[str, int]:
    """Insert the snapshot's rows and rebuild market totals from the loaded commitments.

    Commitments may carry option_id, or only a legacy 'position' ('yes'/'no').
    Caller owns the transaction.
    """
    markets = [Market.model_validate(m) for m in data.get("markets") or []]
    for market in markets:
        upsert_market(conn, market)

    balances = [UserBalance.model_validate(b) for b in data.get("balances") or []]
    for balance in balances:
        upsert_balance(conn, balance)

    loaded = 0
    touched: set[str] = set()
    for raw in data.get("commitments") or []:
        row = dict(raw)
        row.setdefault("commitment_id", uuid.uuid4().hex)
        row.setdefault("committed_at", now_ms())
        market_id = row["market_id"]
        if not row.get("option_id") and row.get("position"):
            insert_legacy_commitment(
                conn,
                row["commitment_id"],
                row["user_id"],
                market_id,
                row["position"],
                int(row["tokens_committed"]),
                int(row["committed_at"]),
                row.get("status", "active"),
            )
        else:
            market = get_market(conn, market_id)
            if market is None:
                raise NotFound(f"Commitment references unknown market {market_id}", market_id=market_id)
            row.pop("position", None)
            insert_commitment(conn, Commitment.model_validate(row), market)
        touched.add(market_id)
        loaded += 1

    for market_id in sorted(touched):
        recalculate_market_totals(conn, market_id)
    log.info("snapshot_loaded", markets=len(markets), balances=len(balances), commitments=loaded)
    return {"markets": len(markets), "balances": len(balances), "commitments": loaded}
