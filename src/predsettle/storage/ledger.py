"""Token transaction ledger."""

from __future__ import annotations

import json
import uuid
from typing import TYPE_CHECKING, Any

from predsettle.models import TokenTransaction
from predsettle.storage.db import now_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = [
    "transaction_id",
    "user_id",
    "type",
    "amount",
    "balance_before",
    "balance_after",
    "related_id",
    "market_id",
    "metadata",
    "created_at",
]


def append_transaction(
    conn: DuckDBPyConnection,
    user_id: str,
    tx_type: str,
    amount: int,
    balance_before: int,
    balance_after: int,
    *,
    related_id: str | None = None,
    market_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    created_at: int | None = None,
) -> TokenTransaction:
    """Record one balance change. balance_* are available_tokens before and after."""
    tx = TokenTransaction(
        transaction_id=uuid.uuid4().hex,
        user_id=user_id,
        type=tx_type,
        amount=amount,
        balance_before=balance_before,
        balance_after=balance_after,
        related_id=related_id,
        market_id=market_id,
        metadata=metadata or {},
        created_at=created_at or now_ms(),
    )
    conn.execute(
        f"INSERT INTO token_transactions ({', '.join(_COLUMNS)}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        [
            tx.transaction_id,
            tx.user_id,
            tx.type,
            tx.amount,
            tx.balance_before,
            tx.balance_after,
            tx.related_id,
            tx.market_id,
            json.dumps(tx.metadata),
            tx.created_at,
        ],
    )
    return tx


def _row_to_transaction(row: tuple) -> TokenTransaction:
    data = dict(zip(_COLUMNS, row))
    raw = data["metadata"]
    data["metadata"] = json.loads(raw) if isinstance(raw, str) and raw else (raw or {})
    return TokenTransaction(**data)


def list_transactions(
    conn: DuckDBPyConnection,
    *,
    user_id: str | None = None,
    market_id: str | None = None,
    limit: int = 100,
) -> list[TokenTransaction]:
    """Ledger rows filtered by user and/or market, newest first."""
    conditions = ["1=1"]
    params: list[Any] = []
    if user_id:
        conditions.append("user_id = ?")
        params.append(user_id)
    if market_id:
        conditions.append("market_id = ?")
        params.append(market_id)
    params.append(limit)
    rows = conn.execute(
        f"""
        SELECT {', '.join(_COLUMNS)} FROM token_transactions
        WHERE {' AND '.join(conditions)}
        ORDER BY created_at DESC, transaction_id
        LIMIT ?
        """,
        params,
    ).fetchall()
    return [_row_to_transaction(r) for r in rows]
