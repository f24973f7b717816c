"""User token balances with version-checked writes."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from predsettle.errors import ConcurrentModification, ValidationError
from predsettle.models import UserBalance
from predsettle.storage.db import affected_rows, now_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

_COLUMNS = [
    "user_id",
    "available_tokens",
    "committed_tokens",
    "total_earned",
    "total_spent",
    "version",
    "last_updated",
]


def get_balance(conn: DuckDBPyConnection, user_id: str) -> UserBalance | None:
    row = conn.execute(
        f"SELECT {', '.join(_COLUMNS)} FROM user_balances WHERE user_id = ?",
        [user_id],
    ).fetchone()
    if not row:
        return None
    return UserBalance(**dict(zip(_COLUMNS, row)))


def upsert_balance(conn: DuckDBPyConnection, balance: UserBalance) -> None:
    """Insert or overwrite a balance row as-is (loading and admin tooling)."""
    conn.execute(
        f"""
        INSERT INTO user_balances ({', '.join(_COLUMNS)})
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (user_id) DO UPDATE SET
            available_tokens = excluded.available_tokens,
            committed_tokens = excluded.committed_tokens,
            total_earned = excluded.total_earned,
            total_spent = excluded.total_spent,
            version = excluded.version,
            last_updated = excluded.last_updated
        """,
        [
            balance.user_id,
            balance.available_tokens,
            balance.committed_tokens,
            balance.total_earned,
            balance.total_spent,
            balance.version,
            balance.last_updated or now_ms(),
        ],
    )


def get_or_create_balance(conn: DuckDBPyConnection, user_id: str) -> UserBalance:
    """Read a balance, creating an empty one (version 0) for users without a row."""
    balance = get_balance(conn, user_id)
    if balance is not None:
        return balance
    balance = UserBalance(user_id=user_id, last_updated=now_ms())
    conn.execute(
        "INSERT INTO user_balances (user_id, version, last_updated) VALUES (?, 0, ?)",
        [user_id, balance.last_updated],
    )
    return balance


def apply_balance_change(
    conn: DuckDBPyConnection,
    balance: UserBalance,
    *,
    available_delta: int = 0,
    committed_delta: int = 0,
    earned_delta: int = 0,
    spent_delta: int = 0,
) -> UserBalance:
    """Write balance + deltas if the row still has the version that was read.

    Raises ConcurrentModification when another writer bumped the version, and
    ValidationError when available tokens would go negative.
    """
    available = balance.available_tokens + available_delta
    if available < 0:
        raise ValidationError(
            f"Insufficient available tokens for user {balance.user_id}",
            field="available_tokens",
            details={"available": balance.available_tokens, "requested": -available_delta},
        )
    committed = balance.committed_tokens + committed_delta
    if committed < 0:
        # Legacy rows were not always kept in step with their commitments
        log.warning(
            "committed_tokens_underflow",
            user_id=balance.user_id,
            committed_tokens=balance.committed_tokens,
            delta=committed_delta,
        )
        committed = 0
    updated = balance.model_copy(
        update={
            "available_tokens": available,
            "committed_tokens": committed,
            "total_earned": balance.total_earned + earned_delta,
            "total_spent": balance.total_spent + spent_delta,
            "version": balance.version + 1,
            "last_updated": now_ms(),
        }
    )
    result = conn.execute(
        """
        UPDATE user_balances
        SET available_tokens = ?, committed_tokens = ?, total_earned = ?, total_spent = ?,
            version = ?, last_updated = ?
        WHERE user_id = ? AND version = ?
        """,
        [
            updated.available_tokens,
            updated.committed_tokens,
            updated.total_earned,
            updated.total_spent,
            updated.version,
            updated.last_updated,
            balance.user_id,
            balance.version,
        ],
    )
    if affected_rows(result) == 0:
        raise ConcurrentModification("user_balances", balance.user_id, balance.version)
    return updated
