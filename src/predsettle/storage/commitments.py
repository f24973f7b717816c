"""Commitment persistence. Legacy position/option_id are reconciled here, at the I/O boundary."""

from __future__ import annotations

from typing import TYPE_CHECKING

from predsettle.errors import ConcurrentModification
from predsettle.models import Commitment, Market
from predsettle.resolution.compat import canonical_option_id, option_id_to_position
from predsettle.storage.db import affected_rows

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = [
    "commitment_id",
    "user_id",
    "market_id",
    "option_id",
    "position",
    "tokens_committed",
    "odds",
    "status",
    "committed_at",
    "resolved_at",
]


def _row_to_commitment(row: tuple, market: Market) -> Commitment:
    data = dict(zip(_COLUMNS, row))
    position = data.pop("position")
    data["option_id"] = canonical_option_id(data["option_id"], position, market)
    return Commitment(**data)


def insert_commitment(conn: DuckDBPyConnection, commitment: Commitment, market: Market) -> None:
    """Persist a commitment with both the canonical option_id and its derived legacy position."""
    conn.execute(
        f"""
        INSERT INTO commitments ({', '.join(_COLUMNS)})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            commitment.commitment_id,
            commitment.user_id,
            commitment.market_id,
            commitment.option_id,
            option_id_to_position(commitment.option_id, market),
            commitment.tokens_committed,
            commitment.odds,
            commitment.status,
            commitment.committed_at,
            commitment.resolved_at,
        ],
    )


def insert_legacy_commitment(
    conn: DuckDBPyConnection,
    commitment_id: str,
    user_id: str,
    market_id: str,
    position: str,
    tokens_committed: int,
    committed_at: int,
    status: str = "active",
) -> None:
    """Insert a position-only row, as written before multi-option markets existed."""
    conn.execute(
        """
        INSERT INTO commitments (commitment_id, user_id, market_id, option_id, position, tokens_committed, status, committed_at)
        VALUES (?, ?, ?, NULL, ?, ?, ?, ?)
        """,
        [commitment_id, user_id, market_id, position, tokens_committed, status, committed_at],
    )


def list_commitments(
    conn: DuckDBPyConnection,
    market: Market,
    status: str | None = None,
) -> list[Commitment]:
    """All commitments for a market (optionally one status), oldest first."""
    if status:
        rows = conn.execute(
            f"SELECT {', '.join(_COLUMNS)} FROM commitments WHERE market_id = ? AND status = ? ORDER BY committed_at, commitment_id",
            [market.market_id, status],
        ).fetchall()
    else:
        rows = conn.execute(
            f"SELECT {', '.join(_COLUMNS)} FROM commitments WHERE market_id = ? ORDER BY committed_at, commitment_id",
            [market.market_id],
        ).fetchall()
    return [_row_to_commitment(r, market) for r in rows]


def user_has_commitment(conn: DuckDBPyConnection, market_id: str, user_id: str, option_id: str | None = None) -> bool:
    if option_id is None:
        row = conn.execute(
            "SELECT COUNT(*) FROM commitments WHERE market_id = ? AND user_id = ? AND status != 'refunded'",
            [market_id, user_id],
        ).fetchone()
    else:
        row = conn.execute(
            "SELECT COUNT(*) FROM commitments WHERE market_id = ? AND user_id = ? AND option_id = ? AND status != 'refunded'",
            [market_id, user_id, option_id],
        ).fetchone()
    return bool(row and row[0])


def settle_commitment(conn: DuckDBPyConnection, commitment: Commitment, status: str, resolved_at: int) -> None:
    """Move an active commitment to won/lost/refunded. Each commitment settles exactly once."""
    result = conn.execute(
        """
        UPDATE commitments SET status = ?, resolved_at = ?, option_id = COALESCE(option_id, ?)
        WHERE commitment_id = ? AND status = 'active'
        """,
        [status, resolved_at, commitment.option_id, commitment.commitment_id],
    )
    if affected_rows(result) == 0:
        raise ConcurrentModification("commitments", commitment.commitment_id, 0)
