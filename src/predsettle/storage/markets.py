"""Market and market_options persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING

from predsettle.errors import ConcurrentModification
from predsettle.models import Market, MarketOption
from predsettle.storage.commitments import list_commitments
from predsettle.storage.db import affected_rows, now_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_MARKET_COLUMNS = [
    "market_id",
    "title",
    "created_by",
    "status",
    "total_tokens_staked",
    "total_participants",
    "ends_at",
    "resolved_at",
    "cancellation_reason",
    "version",
]


def upsert_market(conn: DuckDBPyConnection, market: Market) -> None:
    """Insert or replace a market and its options."""
    conn.execute(
        """
        INSERT INTO markets (market_id, title, created_by, status, total_tokens_staked, total_participants,
                             ends_at, resolved_at, cancellation_reason, version, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (market_id) DO UPDATE SET
            title = excluded.title,
            created_by = excluded.created_by,
            status = excluded.status,
            total_tokens_staked = excluded.total_tokens_staked,
            total_participants = excluded.total_participants,
            ends_at = excluded.ends_at,
            resolved_at = excluded.resolved_at,
            cancellation_reason = excluded.cancellation_reason,
            version = excluded.version
        """,
        [
            market.market_id,
            market.title,
            market.created_by,
            market.status,
            market.total_tokens_staked,
            market.total_participants,
            market.ends_at,
            market.resolved_at,
            market.cancellation_reason,
            market.version,
            now_ms(),
        ],
    )
    for index, option in enumerate(market.options):
        conn.execute(
            """
            INSERT INTO market_options (market_id, option_id, position_index, text, total_tokens, participant_count)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (market_id, option_id) DO UPDATE SET
                position_index = excluded.position_index,
                text = excluded.text,
                total_tokens = excluded.total_tokens,
                participant_count = excluded.participant_count
            """,
            [market.market_id, option.option_id, index, option.text, option.total_tokens, option.participant_count],
        )
    if market.options:
        placeholders = ",".join("?" for _ in market.options)
        conn.execute(
            f"DELETE FROM market_options WHERE market_id = ? AND option_id NOT IN ({placeholders})",
            [market.market_id] + market.option_ids,
        )


def _load_options(conn: DuckDBPyConnection, market_id: str) -> list[MarketOption]:
    rows = conn.execute(
        """
        SELECT option_id, text, total_tokens, participant_count
        FROM market_options WHERE market_id = ? ORDER BY position_index
        """,
        [market_id],
    ).fetchall()
    return [
        MarketOption(option_id=r[0], text=r[1] or "", total_tokens=r[2], participant_count=r[3])
        for r in rows
    ]


def _row_to_market(conn: DuckDBPyConnection, row: tuple) -> Market:
    data = dict(zip(_MARKET_COLUMNS, row))
    data["title"] = data["title"] or ""
    return Market(**data, options=_load_options(conn, data["market_id"]))


def get_market(conn: DuckDBPyConnection, market_id: str) -> Market | None:
    row = conn.execute(
        f"SELECT {', '.join(_MARKET_COLUMNS)} FROM markets WHERE market_id = ?",
        [market_id],
    ).fetchone()
    if not row:
        return None
    return _row_to_market(conn, row)


def list_markets(conn: DuckDBPyConnection, status: str | None = None) -> list[Market]:
    """List markets, optionally filtered by status, newest first."""
    if status:
        rows = conn.execute(
            f"SELECT {', '.join(_MARKET_COLUMNS)} FROM markets WHERE status = ? ORDER BY created_at DESC",
            [status],
        ).fetchall()
    else:
        rows = conn.execute(
            f"SELECT {', '.join(_MARKET_COLUMNS)} FROM markets ORDER BY created_at DESC"
        ).fetchall()
    return [_row_to_market(conn, r) for r in rows]


def list_markets_due(conn: DuckDBPyConnection, as_of_ms: int) -> list[Market]:
    """Active or closed markets whose end time has passed, oldest end first."""
    rows = conn.execute(
        f"""
        SELECT {', '.join(_MARKET_COLUMNS)} FROM markets
        WHERE status IN ('active', 'closed') AND ends_at IS NOT NULL AND ends_at <= ?
        ORDER BY ends_at
        """,
        [as_of_ms],
    ).fetchall()
    return [_row_to_market(conn, r) for r in rows]


def update_market_status(
    conn: DuckDBPyConnection,
    market: Market,
    status: str,
    *,
    resolved_at: int | None = None,
    cancellation_reason: str | None = None,
) -> int:
    """Set status guarded by the status and version that were read. Returns the new version."""
    result = conn.execute(
        """
        UPDATE markets
        SET status = ?, resolved_at = COALESCE(?, resolved_at),
            cancellation_reason = COALESCE(?, cancellation_reason), version = version + 1
        WHERE market_id = ? AND status = ? AND version = ?
        """,
        [status, resolved_at, cancellation_reason, market.market_id, market.status, market.version],
    )
    if affected_rows(result) == 0:
        raise ConcurrentModification("markets", market.market_id, market.version)
    return market.version + 1


def add_stake_to_totals(
    conn: DuckDBPyConnection,
    market: Market,
    option_id: str,
    tokens: int,
    *,
    new_option_participant: bool,
    new_market_participant: bool,
) -> int:
    """Increment option and market aggregates for a new commitment. Returns the new version."""
    conn.execute(
        """
        UPDATE market_options
        SET total_tokens = total_tokens + ?, participant_count = participant_count + ?
        WHERE market_id = ? AND option_id = ?
        """,
        [tokens, 1 if new_option_participant else 0, market.market_id, option_id],
    )
    result = conn.execute(
        """
        UPDATE markets
        SET total_tokens_staked = total_tokens_staked + ?, total_participants = total_participants + ?,
            version = version + 1
        WHERE market_id = ? AND version = ?
        """,
        [tokens, 1 if new_market_participant else 0, market.market_id, market.version],
    )
    if affected_rows(result) == 0:
        raise ConcurrentModification("markets", market.market_id, market.version)
    return market.version + 1


def recalculate_market_totals(conn: DuckDBPyConnection, market_id: str) -> Market | None:
    """Rebuild cached option and market aggregates from non-refunded commitments."""
    market = get_market(conn, market_id)
    if market is None:
        return None
    stakes = [c for c in list_commitments(conn, market) if c.status != "refunded"]
    for option in market.options:
        on_option = [c for c in stakes if c.option_id == option.option_id]
        option.total_tokens = sum(c.tokens_committed for c in on_option)
        option.participant_count = len({c.user_id for c in on_option})
        conn.execute(
            "UPDATE market_options SET total_tokens = ?, participant_count = ? WHERE market_id = ? AND option_id = ?",
            [option.total_tokens, option.participant_count, market_id, option.option_id],
        )
    market.total_tokens_staked = sum(o.total_tokens for o in market.options)
    market.total_participants = len({c.user_id for c in stakes})
    conn.execute(
        """
        UPDATE markets SET total_tokens_staked = ?, total_participants = ?, version = version + 1
        WHERE market_id = ?
        """,
        [market.total_tokens_staked, market.total_participants, market_id],
    )
    market.version += 1
    return market
