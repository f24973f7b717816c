"""Resolution records: market_resolutions, winner/creator/house payouts."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from predsettle.models import CreatorPayout, Evidence, HousePayout, MarketResolution, ResolutionPayout

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_RESOLUTION_COLUMNS = [
    "resolution_id",
    "market_id",
    "winning_option_id",
    "resolved_by",
    "resolved_at",
    "evidence",
    "total_payout",
    "winner_count",
    "creator_fee_amount",
    "house_fee_amount",
    "status",
    "cancellation_reason",
]
_PAYOUT_COLUMNS = [
    "payout_id",
    "resolution_id",
    "market_id",
    "user_id",
    "option_id",
    "tokens_staked",
    "payout_amount",
    "profit",
    "processed_at",
]
_CREATOR_COLUMNS = ["resolution_id", "market_id", "creator_id", "fee_amount", "fee_percentage", "processed_at"]
_HOUSE_COLUMNS = ["resolution_id", "market_id", "fee_amount", "fee_percentage", "processed_at"]


def _placeholders(columns: list[str]) -> str:
    return ", ".join("?" for _ in columns)


def insert_resolution(conn: DuckDBPyConnection, resolution: MarketResolution) -> None:
    evidence_json = json.dumps([e.model_dump() for e in resolution.evidence])
    values = resolution.model_dump()
    values["evidence"] = evidence_json
    conn.execute(
        f"INSERT INTO market_resolutions ({', '.join(_RESOLUTION_COLUMNS)}) VALUES ({_placeholders(_RESOLUTION_COLUMNS)})",
        [values[c] for c in _RESOLUTION_COLUMNS],
    )


def get_market_resolution(conn: DuckDBPyConnection, market_id: str) -> MarketResolution | None:
    row = conn.execute(
        f"SELECT {', '.join(_RESOLUTION_COLUMNS)} FROM market_resolutions WHERE market_id = ?",
        [market_id],
    ).fetchone()
    if not row:
        return None
    data = dict(zip(_RESOLUTION_COLUMNS, row))
    raw = data["evidence"]
    items = json.loads(raw) if isinstance(raw, str) and raw else (raw or [])
    data["evidence"] = [Evidence(**e) for e in items]
    return MarketResolution(**data)


def insert_resolution_payouts(conn: DuckDBPyConnection, payouts: list[ResolutionPayout]) -> None:
    if not payouts:
        return
    conn.executemany(
        f"INSERT INTO resolution_payouts ({', '.join(_PAYOUT_COLUMNS)}) VALUES ({_placeholders(_PAYOUT_COLUMNS)})",
        [[row[c] for c in _PAYOUT_COLUMNS] for row in (p.model_dump() for p in payouts)],
    )


def insert_creator_payout(conn: DuckDBPyConnection, payout: CreatorPayout) -> None:
    values = payout.model_dump()
    conn.execute(
        f"INSERT INTO creator_payouts ({', '.join(_CREATOR_COLUMNS)}) VALUES ({_placeholders(_CREATOR_COLUMNS)})",
        [values[c] for c in _CREATOR_COLUMNS],
    )


def insert_house_payout(conn: DuckDBPyConnection, payout: HousePayout) -> None:
    values = payout.model_dump()
    conn.execute(
        f"INSERT INTO house_payouts ({', '.join(_HOUSE_COLUMNS)}) VALUES ({_placeholders(_HOUSE_COLUMNS)})",
        [values[c] for c in _HOUSE_COLUMNS],
    )


def list_resolution_payouts(conn: DuckDBPyConnection, resolution_id: str) -> list[ResolutionPayout]:
    rows = conn.execute(
        f"SELECT {', '.join(_PAYOUT_COLUMNS)} FROM resolution_payouts WHERE resolution_id = ? ORDER BY payout_amount DESC",
        [resolution_id],
    ).fetchall()
    return [ResolutionPayout(**dict(zip(_PAYOUT_COLUMNS, r))) for r in rows]


def get_house_payout(conn: DuckDBPyConnection, resolution_id: str) -> HousePayout | None:
    row = conn.execute(
        f"SELECT {', '.join(_HOUSE_COLUMNS)} FROM house_payouts WHERE resolution_id = ?",
        [resolution_id],
    ).fetchone()
    return HousePayout(**dict(zip(_HOUSE_COLUMNS, row))) if row else None


def get_user_payouts(conn: DuckDBPyConnection, user_id: str) -> dict[str, Any]:
    """Winner and creator payouts received by a user, newest first."""
    winner_rows = conn.execute(
        f"SELECT {', '.join(_PAYOUT_COLUMNS)} FROM resolution_payouts WHERE user_id = ? ORDER BY processed_at DESC",
        [user_id],
    ).fetchall()
    creator_rows = conn.execute(
        f"SELECT {', '.join(_CREATOR_COLUMNS)} FROM creator_payouts WHERE creator_id = ? ORDER BY processed_at DESC",
        [user_id],
    ).fetchall()
    return {
        "winner_payouts": [ResolutionPayout(**dict(zip(_PAYOUT_COLUMNS, r))) for r in winner_rows],
        "creator_payouts": [CreatorPayout(**dict(zip(_CREATOR_COLUMNS, r))) for r in creator_rows],
    }
