"""DuckDB connection and schema init."""

from __future__ import annotations

import time
from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Markets, version bumps on every write (optimistic concurrency)
CREATE TABLE IF NOT EXISTS markets (
    market_id           VARCHAR PRIMARY KEY,
    title               VARCHAR,
    created_by          VARCHAR NOT NULL,
    status              VARCHAR NOT NULL,
    total_tokens_staked BIGINT NOT NULL DEFAULT 0,
    total_participants  INTEGER NOT NULL DEFAULT 0,
    ends_at             BIGINT,
    resolved_at         BIGINT,
    cancellation_reason VARCHAR,
    version             BIGINT NOT NULL DEFAULT 0,
    created_at          BIGINT NOT NULL
);

-- Mutually exclusive options, position_index 0 is the legacy 'yes' side
CREATE TABLE IF NOT EXISTS market_options (
    market_id           VARCHAR NOT NULL,
    option_id           VARCHAR NOT NULL,
    position_index      INTEGER NOT NULL,
    text                VARCHAR,
    total_tokens        BIGINT NOT NULL DEFAULT 0,
    participant_count   INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (market_id, option_id)
);

-- Stakes. Legacy rows may carry only position ('yes'/'no') and no option_id
CREATE TABLE IF NOT EXISTS commitments (
    commitment_id       VARCHAR PRIMARY KEY,
    user_id             VARCHAR NOT NULL,
    market_id           VARCHAR NOT NULL,
    option_id           VARCHAR,
    position            VARCHAR,
    tokens_committed    BIGINT NOT NULL,
    odds                DOUBLE,
    status              VARCHAR NOT NULL,
    committed_at        BIGINT NOT NULL,
    resolved_at         BIGINT
);

CREATE TABLE IF NOT EXISTS user_balances (
    user_id             VARCHAR PRIMARY KEY,
    available_tokens    BIGINT NOT NULL DEFAULT 0,
    committed_tokens    BIGINT NOT NULL DEFAULT 0,
    total_earned        BIGINT NOT NULL DEFAULT 0,
    total_spent         BIGINT NOT NULL DEFAULT 0,
    version             BIGINT NOT NULL DEFAULT 0,
    last_updated        BIGINT
);

-- One row per settled market (completed or cancelled)
CREATE TABLE IF NOT EXISTS market_resolutions (
    resolution_id       VARCHAR PRIMARY KEY,
    market_id           VARCHAR NOT NULL UNIQUE,
    winning_option_id   VARCHAR,
    resolved_by         VARCHAR NOT NULL,
    resolved_at         BIGINT NOT NULL,
    evidence            JSON,
    total_payout        BIGINT NOT NULL DEFAULT 0,
    winner_count        INTEGER NOT NULL DEFAULT 0,
    creator_fee_amount  BIGINT NOT NULL DEFAULT 0,
    house_fee_amount    BIGINT NOT NULL DEFAULT 0,
    status              VARCHAR NOT NULL,
    cancellation_reason VARCHAR
);

CREATE TABLE IF NOT EXISTS resolution_payouts (
    payout_id           VARCHAR PRIMARY KEY,
    resolution_id       VARCHAR NOT NULL,
    market_id           VARCHAR NOT NULL,
    user_id             VARCHAR NOT NULL,
    option_id           VARCHAR NOT NULL,
    tokens_staked       BIGINT NOT NULL,
    payout_amount       BIGINT NOT NULL,
    profit              BIGINT NOT NULL,
    processed_at        BIGINT NOT NULL
);

CREATE TABLE IF NOT EXISTS creator_payouts (
    resolution_id       VARCHAR PRIMARY KEY,
    market_id           VARCHAR NOT NULL,
    creator_id          VARCHAR NOT NULL,
    fee_amount          BIGINT NOT NULL,
    fee_percentage      DOUBLE NOT NULL,
    processed_at        BIGINT NOT NULL
);

-- Platform revenue, recorded, never deposited into a user balance
CREATE TABLE IF NOT EXISTS house_payouts (
    resolution_id       VARCHAR PRIMARY KEY,
    market_id           VARCHAR NOT NULL,
    fee_amount          BIGINT NOT NULL,
    fee_percentage      DOUBLE NOT NULL,
    processed_at        BIGINT NOT NULL
);

-- Token ledger: one row per balance change
CREATE TABLE IF NOT EXISTS token_transactions (
    transaction_id      VARCHAR PRIMARY KEY,
    user_id             VARCHAR NOT NULL,
    type                VARCHAR NOT NULL,
    amount              BIGINT NOT NULL,
    balance_before      BIGINT NOT NULL,
    balance_after       BIGINT NOT NULL,
    related_id          VARCHAR,
    market_id           VARCHAR,
    metadata            JSON,
    created_at          BIGINT NOT NULL
);

-- Audit trail for resolution and cancellation workflows
CREATE TABLE IF NOT EXISTS resolution_logs (
    log_id              VARCHAR PRIMARY KEY,
    market_id           VARCHAR NOT NULL,
    action              VARCHAR NOT NULL,
    admin_id            VARCHAR NOT NULL,
    timestamp           BIGINT NOT NULL,
    details             JSON,
    error               VARCHAR
);
"""


def now_ms() -> int:
    return int(time.time() * 1000)


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    Concurrent writers inside one process should each take conn.cursor(); DuckDB
    reports their write-write conflicts as TransactionException."""
    path = Path(db_path)
    if str(db_path) != ":memory:" and not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(db_path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise


def affected_rows(result: DuckDBPyConnection) -> int:
    """Row count reported by an UPDATE/DELETE/INSERT."""
    row = result.fetchone()
    return int(row[0]) if row else 0
