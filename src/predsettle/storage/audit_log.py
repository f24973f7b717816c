"""Resolution audit trail append and query."""

from __future__ import annotations

import json
import uuid
from typing import TYPE_CHECKING, Any

from predsettle.models import ResolutionLog
from predsettle.storage.db import now_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = ["log_id", "market_id", "action", "admin_id", "timestamp", "details", "error"]

_STATUS_BY_ACTION = {
    "resolution_completed": "completed",
    "market_cancelled": "completed",
    "resolution_failed": "failed",
    "cancellation_failed": "failed",
    "resolution_started": "in_progress",
    "cancellation_started": "in_progress",
    "evidence_validated": "in_progress",
    "payouts_calculated": "in_progress",
    "tokens_distributed": "in_progress",
}


def append_resolution_log(
    conn: DuckDBPyConnection,
    market_id: str,
    action: str,
    admin_id: str,
    details: dict[str, Any] | None = None,
    error: str | None = None,
) -> ResolutionLog:
    entry = ResolutionLog(
        log_id=uuid.uuid4().hex,
        market_id=market_id,
        action=action,
        admin_id=admin_id,
        timestamp=now_ms(),
        details=details or {},
        error=error,
    )
    conn.execute(
        f"INSERT INTO resolution_logs ({', '.join(_COLUMNS)}) VALUES (?, ?, ?, ?, ?, ?, ?)",
        [
            entry.log_id,
            entry.market_id,
            entry.action,
            entry.admin_id,
            entry.timestamp,
            json.dumps(entry.details, default=str),
            entry.error,
        ],
    )
    return entry


def list_resolution_logs(conn: DuckDBPyConnection, market_id: str) -> list[ResolutionLog]:
    """Audit entries for a market in the order they were written."""
    rows = conn.execute(
        f"SELECT {', '.join(_COLUMNS)} FROM resolution_logs WHERE market_id = ? ORDER BY timestamp, rowid",
        [market_id],
    ).fetchall()
    out = []
    for r in rows:
        data = dict(zip(_COLUMNS, r))
        raw = data["details"]
        data["details"] = json.loads(raw) if isinstance(raw, str) and raw else (raw or {})
        out.append(ResolutionLog(**data))
    return out


def get_resolution_status(conn: DuckDBPyConnection, market_id: str) -> dict[str, Any]:
    """not_started | in_progress | completed | failed, from the last audit entry."""
    logs = list_resolution_logs(conn, market_id)
    if not logs:
        return {"status": "not_started", "last_action": None, "error": None, "log_count": 0}
    last = logs[-1]
    status = _STATUS_BY_ACTION.get(last.action, "not_started")
    # A settled market stays completed even if a later duplicate attempt failed
    if any(entry.action in ("resolution_completed", "market_cancelled") for entry in logs):
        status = "completed"
    return {
        "status": status,
        "last_action": last.action,
        "error": last.error,
        "log_count": len(logs),
    }
