"""Run a read-compute-write unit inside one DuckDB transaction, retrying on conflicts."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable, TypeVar

import duckdb
import structlog

from predsettle.errors import ConcurrentModification, ResolutionError, SettlementFailed

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[Exception], ...] = (ConcurrentModification, duckdb.TransactionException)


def backoff_delay(attempt: int, base_delay_sec: float, max_delay_sec: float) -> float:
    """Delay before retry number attempt (1-based): base * 2**(attempt-1), capped."""
    return min(base_delay_sec * (2 ** (attempt - 1)), max_delay_sec)


def _rollback(conn: DuckDBPyConnection, operation: str) -> None:
    try:
        conn.rollback()
    except duckdb.Error as e:
        # A failed COMMIT already ended the transaction
        log.debug("rollback_skipped", operation=operation, error=str(e))


def run_in_transaction(
    conn: DuckDBPyConnection,
    work: Callable[[DuckDBPyConnection], T],
    *,
    max_attempts: int = 5,
    base_delay_sec: float = 0.05,
    max_delay_sec: float = 1.0,
    operation: str = "transaction",
    market_id: str | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """BEGIN; work(conn); COMMIT.

    work must re-read everything it depends on, since it is called again from
    scratch after a conflict. Domain errors (ResolutionError) roll back and
    propagate unchanged. Other store errors become SettlementFailed without a
    retry.
    """
    attempt = 0
    while True:
        attempt += 1
        conn.begin()
        try:
            result = work(conn)
            conn.commit()
        except RETRYABLE_ERRORS as e:
            _rollback(conn, operation)
            if attempt >= max_attempts:
                log.error(
                    "transaction_retries_exhausted",
                    operation=operation,
                    market_id=market_id,
                    attempts=attempt,
                    error=str(e),
                )
                raise SettlementFailed(
                    f"{operation} did not commit after {attempt} attempts",
                    attempts=attempt,
                    market_id=market_id,
                ) from e
            delay = backoff_delay(attempt, base_delay_sec, max_delay_sec)
            log.warning(
                "transaction_conflict_retry",
                operation=operation,
                market_id=market_id,
                attempt=attempt,
                delay_sec=delay,
                error=str(e),
            )
            sleep(delay)
            continue
        except ResolutionError:
            _rollback(conn, operation)
            raise
        except duckdb.Error as e:
            _rollback(conn, operation)
            log.error("transaction_store_error", operation=operation, market_id=market_id, error=str(e))
            raise SettlementFailed(
                f"{operation} failed: {e}",
                attempts=attempt,
                market_id=market_id,
            ) from e
        except Exception:
            _rollback(conn, operation)
            raise
        if attempt > 1:
            log.info("transaction_committed_after_retry", operation=operation, market_id=market_id, attempts=attempt)
        return result
