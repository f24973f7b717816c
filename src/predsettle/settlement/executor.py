"""Settlement executor: applies a resolution or cancellation to the store atomically."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import duckdb
import structlog
from pydantic import BaseModel, Field

from predsettle.errors import NotFound, ResolutionError, SettlementFailed
from predsettle.models import (
    CreatorPayout,
    HousePayout,
    Market,
    MarketResolution,
    PayoutPreview,
    ResolutionPayout,
)
from predsettle.resolution.payout import DEFAULT_CREATOR_FEE, HOUSE_FEE_PERCENTAGE, calculate_payout_preview
from predsettle.resolution.state import (
    EvidenceIssue,
    check_transition,
    coerce_evidence,
    validate_cancellation,
    validate_resolution_request,
)
from predsettle.settlement.transaction import run_in_transaction
from predsettle.storage.audit_log import append_resolution_log
from predsettle.storage.balances import apply_balance_change, get_or_create_balance
from predsettle.storage.commitments import list_commitments, settle_commitment
from predsettle.storage.db import now_ms
from predsettle.storage.ledger import append_transaction
from predsettle.storage.markets import (
    get_market,
    list_markets_due,
    recalculate_market_totals,
    update_market_status,
)
from predsettle.storage.resolutions import (
    insert_creator_payout,
    insert_house_payout,
    insert_resolution,
    insert_resolution_payouts,
)

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from predsettle.config.settings import Settings

log = structlog.get_logger(__name__)


class ResolveResult(BaseModel):
    resolution_id: str
    preview: PayoutPreview
    warnings: list[EvidenceIssue] = Field(default_factory=list)


class CancelResult(BaseModel):
    resolution_id: str
    refunds_processed: int
    tokens_refunded: int


@dataclass
class _LedgerEntry:
    tx_type: str
    amount: int
    available_change: int
    related_id: str | None
    metadata: dict[str, Any]


@dataclass
class UserSettlement:
    """Net balance change for one user in one settlement, plus its ledger lines."""

    user_id: str
    available: int = 0
    committed: int = 0
    earned: int = 0
    entries: list[_LedgerEntry] = field(default_factory=list)

    def add(
        self,
        tx_type: str,
        amount: int,
        *,
        available: int = 0,
        committed: int = 0,
        earned: int = 0,
        related_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.available += available
        self.committed += committed
        self.earned += earned
        self.entries.append(_LedgerEntry(tx_type, amount, available, related_id, metadata or {}))


def apply_user_settlements(
    conn: DuckDBPyConnection,
    settlements: dict[str, UserSettlement],
    market_id: str,
    processed_at: int,
) -> None:
    """One version-checked balance write per user, then its ledger rows in order."""
    for user_id in sorted(settlements):
        s = settlements[user_id]
        balance = get_or_create_balance(conn, user_id)
        apply_balance_change(
            conn,
            balance,
            available_delta=s.available,
            committed_delta=s.committed,
            earned_delta=s.earned,
        )
        running = balance.available_tokens
        for entry in s.entries:
            after = running + entry.available_change
            append_transaction(
                conn,
                user_id,
                entry.tx_type,
                entry.amount,
                running,
                after,
                related_id=entry.related_id,
                market_id=market_id,
                metadata=entry.metadata,
                created_at=processed_at,
            )
            running = after


class SettlementExecutor:
    """Resolves and cancels markets. Every mutating call is one retried transaction."""

    def __init__(
        self,
        conn: DuckDBPyConnection,
        *,
        max_attempts: int = 5,
        retry_base_delay_sec: float = 0.05,
        retry_max_delay_sec: float = 1.0,
        default_creator_fee: float = DEFAULT_CREATOR_FEE,
    ):
        self.conn = conn
        self.max_attempts = max_attempts
        self.retry_base_delay_sec = retry_base_delay_sec
        self.retry_max_delay_sec = retry_max_delay_sec
        self.default_creator_fee = default_creator_fee

    @classmethod
    def from_settings(cls, conn: DuckDBPyConnection, settings: Settings) -> SettlementExecutor:
        return cls(
            conn,
            max_attempts=settings.settlement_max_attempts,
            retry_base_delay_sec=settings.settlement_retry_base_delay_sec,
            retry_max_delay_sec=settings.settlement_retry_max_delay_sec,
            default_creator_fee=settings.default_creator_fee,
        )

    def _run(self, work, *, operation: str, market_id: str | None = None):
        return run_in_transaction(
            self.conn,
            work,
            max_attempts=self.max_attempts,
            base_delay_sec=self.retry_base_delay_sec,
            max_delay_sec=self.retry_max_delay_sec,
            operation=operation,
            market_id=market_id,
        )

    def _audit(
        self,
        market_id: str,
        action: str,
        admin_id: str,
        details: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        """Autocommitted audit entry. Never raises."""
        try:
            append_resolution_log(self.conn, market_id, action, admin_id, details, error)
        except duckdb.Error as e:
            log.error("audit_log_write_failed", market_id=market_id, action=action, error=str(e))

    @staticmethod
    def _load_market(conn: DuckDBPyConnection, market_id: str) -> Market:
        market = get_market(conn, market_id)
        if market is None:
            raise NotFound(f"Market {market_id} not found", market_id=market_id)
        return market

    def preview(
        self,
        market_id: str,
        winning_option_id: str,
        creator_fee_percentage: float | None = None,
    ) -> PayoutPreview:
        """Projected settlement for winning_option_id. Read only."""
        market = self._load_market(self.conn, market_id)
        commitments = list_commitments(self.conn, market, status="active")
        fee = self.default_creator_fee if creator_fee_percentage is None else creator_fee_percentage
        return calculate_payout_preview(market, commitments, winning_option_id, fee)

    def resolve_market(
        self,
        market_id: str,
        winning_option_id: str,
        evidence: list[Any],
        resolved_by: str,
        creator_fee_percentage: float | None = None,
    ) -> ResolveResult:
        """pending_resolution -> resolved; pay winners, settle losers, record fees."""
        self._audit(
            market_id,
            "resolution_started",
            resolved_by,
            {"winning_option_id": winning_option_id, "evidence_count": len(evidence or [])},
        )

        def work(conn: DuckDBPyConnection) -> ResolveResult:
            market = self._load_market(conn, market_id)
            fee, report = validate_resolution_request(
                market,
                winning_option_id,
                evidence,
                creator_fee_percentage,
                default_creator_fee=self.default_creator_fee,
            )
            append_resolution_log(
                conn,
                market_id,
                "evidence_validated",
                resolved_by,
                {"warnings": [w.model_dump() for w in report.warnings]},
            )
            commitments = list_commitments(conn, market, status="active")
            preview = calculate_payout_preview(market, commitments, winning_option_id, fee)
            append_resolution_log(
                conn,
                market_id,
                "payouts_calculated",
                resolved_by,
                {
                    "total_pool": preview.total_pool,
                    "winner_count": preview.winner_count,
                    "winner_pool": preview.winner_pool,
                },
            )

            processed_at = now_ms()
            # Market row first: concurrent resolvers conflict here
            update_market_status(conn, market, "resolved", resolved_at=processed_at)
            resolution_id = uuid.uuid4().hex

            payout_by_commitment = {p.commitment_id: p for p in preview.payouts}
            settlements: dict[str, UserSettlement] = {}
            payout_rows: list[ResolutionPayout] = []
            for c in commitments:
                s = settlements.setdefault(c.user_id, UserSettlement(c.user_id))
                if c.option_id == winning_option_id:
                    entry = payout_by_commitment[c.commitment_id]
                    settle_commitment(conn, c, "won", processed_at)
                    s.add(
                        "win",
                        entry.projected_payout,
                        available=entry.projected_payout,
                        committed=-c.tokens_committed,
                        earned=max(entry.projected_profit, 0),
                        related_id=c.commitment_id,
                        metadata={"tokens_staked": c.tokens_committed, "profit": entry.projected_profit},
                    )
                    payout_rows.append(
                        ResolutionPayout(
                            payout_id=uuid.uuid4().hex,
                            resolution_id=resolution_id,
                            market_id=market_id,
                            user_id=c.user_id,
                            option_id=c.option_id,
                            tokens_staked=c.tokens_committed,
                            payout_amount=entry.projected_payout,
                            profit=entry.projected_profit,
                            processed_at=processed_at,
                        )
                    )
                else:
                    settle_commitment(conn, c, "lost", processed_at)
                    s.add(
                        "loss",
                        c.tokens_committed,
                        committed=-c.tokens_committed,
                        related_id=c.commitment_id,
                        metadata={"option_id": c.option_id, "winning_option_id": winning_option_id},
                    )

            if preview.creator_fee > 0:
                creator = settlements.setdefault(market.created_by, UserSettlement(market.created_by))
                creator.add(
                    "creator_fee",
                    preview.creator_fee,
                    available=preview.creator_fee,
                    related_id=resolution_id,
                    metadata={"fee_percentage": fee},
                )

            apply_user_settlements(conn, settlements, market_id, processed_at)

            insert_resolution(
                conn,
                MarketResolution(
                    resolution_id=resolution_id,
                    market_id=market_id,
                    winning_option_id=winning_option_id,
                    resolved_by=resolved_by,
                    resolved_at=processed_at,
                    evidence=[coerce_evidence(e) for e in evidence],
                    total_payout=preview.winner_pool,
                    winner_count=preview.winner_count,
                    creator_fee_amount=preview.creator_fee,
                    house_fee_amount=preview.house_fee,
                    status="completed",
                ),
            )
            insert_resolution_payouts(conn, payout_rows)
            if preview.creator_fee > 0:
                insert_creator_payout(
                    conn,
                    CreatorPayout(
                        resolution_id=resolution_id,
                        market_id=market_id,
                        creator_id=market.created_by,
                        fee_amount=preview.creator_fee,
                        fee_percentage=fee,
                        processed_at=processed_at,
                    ),
                )
            insert_house_payout(
                conn,
                HousePayout(
                    resolution_id=resolution_id,
                    market_id=market_id,
                    fee_amount=preview.house_fee,
                    fee_percentage=HOUSE_FEE_PERCENTAGE * 100,
                    processed_at=processed_at,
                ),
            )
            append_resolution_log(
                conn,
                market_id,
                "tokens_distributed",
                resolved_by,
                {"total_distributed": preview.total_distributed, "users": len(settlements)},
            )
            append_resolution_log(
                conn,
                market_id,
                "resolution_completed",
                resolved_by,
                {"resolution_id": resolution_id, "winning_option_id": winning_option_id},
            )
            return ResolveResult(resolution_id=resolution_id, preview=preview, warnings=report.warnings)

        try:
            result = self._run(work, operation="resolve_market", market_id=market_id)
        except (ResolutionError, duckdb.Error) as e:
            self._audit(market_id, "resolution_failed", resolved_by, {"code": getattr(e, "code", None)}, error=str(e))
            raise
        log.info(
            "market_resolved",
            market_id=market_id,
            resolution_id=result.resolution_id,
            winning_option_id=winning_option_id,
            total_pool=result.preview.total_pool,
            winner_count=result.preview.winner_count,
            house_fee=result.preview.house_fee,
            creator_fee=result.preview.creator_fee,
        )
        return result

    def cancel_market(
        self,
        market_id: str,
        reason: str,
        cancelled_by: str,
        refund_tokens: bool = True,
    ) -> CancelResult:
        """-> cancelled; optionally return every active stake to its owner."""
        self._audit(market_id, "cancellation_started", cancelled_by, {"refund_tokens": refund_tokens})

        def work(conn: DuckDBPyConnection) -> CancelResult:
            market = self._load_market(conn, market_id)
            trimmed = validate_cancellation(market, reason)
            processed_at = now_ms()
            update_market_status(conn, market, "cancelled", cancellation_reason=trimmed)
            resolution_id = uuid.uuid4().hex

            refunded = 0
            tokens_refunded = 0
            if refund_tokens:
                settlements: dict[str, UserSettlement] = {}
                for c in list_commitments(conn, market, status="active"):
                    settle_commitment(conn, c, "refunded", processed_at)
                    s = settlements.setdefault(c.user_id, UserSettlement(c.user_id))
                    s.add(
                        "refund",
                        c.tokens_committed,
                        available=c.tokens_committed,
                        committed=-c.tokens_committed,
                        related_id=c.commitment_id,
                        metadata={"reason": trimmed},
                    )
                    refunded += 1
                    tokens_refunded += c.tokens_committed
                apply_user_settlements(conn, settlements, market_id, processed_at)

            insert_resolution(
                conn,
                MarketResolution(
                    resolution_id=resolution_id,
                    market_id=market_id,
                    resolved_by=cancelled_by,
                    resolved_at=processed_at,
                    status="cancelled",
                    cancellation_reason=trimmed,
                ),
            )
            append_resolution_log(
                conn,
                market_id,
                "market_cancelled",
                cancelled_by,
                {
                    "resolution_id": resolution_id,
                    "reason": trimmed,
                    "refunds_processed": refunded,
                    "tokens_refunded": tokens_refunded,
                },
            )
            return CancelResult(
                resolution_id=resolution_id,
                refunds_processed=refunded,
                tokens_refunded=tokens_refunded,
            )

        try:
            result = self._run(work, operation="cancel_market", market_id=market_id)
        except (ResolutionError, duckdb.Error) as e:
            self._audit(market_id, "cancellation_failed", cancelled_by, {"code": getattr(e, "code", None)}, error=str(e))
            raise
        log.info(
            "market_cancelled",
            market_id=market_id,
            resolution_id=result.resolution_id,
            refunds_processed=result.refunds_processed,
            tokens_refunded=result.tokens_refunded,
        )
        return result

    def sweep_pending_resolution(self, as_of_ms: int | None = None) -> list[Market]:
        """Move active/closed markets past their end time to pending_resolution."""
        as_of = now_ms() if as_of_ms is None else as_of_ms
        moved: list[Market] = []
        for due in list_markets_due(self.conn, as_of):

            def work(conn: DuckDBPyConnection, market_id: str = due.market_id) -> Market | None:
                market = self._load_market(conn, market_id)
                if market.status not in ("active", "closed"):
                    return None
                check_transition(market, "pending_resolution")
                market.version = update_market_status(conn, market, "pending_resolution")
                market.status = "pending_resolution"
                return market

            try:
                market = self._run(work, operation="sweep_pending_resolution", market_id=due.market_id)
            except SettlementFailed as e:
                log.warning("sweep_market_skipped", market_id=due.market_id, error=e.message)
                continue
            if market is not None:
                moved.append(market)
        log.info("pending_resolution_sweep", as_of=as_of, moved=len(moved))
        return moved

    def recalculate_totals(self, market_id: str) -> Market:
        """Rebuild a market's cached aggregates from its commitments."""

        def work(conn: DuckDBPyConnection) -> Market:
            market = recalculate_market_totals(conn, market_id)
            if market is None:
                raise NotFound(f"Market {market_id} not found", market_id=market_id)
            return market

        return self._run(work, operation="recalculate_totals", market_id=market_id)
