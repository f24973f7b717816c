"""Transactional settlement: resolve, cancel, commit."""

from predsettle.settlement.commit import commit_tokens
from predsettle.settlement.executor import CancelResult, ResolveResult, SettlementExecutor
from predsettle.settlement.transaction import run_in_transaction

__all__ = ["SettlementExecutor", "ResolveResult", "CancelResult", "commit_tokens", "run_in_transaction"]
