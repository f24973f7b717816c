"""Markets subcommand: list, show, odds, commit, sweep, recalc, load."""

from __future__ import annotations

import json
from pathlib import Path

import typer

from predsettle.cli.common import fail, open_db
from predsettle.errors import NotFound, ResolutionError
from predsettle.resolution.odds import calculate_competitiveness, calculate_option_stats, format_odds
from predsettle.settlement.commit import commit_tokens
from predsettle.settlement.executor import SettlementExecutor
from predsettle.settlement.transaction import run_in_transaction
from predsettle.storage.loader import load_snapshot
from predsettle.storage.markets import get_market
from predsettle.storage.markets import list_markets as storage_list_markets

app = typer.Typer(help="Market listing, odds and maintenance")


@app.command("list")
def list_markets(
    ctx: typer.Context,
    status: str | None = typer.Option(None, "--status", "-s", help="Filter by status"),
) -> None:
    """List markets in the local database."""
    with open_db(ctx) as conn:
        markets = storage_list_markets(conn, status=status)
        for m in markets:
            typer.echo(f"  {m.market_id[:20]:<20}  {m.status:<18}  {m.total_tokens_staked:>10}  {m.title[:50]}")
        typer.echo(f"Total: {len(markets)} markets")


@app.command("show")
def show(ctx: typer.Context, market_id: str = typer.Argument(..., help="Market ID")) -> None:
    """Show a market and its options."""
    with open_db(ctx) as conn:
        market = get_market(conn, market_id)
        if market is None:
            fail(NotFound(f"Market {market_id} not found", market_id=market_id))
        typer.echo(f"{market.market_id}  {market.title}")
        typer.echo(f"  status: {market.status}  created_by: {market.created_by}  version: {market.version}")
        typer.echo(f"  staked: {market.total_tokens_staked}  participants: {market.total_participants}")
        if market.cancellation_reason:
            typer.echo(f"  cancellation_reason: {market.cancellation_reason}")
        for option in market.options:
            typer.echo(f"  - {option.option_id}: {option.text}  {option.total_tokens} ({option.participant_count} users)")


@app.command("odds")
def odds(ctx: typer.Context, market_id: str = typer.Argument(..., help="Market ID")) -> None:
    """Show current implied odds per option."""
    with open_db(ctx) as conn:
        market = get_market(conn, market_id)
        if market is None:
            fail(NotFound(f"Market {market_id} not found", market_id=market_id))
        for option_id, s in calculate_option_stats(market).items():
            typer.echo(f"  {option_id:<20}  {format_odds(s.odds):>8}  {s.percentage:>6.2f}%  {s.total_tokens}")
        typer.echo(f"Competitiveness: {calculate_competitiveness(market)}")


@app.command("commit")
def commit(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID"),
    user_id: str = typer.Argument(..., help="User committing tokens"),
    option_id: str = typer.Argument(..., help="Option to back"),
    tokens: int = typer.Argument(..., help="Tokens to commit"),
) -> None:
    """Commit a user's tokens to an option of an active market."""
    settings = ctx.obj["settings"]
    with open_db(ctx) as conn:
        try:
            commitment = commit_tokens(
                conn,
                market_id,
                user_id,
                option_id,
                tokens,
                max_attempts=settings.settlement_max_attempts,
                base_delay_sec=settings.settlement_retry_base_delay_sec,
                max_delay_sec=settings.settlement_retry_max_delay_sec,
            )
        except ResolutionError as e:
            fail(e)
        typer.echo(f"Committed {tokens} tokens on {option_id} (commitment {commitment.commitment_id})")


@app.command("sweep")
def sweep(ctx: typer.Context) -> None:
    """Move markets past their end time to pending_resolution."""
    settings = ctx.obj["settings"]
    with open_db(ctx) as conn:
        moved = SettlementExecutor.from_settings(conn, settings).sweep_pending_resolution()
        for m in moved:
            typer.echo(f"  {m.market_id}  -> pending_resolution")
        typer.echo(f"Moved {len(moved)} markets.")


@app.command("recalc")
def recalc(ctx: typer.Context, market_id: str = typer.Argument(..., help="Market ID")) -> None:
    """Rebuild cached option and market totals from commitments."""
    settings = ctx.obj["settings"]
    with open_db(ctx) as conn:
        try:
            market = SettlementExecutor.from_settings(conn, settings).recalculate_totals(market_id)
        except ResolutionError as e:
            fail(e)
        typer.echo(f"{market.market_id}: staked={market.total_tokens_staked} participants={market.total_participants}")


@app.command("load")
def load(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with markets, balances, commitments"),
) -> None:
    """Load a JSON snapshot of markets, balances and commitments."""
    data = json.loads(path.read_text())
    with open_db(ctx) as conn:
        try:
            counts = run_in_transaction(conn, lambda c: load_snapshot(c, data), operation="load_snapshot")
        except ResolutionError as e:
            fail(e)
        typer.echo(
            f"Loaded {counts['markets']} markets, {counts['balances']} balances, {counts['commitments']} commitments."
        )
