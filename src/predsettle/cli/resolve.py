"""Resolve subcommand: preview, run, cancel, status, logs."""

from __future__ import annotations

import json
from pathlib import Path

import typer

from predsettle.cli.common import fail, open_db
from predsettle.errors import ResolutionError, ValidationError
from predsettle.settlement.executor import SettlementExecutor
from predsettle.storage.audit_log import get_resolution_status, list_resolution_logs

app = typer.Typer(help="Market resolution and cancellation (admin)")


def _load_evidence(evidence_file: Path | None, urls: list[str], description: str | None) -> list[dict]:
    evidence: list[dict] = []
    if evidence_file is not None:
        loaded = json.loads(evidence_file.read_text())
        evidence.extend(loaded if isinstance(loaded, list) else [loaded])
    evidence.extend({"type": "url", "content": url} for url in urls)
    if description:
        evidence.append({"type": "description", "content": description})
    return evidence


@app.command("preview")
def preview(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID"),
    winning_option_id: str = typer.Argument(..., help="Option assumed to win"),
    creator_fee: float | None = typer.Option(None, "--creator-fee", help="Creator fee fraction, 0.01-0.05"),
) -> None:
    """Show fees and per-winner payouts if the given option wins."""
    settings = ctx.obj["settings"]
    with open_db(ctx) as conn:
        try:
            p = SettlementExecutor.from_settings(conn, settings).preview(market_id, winning_option_id, creator_fee)
        except ResolutionError as e:
            fail(e)
        typer.echo(f"Pool: {p.total_pool}  house fee: {p.house_fee}  creator fee: {p.creator_fee}")
        typer.echo(f"Winner pool: {p.winner_pool}  winners: {p.winner_count}  distributed: {p.total_distributed}")
        for entry in p.payouts:
            typer.echo(f"  {entry.user_id:<20}  stake {entry.current_stake:>8}  payout {entry.projected_payout:>8}  profit {entry.projected_profit:>8}")


@app.command("run")
def run(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID"),
    winning_option_id: str = typer.Argument(..., help="Winning option"),
    admin_id: str = typer.Option(..., "--admin", help="Admin user performing the resolution"),
    url: list[str] = typer.Option([], "--url", help="Evidence URL (repeatable)"),
    description: str | None = typer.Option(None, "--description", help="Evidence description"),
    evidence_file: Path | None = typer.Option(None, "--evidence-file", help="JSON evidence list"),
    creator_fee: float | None = typer.Option(None, "--creator-fee", help="Creator fee fraction, 0.01-0.05"),
) -> None:
    """Resolve a pending_resolution market and distribute payouts."""
    settings = ctx.obj["settings"]
    with open_db(ctx) as conn:
        try:
            evidence = _load_evidence(evidence_file, url, description)
        except (OSError, json.JSONDecodeError) as e:
            fail(ValidationError(f"Cannot read evidence file: {e}", field="evidence", market_id=market_id))
        try:
            result = SettlementExecutor.from_settings(conn, settings).resolve_market(
                market_id, winning_option_id, evidence, admin_id, creator_fee_percentage=creator_fee
            )
        except ResolutionError as e:
            fail(e)
        p = result.preview
        typer.echo(f"Resolved {market_id} -> {winning_option_id} (resolution {result.resolution_id})")
        typer.echo(f"  paid {p.total_distributed} to {p.winner_count} winners; house {p.house_fee}, creator {p.creator_fee}")
        for warning in result.warnings:
            typer.echo(f"  warning [{warning.code}]: {warning.message}")


@app.command("cancel")
def cancel(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID"),
    reason: str = typer.Option(..., "--reason", "-r", help="Cancellation reason (10+ characters)"),
    admin_id: str = typer.Option(..., "--admin", help="Admin user performing the cancellation"),
    refund: bool = typer.Option(True, "--refund/--no-refund", help="Return active stakes to their owners"),
) -> None:
    """Cancel a market, refunding active commitments by default."""
    settings = ctx.obj["settings"]
    with open_db(ctx) as conn:
        try:
            result = SettlementExecutor.from_settings(conn, settings).cancel_market(
                market_id, reason, admin_id, refund_tokens=refund
            )
        except ResolutionError as e:
            fail(e)
        typer.echo(
            f"Cancelled {market_id}: {result.refunds_processed} refunds, {result.tokens_refunded} tokens returned"
        )


@app.command("status")
def status(ctx: typer.Context, market_id: str = typer.Argument(..., help="Market ID")) -> None:
    """Show resolution progress derived from the audit trail."""
    with open_db(ctx) as conn:
        s = get_resolution_status(conn, market_id)
        typer.echo(f"{market_id}: {s['status']} (last action: {s['last_action']}, {s['log_count']} entries)")
        if s["error"]:
            typer.echo(f"  error: {s['error']}")


@app.command("logs")
def logs(ctx: typer.Context, market_id: str = typer.Argument(..., help="Market ID")) -> None:
    """Print the resolution audit trail for a market."""
    with open_db(ctx) as conn:
        entries = list_resolution_logs(conn, market_id)
        for entry in entries:
            line = f"  {entry.timestamp}  {entry.action:<22}  {entry.admin_id}"
            if entry.error:
                line += f"  error={entry.error}"
            typer.echo(line)
        typer.echo(f"Total: {len(entries)} entries")
