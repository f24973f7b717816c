"""Shared helpers for CLI commands."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, NoReturn

import typer

from predsettle.errors import ResolutionError
from predsettle.storage.db import get_connection, init_schema

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


@contextmanager
def open_db(ctx: typer.Context) -> Iterator[DuckDBPyConnection]:
    """Connection to the configured database with the schema ensured."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        yield conn
    finally:
        conn.close()


def fail(error: ResolutionError) -> NoReturn:
    """Print a resolution error and exit non-zero."""
    typer.echo(f"Error [{error.code}]: {error.message}", err=True)
    for key, value in error.details.items():
        typer.echo(f"  {key}: {value}", err=True)
    raise typer.Exit(code=1)
