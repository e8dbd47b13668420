"""Command-line interface for the lotto-ledger ingestion jobs."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional

import typer

from .diagnostics import write_debug_trace, write_token_dump
from .errors import LedgerError, NoRowsError
from .games import GAMES, GameSpec, get_game
from .ledger import Ledger
from .logging import get_logger
from .pdf_source import parse_pdf
from .pipeline import RunReport
from .runtime import build_runtime

logger = get_logger(__name__)

app = typer.Typer(add_completion=False, help="Lottery draw history ingestion")


def _resolve_games(keys: List[str]) -> List[GameSpec]:
    if not keys:
        raise typer.BadParameter("At least one game key (or 'all') is required")
    if any(key.lower() == "all" for key in keys):
        return list(GAMES.values())
    try:
        return [get_game(key) for key in keys]
    except KeyError as exc:
        raise typer.BadParameter(str(exc.args[0])) from exc


def _echo_reports(reports: List[RunReport]) -> None:
    for report in reports:
        typer.echo(
            f"{report.game}/{report.session}: parsed={report.parsed} added={report.added} "
            f"replaced={report.replaced} dropped={report.dropped_stale} total={report.total} "
            f"-> {report.path}"
        )


@app.command("games")
def games_command() -> None:
    """List the registered games and their ledger files."""
    runtime = build_runtime()
    for game in GAMES.values():
        source = "pdf" if game.is_pdf else "listing"
        paths = ", ".join(
            str(game.ledger_path(runtime.config.data_dir, session)) for session in game.sessions
        )
        typer.echo(f"{game.key}\tarity={game.arity}\tsource={source}\t{paths}")


@app.command("seed")
def seed_command(
    games: List[str] = typer.Argument(None, help="Game keys, or 'all'"),
) -> None:
    """Rebuild ledgers from each game's full history."""
    runtime = build_runtime()
    failed = False
    for game in _resolve_games(games or []):
        try:
            _echo_reports(asyncio.run(runtime.loader.seed(game)))
        except LedgerError as exc:
            failed = True
            logger.error("seed_failed", game=game.key, error=str(exc))
            typer.echo(f"{game.key}: {exc}", err=True)
    if failed:
        raise typer.Exit(code=1)


@app.command("update")
def update_command(
    games: List[str] = typer.Argument(None, help="Game keys, or 'all'"),
) -> None:
    """Merge the newest results into existing ledgers."""
    runtime = build_runtime()
    failed = False
    for game in _resolve_games(games or []):
        try:
            _echo_reports(asyncio.run(runtime.loader.update(game)))
        except LedgerError as exc:
            failed = True
            logger.error("update_failed", game=game.key, error=str(exc))
            typer.echo(f"{game.key}: {exc}", err=True)
    if failed:
        raise typer.Exit(code=1)


@app.command("parse-pdf")
def parse_pdf_command(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Local history PDF"),
    game_key: str = typer.Option(..., "--game", help="Game key, e.g. fl_pick3"),
    out_dir: Optional[Path] = typer.Option(None, "--out", help="Ledger root (defaults to LOTTO_DATA_DIR)"),
    debug: bool = typer.Option(False, "--debug", help="Also write the per-token debug trace"),
) -> None:
    """Reconstruct a local PDF and seed its ledgers."""
    runtime = build_runtime()
    try:
        game = get_game(game_key)
    except KeyError as exc:
        raise typer.BadParameter(str(exc.args[0])) from exc
    if not game.is_pdf:
        raise typer.BadParameter(f"{game.key} is not published as a PDF")

    data_dir = out_dir or runtime.config.data_dir
    tokens, run = parse_pdf(path.read_bytes(), game, verbose=debug)
    if debug:
        write_debug_trace(game.debug_path(data_dir, "debug"), run.pages)
    if not run.records:
        dump = write_token_dump(game.debug_path(data_dir, "tokens"), tokens)
        typer.echo(str(NoRowsError(f"{game.key}: zero rows; token dump at {dump}")), err=True)
        raise typer.Exit(code=1)

    for session in game.sessions:
        records = run.records_for(session.label)
        if not records:
            continue
        ledger = Ledger.for_session(game, session, data_dir)
        result = ledger.seed(records)
        typer.echo(f"{game.key}/{session.label}: {result.total} rows -> {ledger.path}")
    typer.echo(f"skipped={len(run.skips)} pages={len(run.pages)}")


@app.command("watch")
def watch_command() -> None:
    """Run updates on the configured interval until interrupted."""
    runtime = build_runtime()
    try:
        asyncio.run(runtime.scheduler.run_forever())
    except KeyboardInterrupt:  # pragma: no cover
        typer.echo("stopped")


def main():
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
