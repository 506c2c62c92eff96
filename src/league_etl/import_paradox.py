"""league_etl.import_paradox

Command-line entry point for the legacy league import.

Modes:
  scan     list which expected .DB tables are present in --source-dir
  inspect  dump one table's header and first records (--table, --limit)
  import   import every table into --season-name (default)

Usage:
    python -m league_etl.import_paradox --mode scan --source-dir ./legacy
    python -m league_etl.import_paradox --mode import --source-dir ./legacy \\
        --season-name "Winter 2024" --db-dsn postgresql://...
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import click
import psycopg
import yaml

from league_etl.orchestrator import run_import
from league_etl.paradox_decode import type_name
from league_etl.paradox_header import CorruptHeaderError
from league_etl.paradox_records import read_table
from league_etl.settings import (
    DSN_ENV_VAR,
    KINDS,
    ImportSettings,
    SettingsValidationError,
    load_settings,
)
from league_etl.shared import RejectWriter, build_import_report, write_run_report
from league_etl.source_files import find_table_file, scan_source_dir
from league_etl.store import InMemoryLeagueStore
from league_etl.store_postgres import PostgresLeagueStore


@click.command()
@click.option(
    "--mode",
    default="import",
    type=click.Choice(["import", "scan", "inspect"]),
    show_default=True,
    help="Run mode",
)
@click.option("--source-dir", required=True, type=click.Path(), help="Directory holding the legacy .DB tables")
@click.option("--db-dsn", default=None, envvar=DSN_ENV_VAR, help=f"PostgreSQL DSN (falls back to ${DSN_ENV_VAR})")
@click.option("--season-name", default=None, help="[import] Season to import into (created if absent)")
@click.option("--config", "config_path", default=None, type=click.Path(), help="YAML settings: file names, aliases, placeholders")
# inspect flags
@click.option("--table", default=None, help="[inspect] Table kind (e.g. team) or file name (e.g. Team.DB)")
@click.option("--limit", default=5, type=int, show_default=True, help="[inspect] Number of records to print")
# shared flags
@click.option("--dry-run", is_flag=True, default=False)
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/paradox_rejects.csv",
    show_default=True,
)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    show_default=True,
)
def main(
    mode: str,
    source_dir: str,
    db_dsn: str | None,
    season_name: str | None,
    config_path: str | None,
    table: str | None,
    limit: int,
    dry_run: bool,
    rejects_path: str,
    run_id: str | None,
    log_level: str,
) -> None:
    """Legacy Paradox league database importer."""
    logging.basicConfig(level=log_level, format="%(levelname)s %(name)s: %(message)s")
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()

    try:
        settings = load_settings(Path(config_path) if config_path else None)
    except (SettingsValidationError, FileNotFoundError, yaml.YAMLError) as exc:
        click.echo(f"[{run_id}] FATAL: invalid settings: {exc}", err=True)
        sys.exit(1)

    if mode == "scan":
        _run_scan(run_id, Path(source_dir), settings)
    elif mode == "inspect":
        _run_inspect(run_id, Path(source_dir), settings, table, limit)
    else:
        _run_import(
            run_id, started_at, Path(source_dir), settings,
            db_dsn=db_dsn,
            season_name=season_name,
            dry_run=dry_run,
            rejects_path=Path(rejects_path),
        )


# ---------------------------------------------------------------------------
# scan
# ---------------------------------------------------------------------------

def _run_scan(run_id: str, source_dir: Path, settings: ImportSettings) -> None:
    scan = scan_source_dir(source_dir, settings)
    click.echo(f"[{run_id}] {scan.summary_text()}")
    if scan.errors or not scan.has_any_data:
        click.echo(f"[{run_id}] No Paradox tables found in {source_dir}", err=True)
        sys.exit(1)
    missing = scan.missing()
    if missing:
        click.echo(f"[{run_id}] Missing tables (will be skipped): {', '.join(missing)}")


# ---------------------------------------------------------------------------
# inspect
# ---------------------------------------------------------------------------

def _resolve_table(source_dir: Path, settings: ImportSettings, table: str) -> Path | None:
    kind = table.lower()
    if kind in KINDS:
        return find_table_file(source_dir, settings.file_candidates(kind))
    return find_table_file(source_dir, [table])


def _run_inspect(
    run_id: str,
    source_dir: Path,
    settings: ImportSettings,
    table: str | None,
    limit: int,
) -> None:
    if not table:
        click.echo(f"[{run_id}] ERROR: --table is required for --mode inspect", err=True)
        sys.exit(1)
    path = _resolve_table(source_dir, settings, table)
    if path is None:
        click.echo(f"[{run_id}] FATAL: table {table!r} not found in {source_dir}", err=True)
        sys.exit(1)
    try:
        header, records = read_table(path)
    except CorruptHeaderError as exc:
        click.echo(f"[{run_id}] FATAL: {path.name}: {exc}", err=True)
        sys.exit(1)

    click.echo(f"[{run_id}] {path.name}")
    click.echo(f"  table_name   : {header.table_name}")
    click.echo(f"  record_size  : {header.record_size}")
    click.echo(f"  record_count : {header.record_count}")
    click.echo(f"  field_count  : {header.field_count}")
    click.echo("  fields:")
    for i in range(header.usable_field_count):
        click.echo(
            f"    {i + 1:>3}. {header.field_name(i):<24} "
            f"{type_name(header.field_types[i]):<12} {header.field_sizes[i]}"
        )

    shown = 0
    for record in records:
        if shown >= limit:
            break
        shown += 1
        values = ", ".join(f"{k}={v!r}" for k, v in record.items())
        click.echo(f"  [{shown}] {values}")
    click.echo(f"[{run_id}] Showed {shown} of {header.record_count} records")


# ---------------------------------------------------------------------------
# import
# ---------------------------------------------------------------------------

def _run_import(
    run_id: str,
    started_at: str,
    source_dir: Path,
    settings: ImportSettings,
    db_dsn: str | None,
    season_name: str | None,
    dry_run: bool,
    rejects_path: Path,
) -> None:
    if not season_name or not season_name.strip():
        click.echo(f"[{run_id}] ERROR: --season-name is required for --mode import", err=True)
        sys.exit(1)
    if not db_dsn and not dry_run:
        click.echo(
            f"[{run_id}] ERROR: --db-dsn (or ${DSN_ENV_VAR}) is required unless --dry-run",
            err=True,
        )
        sys.exit(1)

    scan = scan_source_dir(source_dir, settings)
    if scan.errors or not scan.has_any_data:
        click.echo(f"[{run_id}] FATAL: no Paradox tables found in {source_dir}", err=True)
        sys.exit(1)
    click.echo(f"[{run_id}] Starting import run (dry_run={dry_run})")
    click.echo(scan.summary_text())

    conn = psycopg.connect(db_dsn, autocommit=False) if db_dsn else None
    store = PostgresLeagueStore(conn) if conn is not None else InMemoryLeagueStore()
    rejects = RejectWriter(rejects_path)

    def progress(label: str, index: int, total: int) -> None:
        click.echo(f"[{run_id}] ({index}/{total}) Importing {label}...")

    try:
        season_id = store.find_or_create_season(season_name.strip())
        summary = run_import(
            source_dir, store, season_id,
            settings=settings,
            progress=progress,
            rejects=rejects,
            run_id=run_id,
            persist=not dry_run,
        )
        if dry_run:
            if conn is not None:
                conn.rollback()
            click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
    except Exception as exc:
        if conn is not None:
            conn.rollback()
        click.echo(f"[{run_id}] FATAL: import aborted: {exc}", err=True)
        sys.exit(1)
    finally:
        if conn is not None:
            conn.close()
        rejects.close()

    click.echo(build_import_report(summary, dry_run=dry_run))
    click.echo(summary.summary_text())
    if rejects.rows_written:
        click.echo(f"[{run_id}] Rejects: {rejects.rows_written} rows → {rejects.path}")

    report_path = write_run_report(
        run_id, started_at, "import", dry_run,
        {"source_dir": str(source_dir), "season_name": season_name},
        summary,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")

    if not summary.success:
        click.echo(
            f"[{run_id}] {len(summary.errors)} step error(s); exiting non-zero",
            err=True,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
