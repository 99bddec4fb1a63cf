"""cert_import.cli

Command-line entrypoint for instructor certification CSV imports.

Usage (preview only, no database access):
    python -m cert_import.cli \\
        --csv-path "exports/certs_2026.csv" \\
        --preview

Usage (import):
    python -m cert_import.cli \\
        --db-dsn "$CERT_IMPORT_DB_DSN" \\
        --csv-path "exports/certs_2026.csv" \\
        --map cert_name="Course Title" \\
        --exclude-row 7 \\
        --rejects-path "artifacts/rejects/cert_import_rejects.csv"
"""

from __future__ import annotations

import logging
import sys
import uuid
from pathlib import Path

import click
import psycopg

from cert_import.mapping import (
    MappingValidationError,
    load_mapping_file,
    parse_override_option,
)
from cert_import.pipeline import PreparedImport, commit_import, prepare_import
from cert_import.shared import RejectWriter, utc_now_iso, write_run_report
from cert_import.store import PostgresRecordStore
from cert_import.tokenizer import ImportStructureError


def _echo_preview(run_id: str, prepared: PreparedImport) -> None:
    click.echo(f"[{run_id}] Headers: {prepared.parsed.headers}")
    for name, header in prepared.mapping.to_dict().items():
        inferred = prepared.inferred.header_for(name)
        note = "" if header == inferred else f"  (inferred: {inferred or '-'})"
        click.echo(f"[{run_id}]   {name:<18} <- {header or '-'}{note}")
    for c in prepared.candidates:
        state = "excluded" if c.excluded else ("issues" if c.issues else "ok")
        line = f"[{run_id}]   row {c.row_index}: {state:<8} {c.email or '-'} | {c.name_or_type or '-'}"
        if c.issues:
            line += f" | {'; '.join(c.issues)}"
        click.echo(line)
    click.echo(
        f"[{run_id}] {len(prepared.candidates)} rows, "
        f"{len(prepared.eligible)} eligible, "
        f"{len(prepared.with_issues)} with issues"
    )


@click.command()
@click.option("--csv-path", required=True, type=click.Path(exists=True, dir_okay=False), help="Input CSV export")
@click.option("--db-dsn", default=None, envvar="CERT_IMPORT_DB_DSN", help="PostgreSQL DSN (or CERT_IMPORT_DB_DSN)")
@click.option("--map", "map_overrides", multiple=True, help="Override one field mapping: FIELD=HEADER (repeatable)")
@click.option("--mapping-file", default=None, type=click.Path(exists=True, dir_okay=False), help="YAML file with 'mapping' overrides and 'exclude_rows'")
@click.option("--exclude-row", "exclude_rows", multiple=True, type=int, help="Row number (header = 1) to leave out (repeatable)")
@click.option("--preview", is_flag=True, default=False, help="Parse, map and validate only; do not touch the database")
@click.option("--dry-run", is_flag=True, default=False)
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/cert_import_rejects.csv",
    show_default=True,
)
@click.option("--report-dir", default="./artifacts/reports", show_default=True, type=click.Path())
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--verbose", is_flag=True, default=False)
def main(
    csv_path: str,
    db_dsn: str | None,
    map_overrides: tuple[str, ...],
    mapping_file: str | None,
    exclude_rows: tuple[int, ...],
    preview: bool,
    dry_run: bool,
    rejects_path: str,
    report_dir: str,
    run_id: str | None,
    verbose: bool,
) -> None:
    """Import instructor certifications from a CSV export."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = utc_now_iso()

    click.echo(f"[{run_id}] Starting certification import (dry_run={dry_run}, preview={preview})")

    # Operator overrides: mapping file first, then --map flags on top.
    overrides: dict[str, str] = {}
    excluded: set[int] = set(exclude_rows)
    try:
        if mapping_file:
            loaded = load_mapping_file(Path(mapping_file))
            overrides.update(loaded.overrides)
            excluded.update(loaded.exclude_rows)
        for opt in map_overrides:
            field_name, header = parse_override_option(opt)
            overrides[field_name] = header
    except MappingValidationError as exc:
        click.echo(f"[{run_id}] FATAL: invalid mapping: {exc}", err=True)
        sys.exit(1)

    try:
        text = Path(csv_path).read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        click.echo(f"[{run_id}] FATAL: {csv_path} is not UTF-8 text: {exc}", err=True)
        sys.exit(1)
    try:
        prepared = prepare_import(text, overrides=overrides, excluded_rows=excluded)
    except (ImportStructureError, MappingValidationError) as exc:
        click.echo(f"[{run_id}] FATAL: {exc}", err=True)
        sys.exit(1)

    _echo_preview(run_id, prepared)
    if preview:
        return

    if not db_dsn:
        click.echo(f"[{run_id}] FATAL: --db-dsn is required unless --preview is set", err=True)
        sys.exit(1)

    rejects = RejectWriter(Path(rejects_path))
    conn = psycopg.connect(db_dsn, autocommit=False)
    try:
        try:
            report = commit_import(prepared, PostgresRecordStore(conn), rejects)
        except Exception as exc:
            conn.rollback()
            click.echo(f"[{run_id}] FATAL: unexpected error during DB phase: {exc}", err=True)
            sys.exit(1)
        if dry_run:
            conn.rollback()
            click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
        else:
            conn.commit()
    finally:
        conn.close()
        rejects.close()

    result = report.result
    for message in result.errors:
        click.echo(f"[{run_id}] ERROR {message}", err=True)
    if rejects.rows_written:
        click.echo(f"[{run_id}] {rejects.rows_written} rejected rows written to {rejects_path}")

    report_path = write_run_report(
        run_id, started_at, dry_run, csv_path,
        prepared.mapping.to_dict(), result, Path(report_dir),
    )
    click.echo(f"[{run_id}] Run report: {report_path}")
    click.echo(
        f"[{run_id}] Done: {result.imported} imported, {result.updated} updated, "
        f"{result.skipped} skipped, {len(result.errors)} errors"
    )

    if result.errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
