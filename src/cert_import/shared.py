"""cert_import.shared

Shared result types and run artifacts.
Includes ReconciliationOutcome, ImportResult, ResultAggregator,
RejectWriter, and report-writing support.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

INSERTED = "inserted"
UPDATED = "updated"
SKIPPED = "skipped"
ERRORED = "errored"

OUTCOME_STATUSES = (INSERTED, UPDATED, SKIPPED, ERRORED)


# ---------------------------------------------------------------------------
# ReconciliationOutcome
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReconciliationOutcome:
    row_index: int
    email: str
    status: str
    message: str | None = None
    record_id: str | None = None

    def __post_init__(self) -> None:
        if self.status not in OUTCOME_STATUSES:
            raise ValueError(f"Unknown outcome status: {self.status!r}")


# ---------------------------------------------------------------------------
# ImportResult + aggregator
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImportResult:
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: tuple[str, ...] = ()

    @property
    def total(self) -> int:
        return self.imported + self.updated + self.skipped + len(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


@dataclass
class ResultAggregator:
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def record(self, outcome: ReconciliationOutcome) -> None:
        if outcome.status == INSERTED:
            self.imported += 1
        elif outcome.status == UPDATED:
            self.updated += 1
        elif outcome.status == SKIPPED:
            self.skipped += 1
        else:
            self.errors.append(outcome.message or f"Row {outcome.row_index}: unknown error")

    def result(self) -> ImportResult:
        return ImportResult(
            imported=self.imported,
            updated=self.updated,
            skipped=self.skipped,
            errors=tuple(self.errors),
        )


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rejected rows."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None
        self.rows_written = 0

    def write(self, row: dict[str, str], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            fieldnames = list(row.keys()) + ["_reject_reason"]
            self._writer = csv.DictWriter(
                self._fh, fieldnames=fieldnames, extrasaction="ignore"
            )
            self._writer.writeheader()
        out = dict(row)
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()
        self.rows_written += 1

    def close(self) -> None:
        if self._fh:
            self._fh.close()
            self._fh = None


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def write_run_report(
    run_id: str,
    started_at: str,
    dry_run: bool,
    source_path: str,
    mapping: dict[str, str],
    result: ImportResult,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "started_at": started_at,
        "finished_at": utc_now_iso(),
        "dry_run": dry_run,
        "csv_path": source_path,
        "mapping": mapping,
        "result": result.to_dict(),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
