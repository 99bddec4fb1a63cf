"""cert_import.pipeline

Ties the stages together for one import run:

    text → parse_csv → infer_mapping (+ operator overrides) → map_rows
         → reconcile → ImportResult

prepare_import() performs every step that needs no store, so a caller can
show the preview, let the operator adjust the mapping or excluded rows, and
only then call commit_import().  Structural problems (empty header row, no
data rows, no email mapping) raise before any row is processed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from cert_import.candidates import CandidateRecord, map_rows
from cert_import.mapping import FieldMapping, apply_overrides, infer_mapping
from cert_import.reconcile import ReconcileReport, reconcile
from cert_import.shared import ERRORED, SKIPPED, RejectWriter
from cert_import.store import RecordStore
from cert_import.tokenizer import ParsedCsv, parse_csv


@dataclass
class PreparedImport:
    parsed: ParsedCsv
    inferred: FieldMapping
    mapping: FieldMapping
    candidates: list[CandidateRecord] = field(default_factory=list)

    @property
    def eligible(self) -> list[CandidateRecord]:
        return [c for c in self.candidates if c.eligible]

    @property
    def with_issues(self) -> list[CandidateRecord]:
        return [c for c in self.candidates if c.issues]


def prepare_import(
    text: str,
    overrides: Mapping[str, str] | None = None,
    excluded_rows: Iterable[int] = (),
    mapping: FieldMapping | None = None,
) -> PreparedImport:
    """Tokenize, map and validate text without touching any store.

    When mapping is given it replaces inference (inference still runs so the
    caller can compare); otherwise the inferred mapping is used.  overrides
    are applied on top either way.  Every mapped header must appear in the
    CSV header row.
    """
    parsed = parse_csv(text)
    inferred = infer_mapping(parsed.headers)
    final = mapping if mapping is not None else inferred
    if overrides:
        final = apply_overrides(final, overrides, parsed.headers)
    final.check_headers(parsed.headers)
    final.require_email()
    candidates = map_rows(parsed, final, excluded_rows)
    return PreparedImport(
        parsed=parsed, inferred=inferred, mapping=final, candidates=candidates
    )


def commit_import(
    prepared: PreparedImport,
    store: RecordStore,
    rejects: RejectWriter | None = None,
) -> ReconcileReport:
    """Reconcile prepared candidates; write skipped/errored rows to rejects."""
    report = reconcile(prepared.candidates, store)
    if rejects is not None:
        by_row = {c.row_index: c for c in prepared.candidates}
        for outcome in report.outcomes:
            if outcome.status not in (SKIPPED, ERRORED):
                continue
            candidate = by_row[outcome.row_index]
            rejects.write(
                {"_row_index": str(candidate.row_index), **candidate.source},
                outcome.message or outcome.status,
            )
    return report


def run_import(
    text: str,
    store: RecordStore,
    overrides: Mapping[str, str] | None = None,
    excluded_rows: Iterable[int] = (),
    rejects: RejectWriter | None = None,
) -> ReconcileReport:
    """One-shot import: prepare then commit."""
    prepared = prepare_import(text, overrides=overrides, excluded_rows=excluded_rows)
    return commit_import(prepared, store, rejects)
