"""cert_import.reconcile

Insert-vs-update reconciliation of validated candidates against a RecordStore.

Candidates are processed one at a time, in file order:
  1. Ineligible candidates (issues or operator-excluded) → skipped, store untouched.
  2. find_match(email, name_or_type) on the store.
  3. Match → update(existing.id, candidate); no match → insert(candidate).
  4. Any exception from the store is captured as an errored outcome and the
     batch continues with the next candidate.

Because step 2 sees every earlier write, two rows sharing a match key
resolve to insert-then-update and the later row's values win.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from cert_import.candidates import CandidateRecord
from cert_import.shared import (
    ERRORED,
    INSERTED,
    SKIPPED,
    UPDATED,
    ImportResult,
    ReconciliationOutcome,
    ResultAggregator,
)
from cert_import.store import RecordStore

log = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    outcomes: list[ReconciliationOutcome] = field(default_factory=list)
    result: ImportResult = field(default_factory=ImportResult)


def _skip_reason(candidate: CandidateRecord) -> str:
    if candidate.excluded:
        return "excluded by operator"
    return "; ".join(candidate.issues)


def _error_message(candidate: CandidateRecord, action: str | None, exc: Exception) -> str:
    reason = str(exc) or type(exc).__name__
    if action is None:
        return f"Row {candidate.row_index}: {reason}"
    return (
        f'Row {candidate.row_index}: Failed to {action} certification for '
        f'"{candidate.email}": {reason}'
    )


def reconcile_one(candidate: CandidateRecord, store: RecordStore) -> ReconciliationOutcome:
    """Reconcile a single candidate; never raises for store failures."""
    if not candidate.eligible:
        return ReconciliationOutcome(
            candidate.row_index, candidate.email, SKIPPED, _skip_reason(candidate)
        )

    action: str | None = None
    try:
        existing = store.find_match(candidate.email, candidate.name_or_type)
        if existing is not None:
            action = "update"
            store.update(existing.id, candidate)
            return ReconciliationOutcome(
                candidate.row_index, candidate.email, UPDATED, record_id=existing.id
            )
        action = "insert"
        record_id = store.insert(candidate)
        return ReconciliationOutcome(
            candidate.row_index, candidate.email, INSERTED, record_id=record_id
        )
    except Exception as exc:
        message = _error_message(candidate, action, exc)
        log.warning("%s (%s)", message, type(exc).__name__)
        return ReconciliationOutcome(candidate.row_index, candidate.email, ERRORED, message)


def reconcile(
    candidates: Iterable[CandidateRecord],
    store: RecordStore,
) -> ReconcileReport:
    """Reconcile every candidate in order and aggregate the outcomes.

    imported + updated + skipped + len(errors) always equals the number of
    candidates passed in.
    """
    aggregator = ResultAggregator()
    outcomes: list[ReconciliationOutcome] = []
    for candidate in candidates:
        outcome = reconcile_one(candidate, store)
        outcomes.append(outcome)
        aggregator.record(outcome)
    return ReconcileReport(outcomes=outcomes, result=aggregator.result())
