"""cert_import.candidates

Per-row normalization and validation.

Each RawRow is turned into a CandidateRecord using the operator's final
FieldMapping.  Validation failures are attached as human-readable issues;
they never raise.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Iterable

from cert_import.mapping import FieldMapping
from cert_import.normalize import (
    is_plausible_email,
    match_date,
    normalize_email,
    trim_or_empty,
)
from cert_import.tokenizer import ParsedCsv, RawRow

ISSUE_INVALID_EMAIL = "Missing or invalid email"
ISSUE_MISSING_NAME = "Missing certification name/type"


def invalid_date_issue(value: str) -> str:
    return f'Invalid date format: "{value}"'


# ---------------------------------------------------------------------------
# CandidateRecord
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CandidateRecord:
    row_index: int
    email: str
    cert_type: str = ""
    cert_name: str = ""
    expiration_date: str = ""
    cert_number: str = ""
    issuing_authority: str = ""
    issues: tuple[str, ...] = field(default_factory=tuple)
    excluded: bool = False
    # Original cells, kept for reject files.
    source: RawRow = field(default_factory=dict, compare=False, repr=False)

    @property
    def name_or_type(self) -> str:
        return self.cert_name or self.cert_type

    @property
    def eligible(self) -> bool:
        return not self.issues and not self.excluded

    @property
    def label(self) -> str:
        return f'Row {self.row_index} ("{self.email}")'


def exclude(candidate: CandidateRecord) -> CandidateRecord:
    return dataclasses.replace(candidate, excluded=True)


def include(candidate: CandidateRecord) -> CandidateRecord:
    return dataclasses.replace(candidate, excluded=False)


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------

def _cell(row: RawRow, header: str) -> str:
    # Unmapped fields and headers missing from a ragged row read as ''.
    if not header:
        return ""
    return trim_or_empty(row.get(header))


def map_row(row: RawRow, mapping: FieldMapping, row_index: int) -> CandidateRecord:
    """Build a CandidateRecord for one row; validation issues are collected, not raised."""
    email = normalize_email(_cell(row, mapping.email)) or ""
    cert_type = _cell(row, mapping.cert_type)
    cert_name = _cell(row, mapping.cert_name)
    expiration = _cell(row, mapping.expiration_date)

    issues: list[str] = []
    if not is_plausible_email(email):
        issues.append(ISSUE_INVALID_EMAIL)
    if not cert_name and not cert_type:
        issues.append(ISSUE_MISSING_NAME)
    if expiration and match_date(expiration) is None:
        issues.append(invalid_date_issue(expiration))

    return CandidateRecord(
        row_index=row_index,
        email=email,
        cert_type=cert_type,
        cert_name=cert_name,
        expiration_date=expiration,
        cert_number=_cell(row, mapping.cert_number),
        issuing_authority=_cell(row, mapping.issuing_authority),
        issues=tuple(issues),
        source=row,
    )


def map_rows(
    parsed: ParsedCsv,
    mapping: FieldMapping,
    excluded_rows: Iterable[int] = (),
) -> list[CandidateRecord]:
    """Map every parsed row, flagging operator-excluded row numbers."""
    excluded = set(excluded_rows)
    candidates: list[CandidateRecord] = []
    for row_index, row in parsed.numbered_rows():
        candidate = map_row(row, mapping, row_index)
        if row_index in excluded:
            candidate = exclude(candidate)
        candidates.append(candidate)
    return candidates
