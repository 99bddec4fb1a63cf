"""cert_import.store

Record-store adapters consumed by the reconciler.

The reconciler only needs three operations (see RecordStore).  Two
implementations ship here:

  InMemoryRecordStore  dict-backed; used for previews and tests
  PostgresRecordStore  psycopg adapter over lab_users + certifications
                       (schema in migrations/0001_certification_tables.sql)
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, Protocol

import psycopg

from cert_import.candidates import CandidateRecord
from cert_import.normalize import match_key_part, parse_expiration_date

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class UnknownInstructorError(LookupError):
    """Raised when no instructor account exists for a candidate's email."""


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExistingRecord:
    id: str
    email: str
    name: str
    cert_type: str | None = None
    verification_status: str | None = None


class RecordStore(Protocol):
    def find_match(self, email: str, name_or_type: str) -> ExistingRecord | None:
        """Return the record keyed by (email, name_or_type), case-insensitive."""
        ...

    def insert(self, candidate: CandidateRecord) -> str:
        """Persist a new record; return its id."""
        ...

    def update(self, existing_id: str, candidate: CandidateRecord) -> None:
        """Overwrite an existing record's certification details."""
        ...


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

@dataclass
class StoredCertification:
    id: str
    email: str
    name: str
    cert_type: str | None = None
    expiration_date: str | None = None
    cert_number: str | None = None
    issuing_authority: str | None = None
    verification_status: str = "pending"


@dataclass
class InMemoryRecordStore:
    """Dict-backed store keyed by (email, name) match key.

    fail_on maps a normalized email to an exception raised on insert/update
    for that email; used to exercise partial-failure handling.
    """

    records: dict[str, StoredCertification] = field(default_factory=dict)
    fail_on: dict[str, Exception] = field(default_factory=dict)

    @staticmethod
    def _key(email: str, name: str) -> tuple[str, str]:
        return (email.strip().lower(), match_key_part(name))

    def _find(self, email: str, name: str) -> StoredCertification | None:
        key = self._key(email, name)
        for rec in self.records.values():
            if self._key(rec.email, rec.name) == key:
                return rec
        return None

    def find_match(self, email: str, name_or_type: str) -> ExistingRecord | None:
        rec = self._find(email, name_or_type)
        if rec is None:
            return None
        return ExistingRecord(
            id=rec.id,
            email=rec.email,
            name=rec.name,
            cert_type=rec.cert_type,
            verification_status=rec.verification_status,
        )

    def _maybe_fail(self, candidate: CandidateRecord) -> None:
        exc = self.fail_on.get(candidate.email)
        if exc is not None:
            raise exc

    def insert(self, candidate: CandidateRecord) -> str:
        self._maybe_fail(candidate)
        rec_id = str(uuid.uuid4())
        self.records[rec_id] = StoredCertification(
            id=rec_id,
            email=candidate.email,
            name=candidate.name_or_type,
            cert_type=candidate.cert_type or None,
            expiration_date=candidate.expiration_date or None,
            cert_number=candidate.cert_number or None,
            issuing_authority=candidate.issuing_authority or None,
        )
        return rec_id

    def update(self, existing_id: str, candidate: CandidateRecord) -> None:
        self._maybe_fail(candidate)
        rec = self.records.get(existing_id)
        if rec is None:
            raise KeyError(f"no certification with id {existing_id!r}")
        rec.expiration_date = candidate.expiration_date or None
        if candidate.cert_type:
            rec.cert_type = candidate.cert_type
        if candidate.cert_number:
            rec.cert_number = candidate.cert_number
        if candidate.issuing_authority:
            rec.issuing_authority = candidate.issuing_authority


# ---------------------------------------------------------------------------
# PostgreSQL store
# ---------------------------------------------------------------------------

class PostgresRecordStore:
    """psycopg-backed store.  Caller manages the outer transaction.

    Every call runs under its own SAVEPOINT, so a failed row is rolled back
    on its own and the connection stays usable for the next row.  The
    connection must not be in autocommit mode.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn
        self._sp_seq = 0

    @contextmanager
    def _savepoint(self) -> Iterator[None]:
        self._sp_seq += 1
        sp_name = f"cert_sp_{self._sp_seq}"
        self._conn.execute(f"SAVEPOINT {sp_name}")
        try:
            yield
        except Exception:
            self._conn.execute(f"ROLLBACK TO SAVEPOINT {sp_name}")
            raise
        self._conn.execute(f"RELEASE SAVEPOINT {sp_name}")

    def _resolve_user_id(self, email: str) -> str:
        rows = self._conn.execute(
            "SELECT id FROM lab_users WHERE lower(email) = lower(%s) ORDER BY id ASC",
            (email,),
        ).fetchall()
        if not rows:
            raise UnknownInstructorError(f'No user found with email "{email}"')
        if len(rows) > 1:
            log.warning("Multiple lab_users rows share email %s; using the first", email)
        return str(rows[0][0])

    def find_match(self, email: str, name_or_type: str) -> ExistingRecord | None:
        # Both sides go through the same SQL normalization (lower-case, trim and
        # collapse whitespace runs) so keys compare like match_key_part().
        with self._savepoint():
            row = self._conn.execute(
                r"""
                SELECT c.id, u.email, c.name, c.cert_type, c.verification_status
                FROM certifications c
                JOIN lab_users u ON u.id = c.user_id
                WHERE lower(u.email) = lower(%s)
                  AND btrim(regexp_replace(lower(c.name), '\s+', ' ', 'g'))
                      = btrim(regexp_replace(lower(%s::text), '\s+', ' ', 'g'))
                ORDER BY c.created_at ASC, c.id ASC
                LIMIT 1
                """,
                (email, name_or_type),
            ).fetchone()
        if row is None:
            return None
        return ExistingRecord(
            id=str(row[0]),
            email=row[1],
            name=row[2],
            cert_type=row[3],
            verification_status=row[4],
        )

    def insert(self, candidate: CandidateRecord) -> str:
        now = datetime.now(timezone.utc)
        with self._savepoint():
            user_id = self._resolve_user_id(candidate.email)
            row = self._conn.execute(
                """
                INSERT INTO certifications
                  (user_id, name, cert_type, cert_number, issuing_authority,
                   expires_at, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (
                    user_id,
                    candidate.name_or_type,
                    candidate.cert_type or None,
                    candidate.cert_number or None,
                    candidate.issuing_authority or None,
                    parse_expiration_date(candidate.expiration_date),
                    now,
                    now,
                ),
            ).fetchone()
        return str(row[0])

    def update(self, existing_id: str, candidate: CandidateRecord) -> None:
        with self._savepoint():
            self._conn.execute(
                """
                UPDATE certifications SET
                  expires_at = %s,
                  cert_type = COALESCE(%s, cert_type),
                  cert_number = COALESCE(%s, cert_number),
                  issuing_authority = COALESCE(%s, issuing_authority),
                  updated_at = %s
                WHERE id = %s
                """,
                (
                    parse_expiration_date(candidate.expiration_date),
                    candidate.cert_type or None,
                    candidate.cert_number or None,
                    candidate.issuing_authority or None,
                    datetime.now(timezone.utc),
                    existing_id,
                ),
            )
