"""Normalization functions for certification CSV ingestion.

All functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


def trim_or_empty(value: str | None) -> str:
    """Like trim(), but returns '' instead of None."""
    return trim(value) or ""


# ---------------------------------------------------------------------------
# Rule 2: normalize_email
# ---------------------------------------------------------------------------

def normalize_email(value: str | None) -> str | None:
    """Lowercase and trim an email address."""
    v = trim(value)
    if v is None:
        return None
    return v.lower()


def is_plausible_email(email_norm: str | None) -> bool:
    """Return True when the value is non-empty and contains '@'.

    Source exports carry unusual but legitimate addresses; no further
    syntax checks are applied.
    """
    if not email_norm:
        return False
    return "@" in email_norm


# ---------------------------------------------------------------------------
# Rule 3: match_key_part  (case-insensitive comparison of names/types)
# ---------------------------------------------------------------------------

def match_key_part(value: str | None) -> str:
    """Casefold + collapse whitespace for match-key comparison."""
    v = trim(value)
    if v is None:
        return ""
    return re.sub(r"\s+", " ", v).casefold()


# ---------------------------------------------------------------------------
# Rule 4: expiration dates
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DateMatcher:
    """One accepted expiration-date shape, tried in order by match_date()."""

    tag: str
    pattern: re.Pattern[str] | None
    formats: tuple[str, ...]

    def parse(self, value: str) -> date | None:
        if self.pattern is not None:
            m = self.pattern.match(value)
            if not m:
                return None
            if m.groupdict():
                parts = m.groupdict()
                try:
                    return date(int(parts["y"]), int(parts["m"]), int(parts["d"]))
                except ValueError:
                    return None
        for fmt in self.formats:
            try:
                return datetime.strptime(value, fmt).date()
            except ValueError:
                continue
        return None


# Generic fallback: a fixed, locale-independent list of formats.  Anything
# that does not parse as a real calendar date under one of these is rejected.
FALLBACK_DATE_FORMATS: tuple[str, ...] = (
    "%Y/%m/%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%d %H:%M:%S",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
)

DATE_MATCHERS: tuple[DateMatcher, ...] = (
    DateMatcher("iso", re.compile(r"^\d{4}-\d{2}-\d{2}$", re.ASCII), ("%Y-%m-%d",)),
    DateMatcher(
        "us_slash",
        re.compile(r"^(?P<m>\d{1,2})/(?P<d>\d{1,2})/(?P<y>\d{4})$", re.ASCII),
        (),
    ),
    DateMatcher(
        "us_dash",
        re.compile(r"^(?P<m>\d{1,2})-(?P<d>\d{1,2})-(?P<y>\d{4})$", re.ASCII),
        (),
    ),
    DateMatcher("fallback", None, FALLBACK_DATE_FORMATS),
)


def match_date(value: str | None) -> tuple[str, date] | None:
    """Return (matcher_tag, parsed_date) for the first matcher that accepts value."""
    v = trim(value)
    # ASCII digits only; strptime and int() would also accept e.g. Arabic-Indic.
    if v is None or not v.isascii():
        return None
    for matcher in DATE_MATCHERS:
        parsed = matcher.parse(v)
        if parsed is not None:
            return matcher.tag, parsed
    return None


def parse_expiration_date(value: str | None) -> date | None:
    """Parse an expiration date in any accepted shape, or None."""
    matched = match_date(value)
    return matched[1] if matched else None
