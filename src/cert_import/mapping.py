"""cert_import.mapping

Column-to-field mapping for certification CSV imports.

Responsibilities:
  - Hold the static alias table used to auto-detect source columns
  - Infer a FieldMapping from a header row (exact, case-insensitive alias match)
  - Apply operator overrides, one field at a time
  - Load operator overrides from a YAML mapping file

Usage:
    from cert_import.mapping import infer_mapping

    mapping = infer_mapping(["Instructor Email", "Cert Name", "Expiry"])
    mapping = mapping.override("cert_type", "Level", headers)
    mapping.require_email()
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from cert_import.tokenizer import ImportStructureError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CANONICAL_FIELDS: tuple[str, ...] = (
    "email",
    "cert_type",
    "cert_name",
    "expiration_date",
    "cert_number",
    "issuing_authority",
)

REQUIRED_FIELDS = frozenset({"email"})

FIELD_ALIASES: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "email": (
        "email", "e-mail", "email address", "instructor email",
        "instructor_email", "user email", "user_email", "address",
    ),
    "cert_type": (
        "cert_type", "cert type", "certification type", "certification_type",
        "type",
    ),
    "cert_name": (
        "cert_name", "cert name", "certification", "certification name",
        "certification_name", "name", "cert",
    ),
    "expiration_date": (
        "expiration_date", "expiration date", "expiration", "expires",
        "expires_at", "expiry", "expiry date", "exp date",
    ),
    "cert_number": (
        "cert_number", "cert number", "certificate number",
        "certification number", "cert #", "cert_no", "number",
        "license number",
    ),
    "issuing_authority": (
        "issuing_authority", "issuing authority", "issuer", "issued by",
        "authority", "provider", "organization",
    ),
})

MAPPING_FILE_KEYS = frozenset({"mapping", "exclude_rows"})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class MappingValidationError(ValueError):
    """Raised when an operator override or mapping file is invalid."""


class MissingEmailMappingError(ImportStructureError):
    """Raised when no source column is mapped to the required email field."""


# ---------------------------------------------------------------------------
# FieldMapping
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldMapping:
    """Source header per canonical field; '' means unmapped."""

    email: str = ""
    cert_type: str = ""
    cert_name: str = ""
    expiration_date: str = ""
    cert_number: str = ""
    issuing_authority: str = ""

    def header_for(self, field_name: str) -> str:
        if field_name not in CANONICAL_FIELDS:
            raise MappingValidationError(f"Unknown field: {field_name!r}")
        return getattr(self, field_name)

    def override(
        self,
        field_name: str,
        header: str,
        headers: list[str] | None = None,
    ) -> FieldMapping:
        """Return a copy with one field pointed at header ('' unmaps it)."""
        if field_name not in CANONICAL_FIELDS:
            raise MappingValidationError(
                f"Unknown field: {field_name!r}; expected one of {list(CANONICAL_FIELDS)}"
            )
        header = header.strip()
        if header and headers is not None and header not in headers:
            raise MappingValidationError(
                f"Header {header!r} for field {field_name!r} is not in the CSV header row"
            )
        return dataclasses.replace(self, **{field_name: header})

    def check_headers(self, headers: list[str]) -> None:
        """Raise MappingValidationError if any mapped header is missing from headers."""
        missing = {
            name: header
            for name, header in self.to_dict().items()
            if header and header not in headers
        }
        if missing:
            raise MappingValidationError(
                f"Mapped headers not in the CSV header row: {missing}"
            )

    def require_email(self) -> None:
        if not self.email:
            raise MissingEmailMappingError(
                "No column is mapped to the required 'email' field"
            )

    def to_dict(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in CANONICAL_FIELDS}


# ---------------------------------------------------------------------------
# Inference
# ---------------------------------------------------------------------------

def infer_mapping(
    headers: list[str],
    aliases: Mapping[str, tuple[str, ...]] = FIELD_ALIASES,
) -> FieldMapping:
    """Propose a mapping: first header (file order) equal to one of the aliases.

    Comparison is exact after lower-casing and trimming; there is no fuzzy
    or substring matching.
    """
    lowered = [(h, h.strip().lower()) for h in headers]
    chosen: dict[str, str] = {}
    for field_name in CANONICAL_FIELDS:
        wanted = set(aliases.get(field_name, ()))
        for header, low in lowered:
            if low in wanted:
                chosen[field_name] = header
                break
    return FieldMapping(**chosen)


def apply_overrides(
    mapping: FieldMapping,
    overrides: Mapping[str, str],
    headers: list[str],
) -> FieldMapping:
    for field_name, header in overrides.items():
        mapping = mapping.override(field_name, header, headers)
    return mapping


def parse_override_option(value: str) -> tuple[str, str]:
    """Parse a 'field=Header Name' command-line override."""
    if "=" not in value:
        raise MappingValidationError(
            f"Override {value!r} must look like FIELD=HEADER"
        )
    field_name, header = value.split("=", 1)
    return field_name.strip(), header.strip()


# ---------------------------------------------------------------------------
# Mapping file loader + validator
# ---------------------------------------------------------------------------

@dataclass
class MappingFile:
    """Operator overrides loaded from YAML."""

    overrides: dict[str, str] = field(default_factory=dict)
    exclude_rows: list[int] = field(default_factory=list)


def load_mapping_file(yaml_path: Path) -> MappingFile:
    """Load and validate an operator mapping file.

    Expected shape:

        mapping:
          email: "Instructor Email"
          cert_name: "Course"
        exclude_rows: [4, 9]

    Raises:
        MappingValidationError: If the file does not match the shape above.
        FileNotFoundError: If the YAML file does not exist.
    """
    raw = yaml_path.read_text(encoding="utf-8")
    data: Any = yaml.safe_load(raw)
    validate_mapping_file(data)
    return MappingFile(
        overrides={k: str(v or "") for k, v in (data.get("mapping") or {}).items()},
        exclude_rows=[int(r) for r in (data.get("exclude_rows") or [])],
    )


def validate_mapping_file(data: Any) -> None:
    if not isinstance(data, dict):
        raise MappingValidationError("YAML root must be a mapping.")

    unknown_keys = set(data) - MAPPING_FILE_KEYS
    if unknown_keys:
        raise MappingValidationError(f"Unknown YAML keys: {sorted(unknown_keys)}")

    mapping = data.get("mapping") or {}
    if not isinstance(mapping, dict):
        raise MappingValidationError("'mapping' must be a table of field: header.")
    unknown_fields = set(mapping) - set(CANONICAL_FIELDS)
    if unknown_fields:
        raise MappingValidationError(
            f"Unknown fields in 'mapping': {sorted(unknown_fields)}"
        )
    for key, val in mapping.items():
        if val is not None and not isinstance(val, str):
            raise MappingValidationError(f"Header for '{key}' must be a string.")

    exclude_rows = data.get("exclude_rows") or []
    if not isinstance(exclude_rows, list):
        raise MappingValidationError("'exclude_rows' must be a list of row numbers.")
    for r in exclude_rows:
        if isinstance(r, bool) or not isinstance(r, int) or r < 2:
            raise MappingValidationError(
                f"'exclude_rows' entry {r!r} is not a data row number (>= 2)."
            )
