"""cert_import.tokenizer

Splits a raw CSV text blob into a header row and data rows.

Only the quoting rules human-produced exports actually use are honoured:
a double quote toggles quoted mode, a comma inside quotes is literal, and
two consecutive double quotes inside quotes stand for one literal quote.
Records never span lines.
"""

from __future__ import annotations

from dataclasses import dataclass, field

BOM = "\ufeff"

RawRow = dict[str, str]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ImportStructureError(ValueError):
    """Raised when the input cannot be processed at all (fatal to the run)."""


class EmptyHeadersError(ImportStructureError):
    """Raised when the header line yields no columns."""


class NoDataRowsError(ImportStructureError):
    """Raised when no usable data line follows the header."""


# ---------------------------------------------------------------------------
# ParsedCsv
# ---------------------------------------------------------------------------

@dataclass
class ParsedCsv:
    headers: list[str]
    rows: list[RawRow] = field(default_factory=list)
    # 1-based line number of each row in the trimmed input; header is line 1.
    line_numbers: list[int] = field(default_factory=list)

    def numbered_rows(self) -> list[tuple[int, RawRow]]:
        return list(zip(self.line_numbers, self.rows))


# ---------------------------------------------------------------------------
# Line scanner
# ---------------------------------------------------------------------------

def split_line(line: str) -> list[str]:
    """Split one line into trimmed cells using the quote-aware scanner.

    '"Smith, John",x'        -> ['Smith, John', 'x']
    '"a ""b"" c",x'          -> ['a "b" c', 'x']
    """
    cells: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < n and line[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    cells.append("".join(current).strip())
    return cells


def _normalize_text(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    if text.startswith(BOM):
        text = text[len(BOM):]
    return text.strip()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def parse_csv(text: str) -> ParsedCsv:
    """Tokenize text into headers + rows.

    Raises:
        EmptyHeadersError: no header line, or every header cell is blank.
        NoDataRowsError: no non-blank line after the header.
    """
    lines = _normalize_text(text).split("\n")
    header_line = lines[0]
    headers = split_line(header_line) if header_line.strip() else []
    # A BOM can also sit directly in front of the first cell after trimming.
    if headers and headers[0].startswith(BOM):
        headers[0] = headers[0][len(BOM):].strip()
    if not any(headers):
        raise EmptyHeadersError("CSV header row is empty")

    parsed = ParsedCsv(headers=headers)
    for idx, line in enumerate(lines[1:], start=2):
        if not line.strip():
            continue
        cells = split_line(line)
        row: RawRow = {}
        for pos, header in enumerate(headers):
            row[header] = cells[pos] if pos < len(cells) else ""
        parsed.rows.append(row)
        parsed.line_numbers.append(idx)

    if not parsed.rows:
        raise NoDataRowsError("CSV has a header row but no data rows")
    return parsed
