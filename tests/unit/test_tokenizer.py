"""Unit tests for cert_import.tokenizer."""

from __future__ import annotations

import csv
import io

import pytest

from cert_import.tokenizer import (
    EmptyHeadersError,
    ImportStructureError,
    NoDataRowsError,
    parse_csv,
    split_line,
)


# ---------------------------------------------------------------------------
# split_line
# ---------------------------------------------------------------------------

class TestSplitLine:
    def test_plain_cells(self):
        assert split_line("a,b,c") == ["a", "b", "c"]

    def test_quoted_comma(self):
        assert split_line('"Smith, John",x') == ["Smith, John", "x"]

    def test_escaped_quote(self):
        assert split_line('"She said ""hi"""') == ['She said "hi"']

    def test_escaped_quote_mid_cell(self):
        assert split_line('"a ""b"" c",x') == ['a "b" c', "x"]

    def test_docstring_examples_hold(self):
        assert split_line.__doc__ is not None
        assert "'\"a \"\"b\"\" c\",x'" in split_line.__doc__

    def test_quoted_comma_and_escaped_quote(self):
        assert split_line('"Doe, Jane","Says ""hi"""') == ["Doe, Jane", 'Says "hi"']

    def test_trims_cells(self):
        assert split_line("  a ,  b  ") == ["a", "b"]

    def test_empty_cells_kept(self):
        assert split_line("a,,c,") == ["a", "", "c", ""]

    def test_empty_quoted_cell(self):
        assert split_line('"",x') == ["", "x"]

    def test_round_trip_through_csv_writer(self):
        values = ["Doe, Jane", 'Says "hi"', "plain", 'a "quoted", comma']
        buf = io.StringIO()
        csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="").writerow(values)
        assert split_line(buf.getvalue()) == values


# ---------------------------------------------------------------------------
# parse_csv
# ---------------------------------------------------------------------------

class TestParseCsv:
    def test_headers_and_rows(self):
        parsed = parse_csv("Email,Name\na@x.com,CPR\nb@x.com,ACLS\n")
        assert parsed.headers == ["Email", "Name"]
        assert parsed.rows == [
            {"Email": "a@x.com", "Name": "CPR"},
            {"Email": "b@x.com", "Name": "ACLS"},
        ]
        assert parsed.line_numbers == [2, 3]

    def test_crlf_and_cr_line_endings(self):
        parsed = parse_csv("Email,Name\r\na@x.com,CPR\rb@x.com,BLS")
        assert [r["Name"] for r in parsed.rows] == ["CPR", "BLS"]

    def test_strips_bom(self):
        parsed = parse_csv("\ufeffEmail,Name\na@x.com,CPR")
        assert parsed.headers[0] == "Email"

    def test_skips_blank_lines(self):
        parsed = parse_csv("Email,Name\na@x.com,CPR\n\n   \nb@x.com,BLS\n")
        assert len(parsed.rows) == 2
        # Line numbers still point at the physical lines.
        assert parsed.line_numbers == [2, 5]

    def test_leading_whitespace_trimmed_before_header(self):
        parsed = parse_csv("\n\n  Email,Name\na@x.com,CPR")
        assert parsed.headers == ["Email", "Name"]
        assert parsed.line_numbers == [2]

    def test_header_cells_trimmed(self):
        parsed = parse_csv(" Email , Cert Name \na@x.com,CPR")
        assert parsed.headers == ["Email", "Cert Name"]

    def test_short_row_padded(self):
        parsed = parse_csv("Email,Name,Expires\na@x.com,CPR")
        assert parsed.rows[0] == {"Email": "a@x.com", "Name": "CPR", "Expires": ""}

    def test_long_row_truncated(self):
        parsed = parse_csv("Email,Name\na@x.com,CPR,extra,cells")
        assert parsed.rows[0] == {"Email": "a@x.com", "Name": "CPR"}

    def test_duplicate_headers_last_write_wins(self):
        parsed = parse_csv("Email,Name,Name\na@x.com,first,second")
        assert parsed.rows[0]["Name"] == "second"

    def test_every_row_keyed_by_headers(self):
        text = "A,B,C\n1,2,3\n4,5\n6,7,8,9\n"
        parsed = parse_csv(text)
        assert len(parsed.headers) == 3
        assert len(parsed.rows) == 3
        for row in parsed.rows:
            assert list(row.keys()) == parsed.headers

    def test_quoted_values_in_rows(self):
        parsed = parse_csv('Email,Name\n"a@x.com","Smith, John"')
        assert parsed.rows[0]["Name"] == "Smith, John"

    def test_first_line_is_header_regardless_of_content(self):
        parsed = parse_csv("a@x.com,CPR\nb@x.com,BLS")
        assert parsed.headers == ["a@x.com", "CPR"]
        assert len(parsed.rows) == 1


class TestParseCsvErrors:
    def test_empty_text(self):
        with pytest.raises(EmptyHeadersError):
            parse_csv("")

    def test_whitespace_only(self):
        with pytest.raises(EmptyHeadersError):
            parse_csv("  \n\r\n  ")

    def test_blank_header_cells(self):
        with pytest.raises(EmptyHeadersError):
            parse_csv(",,\na,b,c")

    def test_header_only(self):
        with pytest.raises(NoDataRowsError):
            parse_csv("Email,Name\n")

    def test_header_then_blank_lines(self):
        with pytest.raises(NoDataRowsError):
            parse_csv("Email,Name\n\n   \n")

    def test_structural_errors_share_base(self):
        assert issubclass(EmptyHeadersError, ImportStructureError)
        assert issubclass(NoDataRowsError, ImportStructureError)
