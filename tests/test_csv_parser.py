"""Tests for CSV ingestion and validation."""

import base64

import pytest

from conftest import encode_csv
from csv_parser import (
    EXCEL_REJECTED_MESSAGE,
    decode_file_content,
    parse_test_case_file,
    validate_parsed_file,
)
from errors import FileParsingError


class TestParseTestCaseFile:
    """Decoding and splitting into headers + rows."""

    def test_headers_and_rows(self):
        content = encode_csv("Title, Steps ,Priority\nLogin works,1. Open app|App launches,2\n")

        result = parse_test_case_file(content, "cases.csv")

        assert result.errors == []
        assert result.headers == ["Title", "Steps", "Priority"]
        assert len(result.rows) == 1
        row = result.rows[0]
        assert row.row_index == 2
        assert row.get("Title") == "Login works"
        assert row.get("Steps") == "1. Open app|App launches"

    def test_blank_rows_skipped_without_renumbering(self):
        content = encode_csv("Title,Priority\nFirst,1\n,\nThird,3\n")

        result = parse_test_case_file(content, "cases.csv")

        assert [r.row_index for r in result.rows] == [2, 4]
        assert result.rows[1].get("Title") == "Third"

    def test_empty_cells_are_absent(self):
        content = encode_csv("Title,Area Path\nOnly title,\n")

        result = parse_test_case_file(content, "cases.csv")

        assert "Area Path" not in result.rows[0].values

    def test_quoted_multiline_cell(self):
        content = encode_csv('Title,Steps\nLogin,"1. Open|Opens\n2. Tap|Taps"\n')

        result = parse_test_case_file(content, "cases.csv")

        assert result.rows[0].get("Steps") == "1. Open|Opens\n2. Tap|Taps"

    def test_utf8_bom_is_dropped(self):
        content = base64.b64encode("﻿Title\nA\n".encode("utf-8")).decode("ascii")

        result = parse_test_case_file(content, "cases.csv")

        assert result.headers == ["Title"]

    @pytest.mark.parametrize("filename", ["cases.xlsx", "CASES.XLS"])
    def test_spreadsheet_rejected(self, filename):
        result = parse_test_case_file(encode_csv("Title\nA\n"), filename)

        assert result.errors == [EXCEL_REJECTED_MESSAGE]
        assert result.rows == []

    def test_spreadsheet_mime_rejected(self):
        result = parse_test_case_file(
            encode_csv("Title\nA\n"),
            "upload",
            mime_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )

        assert result.errors == [EXCEL_REJECTED_MESSAGE]

    def test_duplicate_headers_rejected(self):
        result = parse_test_case_file(encode_csv("Title,Priority,title\nA,1,B\n"), "c.csv")

        assert result.errors == ["Duplicate column headers: title"]

    def test_invalid_base64(self):
        result = parse_test_case_file("not base64!!", "cases.csv")

        assert len(result.errors) == 1
        assert result.errors[0].startswith("Failed to parse file")

    def test_rows_are_immutable(self):
        result = parse_test_case_file(encode_csv("Title\nA\n"), "cases.csv")

        with pytest.raises(TypeError):
            result.rows[0].values["Title"] = "changed"


class TestDecodeFileContent:

    def test_line_wrapped_base64(self):
        text = "Title,Description\n" + "".join(
            f"Case {i},{'long description ' * 4}\n" for i in range(5)
        )
        wrapped = base64.encodebytes(text.encode("utf-8")).decode("ascii")
        assert "\n" in wrapped.strip()

        assert decode_file_content(wrapped) == text

        result = parse_test_case_file(wrapped, "cases.csv")
        assert result.errors == []
        assert len(result.rows) == 5

    def test_non_utf8_raises(self):
        content = base64.b64encode(b"\xff\xfe\x00bad").decode("ascii")

        with pytest.raises(FileParsingError):
            decode_file_content(content)


class TestValidateParsedFile:

    def test_no_data_rows(self):
        result = validate_parsed_file(parse_test_case_file(encode_csv("Title\n"), "c.csv"))

        assert result.errors == ["No data rows found in file"]

    def test_missing_title_column(self):
        parsed = parse_test_case_file(encode_csv("Heading,Priority\nA,1\n"), "c.csv")

        result = validate_parsed_file(parsed)

        assert len(result.errors) == 1
        assert "No title column found" in result.errors[0]

    def test_explicit_title_header_accepted(self):
        parsed = parse_test_case_file(encode_csv("Heading,Priority\nA,1\n"), "c.csv")

        result = validate_parsed_file(parsed, title_headers=["Heading"])

        assert result.errors == []

    @pytest.mark.parametrize("header", ["Test Case Name", "Summary", "TITLE"])
    def test_title_like_headers(self, header):
        parsed = parse_test_case_file(encode_csv(f"{header}\nA\n"), "c.csv")

        assert validate_parsed_file(parsed).errors == []
