"""
csv_parser.py – Decode an uploaded test-case file into headers + rows.

Only CSV is accepted.  Spreadsheet formats are rejected up front rather
than being fed to the CSV reader.
"""

from __future__ import annotations

import base64
import binascii
import csv
import io
import logging
import re
from typing import Iterable, Optional

from errors import FileParsingError
from models import ParsedFile, RawRow

logger = logging.getLogger("testcase-import")

TITLE_HEADER_PATTERN = re.compile(r"title|name|summary|test case", re.IGNORECASE)

_SPREADSHEET_SUFFIXES = (".xlsx", ".xls")
EXCEL_REJECTED_MESSAGE = (
    "Excel file formats (.xlsx/.xls) are not supported. "
    "Please upload a CSV (.csv) file."
)


def is_spreadsheet(filename: str, mime_type: Optional[str] = None) -> bool:
    if filename.lower().endswith(_SPREADSHEET_SUFFIXES):
        return True
    return bool(mime_type and "spreadsheet" in mime_type.lower())


def decode_file_content(content: str) -> str:
    """Base64 → UTF-8 text; raises FileParsingError on bad input.

    Line-wrapped base64 (``base64 file.csv``, MIME style) is accepted.
    """
    try:
        raw = base64.b64decode("".join(content.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise FileParsingError(f"File content is not valid base64: {exc}") from exc
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise FileParsingError(f"File is not UTF-8 encoded text: {exc}") from exc


def _duplicates(headers: Iterable[str]) -> list[str]:
    seen: dict[str, str] = {}
    dupes: list[str] = []
    for header in headers:
        key = header.lower()
        if key in seen and header not in dupes:
            dupes.append(header)
        seen.setdefault(key, header)
    return dupes


def read_csv_text(text: str, result: ParsedFile) -> ParsedFile:
    """Split CSV text into headers and non-empty RawRows."""
    reader = csv.reader(io.StringIO(text, newline=""))
    try:
        header_record = next(reader, None)
        if header_record is None or not any(h.strip() for h in header_record):
            result.errors.append("No headers found in file")
            return result

        headers = [h.strip() for h in header_record]
        dupes = _duplicates(h for h in headers if h)
        if dupes:
            result.errors.append(f"Duplicate column headers: {', '.join(dupes)}")
            return result
        if "" in headers:
            result.warnings.append("Columns without a header were ignored")
        result.headers = [h for h in headers if h]

        # record 1 is the header row
        for row_index, record in enumerate(reader, start=2):
            if len(record) > len(headers):
                result.warnings.append(
                    f"Row {row_index}: {len(record) - len(headers)} extra value(s) ignored"
                )
            values: dict[str, str] = {}
            for header, cell in zip(headers, record):
                cell = cell.strip()
                if header and cell:
                    values[header] = cell
            if values:
                result.rows.append(RawRow(row_index=row_index, values=values))
    except csv.Error as exc:
        result.errors.append(f"CSV parsing error: {exc}")
    return result


def parse_test_case_file(
    content: str,
    filename: str,
    mime_type: Optional[str] = None,
) -> ParsedFile:
    """Decode and read the uploaded file.  Problems land in ``errors``."""
    result = ParsedFile()

    if is_spreadsheet(filename, mime_type):
        result.errors.append(EXCEL_REJECTED_MESSAGE)
        return result

    try:
        text = decode_file_content(content)
    except FileParsingError as exc:
        result.errors.append(f"Failed to parse file: {exc}")
        return result

    read_csv_text(text, result)
    logger.debug(
        "Parsed %s: %d header(s), %d row(s)", filename, len(result.headers), len(result.rows)
    )
    return result


def validate_parsed_file(
    result: ParsedFile,
    title_headers: Iterable[str] = (),
    require_title: bool = True,
) -> ParsedFile:
    """Check basic requirements once the file has been read.

    *title_headers* lists extra headers that count as the title column,
    e.g. the ones an explicit field mapping sends to System.Title.
    """
    if result.errors:
        return result

    if not result.headers:
        result.errors.append("No headers found in file")
        return result

    if not result.rows:
        result.errors.append("No data rows found in file")
        return result

    explicit = set(title_headers)
    if require_title and not any(h in explicit or TITLE_HEADER_PATTERN.search(h) for h in result.headers):
        result.errors.append(
            "No title column found. Add a column named like 'Title', 'Name', "
            "'Summary' or 'Test Case', or map one explicitly to System.Title."
        )
    return result
