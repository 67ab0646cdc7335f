"""
projection.py – Apply a resolved header mapping to parsed rows.

Produces one MappedTestCase per usable row.  Rows without a title are
reported and left out; everything else that is mapped but not a
well-known Test Case field is carried in ``extra_fields``.
"""

from __future__ import annotations

import logging
import re
from typing import Mapping, Optional

from field_catalog import (
    AREA_PATH_FIELD,
    AUTOMATION_STATUS_FIELD,
    DESCRIPTION_FIELD,
    ID_FIELD,
    ITERATION_PATH_FIELD,
    PRIORITY_FIELD,
    STEPS_FIELD,
    TAGS_FIELD,
    TITLE_FIELD,
)
from models import MappedTestCase, MappingResult, ParsedFile, RawRow
from steps_format import STEP_DELIMITER

logger = logging.getLogger("testcase-import")

IGNORE_IDS_WARNING = (
    "ignoreIds=true: All IDs were removed; all rows will be created as new test cases."
)
NO_TITLE_MAPPING_MESSAGE = "Field mapping does not map any header to 'System.Title'."

# lower-cased reference name → MappedTestCase attribute
_TEXT_FIELDS = {
    STEPS_FIELD.lower(): "steps",
    AREA_PATH_FIELD.lower(): "area_path",
    "system.area path": "area_path",
    ITERATION_PATH_FIELD.lower(): "iteration_path",
    "system.iteration path": "iteration_path",
    DESCRIPTION_FIELD.lower(): "description",
    TAGS_FIELD.lower(): "tags",
    AUTOMATION_STATUS_FIELD.lower(): "automation_status",
}

_ACTION_HEADER = re.compile(r"step\s*action|^\s*actions?\s*$", re.IGNORECASE)
_EXPECTED_HEADER = re.compile(r"step\s*expected|^\s*expected(\s*results?)?\s*$", re.IGNORECASE)


def parse_int(value: str) -> Optional[int]:
    try:
        return int(value.strip())
    except (TypeError, ValueError):
        return None


def _title_header(mapping: Mapping[str, str]) -> Optional[str]:
    return next(
        (h for h, ref in mapping.items() if ref.lower() == TITLE_FIELD.lower()), None
    )


def find_step_columns(
    headers: list[str],
    mapping: Mapping[str, str],
) -> tuple[Optional[str], Optional[str]]:
    """Return the (action, expected) columns when no header maps to Steps."""
    if any(ref.lower() == STEPS_FIELD.lower() for ref in mapping.values()):
        return None, None
    action = next((h for h in headers if _ACTION_HEADER.search(h)), None)
    expected = next((h for h in headers if _EXPECTED_HEADER.search(h)), None)
    return action, expected


def synthesize_steps(row: RawRow, action_header: Optional[str], expected_header: Optional[str]) -> Optional[str]:
    """Build ``"1. <action>|<expected>"`` from separate step columns."""
    action = (row.get(action_header) or "").strip() if action_header else ""
    expected = (row.get(expected_header) or "").strip() if expected_header else ""
    if not action and not expected:
        return None
    return f"1. {action}{STEP_DELIMITER}{expected}"


def map_row(
    row: RawRow,
    mapping: Mapping[str, str],
    skip_headers: frozenset[str] = frozenset(),
) -> tuple[Optional[MappedTestCase], list[str]]:
    """Project one row.  Returns ``(None, [error])`` when it has no title."""
    warnings: list[str] = []
    title_header = _title_header(mapping)
    title = (row.get(title_header) or "").strip() if title_header else ""
    if not title:
        return None, [f"Row {row.row_index}: missing title"]

    case = MappedTestCase(row_index=row.row_index, title=title, original_data=row)

    for header, reference_name in mapping.items():
        if header == title_header or header in skip_headers:
            continue
        value = row.get(header)
        if value is None or value == "":
            continue
        ref = reference_name.lower()

        if ref == TITLE_FIELD.lower():
            continue
        if ref == ID_FIELD.lower():
            numeric = parse_int(value)
            case.id = numeric if numeric is not None else value.strip()
        elif ref == PRIORITY_FIELD.lower():
            priority = parse_int(value)
            if priority is not None and 1 <= priority <= 4:
                case.priority = priority
            else:
                warnings.append(
                    f"Row {row.row_index}: priority '{value}' ignored (expected 1-4)"
                )
        elif ref in _TEXT_FIELDS:
            setattr(case, _TEXT_FIELDS[ref], value.strip())
        else:
            case.extra_fields[reference_name] = value
    return case, warnings


def project_test_cases(
    parsed: ParsedFile,
    mapping: Mapping[str, str],
    ignore_ids: bool = False,
) -> MappingResult:
    """Build MappedTestCases for every row of *parsed*."""
    result = MappingResult(total_rows=len(parsed.rows))

    if _title_header(mapping) is None:
        result.errors.append(NO_TITLE_MAPPING_MESSAGE)
        return result

    action_header, expected_header = find_step_columns(parsed.headers, mapping)
    skip = frozenset(h for h in (action_header, expected_header) if h)
    synthesized = 0

    for row in parsed.rows:
        try:
            case, messages = map_row(row, mapping, skip)
        except Exception as exc:
            result.errors.append(f"Row {row.row_index}: {exc}")
            continue
        if case is None:
            result.errors.extend(messages)
            continue
        result.warnings.extend(messages)

        if not case.steps and skip:
            case.steps = synthesize_steps(row, action_header, expected_header)
            if case.steps:
                synthesized += 1
        result.mapped_test_cases.append(case)

    if synthesized:
        result.warnings.append(
            f"Steps synthesized from '{action_header}' / '{expected_header}' "
            f"columns for {synthesized} row(s)"
        )

    if ignore_ids:
        for case in result.mapped_test_cases:
            case.id = None
        result.warnings.append(IGNORE_IDS_WARNING)

    applied = ", ".join(f"{h} -> {ref}" for h, ref in mapping.items())
    if applied:
        result.warnings.append(f"Field mapping applied: {applied}")

    logger.info(
        "Mapped %d of %d row(s) to test cases", len(result.mapped_test_cases), result.total_rows
    )
    return result


def generate_preview(result: MappingResult, max_rows: int = 5) -> str:
    """Markdown preview of what an import would do."""
    stats = result.stats
    lines = [
        "## Test Case Import Preview",
        "",
        "### Statistics:",
        f"- Total rows processed: {stats['totalRows']}",
        f"- Valid test cases: {stats['validRows']}",
        f"- Test cases with ID (will be updated): {stats['rowsWithId']}",
        f"- Test cases without ID (will be created): {stats['rowsWithoutId']}",
        "",
    ]
    if result.errors:
        lines.append(f"### Errors ({len(result.errors)}):")
        lines.extend(f"- {e}" for e in result.errors)
        lines.append("")
    if result.warnings:
        lines.append(f"### Warnings ({len(result.warnings)}):")
        lines.extend(f"- {w}" for w in result.warnings)
        lines.append("")

    cases = result.mapped_test_cases
    if cases:
        shown = cases[:max_rows]
        lines.append(f"### Sample Test Cases (showing first {len(shown)}):")
        lines.append("")
        for n, tc in enumerate(shown, start=1):
            lines.append(f"**{n}. {tc.title}**")
            if tc.id is not None:
                lines.append(f"   - ID: {tc.id} (will update existing)")
            if tc.priority:
                lines.append(f"   - Priority: {tc.priority}")
            if tc.area_path:
                lines.append(f"   - Area Path: {tc.area_path}")
            if tc.steps:
                steps = tc.steps if len(tc.steps) <= 100 else tc.steps[:100] + "..."
                lines.append(f"   - Steps: {steps}")
            lines.append("")
        if len(cases) > max_rows:
            lines.append(f"... and {len(cases) - max_rows} more test cases")
            lines.append("")
    return "\n".join(lines)
