"""
bulk_import.py – End-to-end CSV → Azure DevOps Test Case import.

Parse → Map → Project → Categorize → Execute → Aggregate → Enroll.

Stages up to mapping are hard gates: they stop the run before anything
is written.  From categorization on, a failure is recorded against the
row (or the stage) and the run continues.  Only an unexpected exception
outside row scope takes the fatal path, which fails the whole input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from aggregator import ResultAggregator
from batch_executor import BatchExecutor
from categorizer import categorize_test_cases
from config import Settings
from csv_parser import parse_test_case_file, validate_parsed_file
from errors import (
    FatalImportError,
    FileParsingError,
    ImportPipelineError,
    InvalidRequestError,
    MappingError,
)
from field_catalog import (
    COMMON_TEST_CASE_FIELDS,
    TITLE_FIELD,
    FieldCatalogCache,
    load_field_catalog,
)
from field_mapper import explicit_mapping, resolve_automatic_mapping, suggest_field_mapping
from models import (
    BulkOperationOptions,
    BulkOperationResult,
    FieldDefinition,
    MappedTestCase,
    MappingResult,
    ParsedFile,
)
from projection import generate_preview, project_test_cases
from suite_enrollment import enroll_in_suite

logger = logging.getLogger("testcase-import")

ClientFactory = Callable[[], Any]

SUGGESTION_NOTE = (
    "Review suggestedMapping; adjust as needed and pass it back as fieldMapping to import."
)
FATAL_MESSAGE = (
    "An unexpected error occurred during bulk import. "
    "Please check your file format and try again."
)


@dataclass
class BulkImportRequest:
    """Arguments of one bulk import call."""

    project: str
    file_content: str
    file_name: str
    plan_id: Optional[int] = None
    suite_id: Optional[int] = None
    preview_only: bool = False
    add_to_suite: bool = False
    batch_size: int = 10
    ignore_ids: bool = False
    field_mapping: Optional[dict[str, str]] = None
    mime_type: Optional[str] = None
    lookup_concurrency: int = 1
    work_item_type: str = "Test Case"

    def validate(self) -> None:
        if self.add_to_suite and (not self.plan_id or not self.suite_id):
            raise InvalidRequestError("planId and suiteId are required when addToSuite is true")
        if not Settings.MIN_BATCH_SIZE <= self.batch_size <= Settings.MAX_BATCH_SIZE:
            raise InvalidRequestError(
                f"batchSize must be between {Settings.MIN_BATCH_SIZE} "
                f"and {Settings.MAX_BATCH_SIZE}"
            )
        if self.lookup_concurrency < 1:
            raise InvalidRequestError("lookupConcurrency must be at least 1")

    def options(self) -> BulkOperationOptions:
        return BulkOperationOptions(
            project=self.project,
            plan_id=self.plan_id,
            suite_id=self.suite_id,
            batch_size=self.batch_size,
            add_to_suite=self.add_to_suite,
            lookup_concurrency=self.lookup_concurrency,
            work_item_type=self.work_item_type,
        )


# ── Stages 5–8 ──────────────────────────────────────────────────────────

def execute_bulk_operations(
    cases: list[MappedTestCase],
    options: BulkOperationOptions,
    connect: ClientFactory,
    catalog: Optional[FieldCatalogCache] = None,
) -> BulkOperationResult:
    """Categorize, create / update in waves, then enroll in the suite."""
    aggregator = ResultAggregator()
    if not cases:
        return aggregator.build(0)

    try:
        client = connect()

        catalog_fields: Optional[list[FieldDefinition]] = None
        if catalog is not None and any(case.extra_fields for case in cases):
            fields, from_service = load_field_catalog(
                catalog, options.project, options.work_item_type
            )
            if from_service:
                catalog_fields = fields

        to_create, to_update = categorize_test_cases(cases, client, options, aggregator)

        executor = BatchExecutor(client, options, aggregator, catalog_fields)
        executor.process(to_create, "create")
        executor.process(to_update, "update")

        result = aggregator.build(len(cases))
        result.suite_enrollment = enroll_in_suite(client, options, aggregator.successes())
    except Exception as exc:
        logger.exception("Bulk operation aborted")
        return aggregator.fatal(len(cases), FatalImportError(str(exc)))

    logger.info(
        "Bulk operation finished: %d created, %d updated, %d failed",
        len(result.created), len(result.updated), result.failures,
    )
    return result


# ── Stages 1–4 ──────────────────────────────────────────────────────────

def _parse(request: BulkImportRequest) -> ParsedFile:
    title_headers = [
        h for h, ref in (request.field_mapping or {}).items()
        if ref.lower() == TITLE_FIELD.lower()
    ]
    parsed = parse_test_case_file(request.file_content, request.file_name, request.mime_type)
    validate_parsed_file(parsed, title_headers=title_headers)
    if parsed.errors:
        raise FileParsingError(parsed.errors[0], errors=parsed.errors, warnings=parsed.warnings)
    return parsed


def _catalog_fields(
    catalog: Optional[FieldCatalogCache],
    project: str,
    work_item_type: str,
) -> tuple[list[FieldDefinition], bool]:
    if catalog is None:
        return list(COMMON_TEST_CASE_FIELDS), False
    return load_field_catalog(catalog, project, work_item_type)


def _map(
    request: BulkImportRequest,
    parsed: ParsedFile,
    catalog: Optional[FieldCatalogCache],
) -> MappingResult:
    warnings: list[str] = []
    if request.field_mapping:
        mapping, warnings = explicit_mapping(parsed.headers, request.field_mapping)
    else:
        fields, from_service = _catalog_fields(catalog, request.project, request.work_item_type)
        if not from_service:
            warnings.append("Field catalog unavailable; matched against common Test Case fields")
        mapping = resolve_automatic_mapping(parsed.headers, fields)

    result = project_test_cases(parsed, mapping, ignore_ids=request.ignore_ids)
    result.warnings[:0] = warnings
    if result.errors and not result.mapped_test_cases:
        raise MappingError(
            result.errors[0], errors=result.errors, warnings=result.warnings, stats=result.stats
        )
    return result


def _preview_payload(
    request: BulkImportRequest,
    mapping_result: MappingResult,
    connect: ClientFactory,
) -> dict[str, Any]:
    """Stages 1–5 only: lookups run, nothing is created or updated."""
    cases = mapping_result.mapped_test_cases
    aggregator = ResultAggregator()
    planned: dict[int, str] = {}

    if any(case.id is not None for case in cases):
        to_create, to_update = categorize_test_cases(
            cases, connect(), request.options(), aggregator
        )
    else:
        to_create, to_update = list(cases), []
    planned.update({c.row_index: "create" for c in to_create})
    planned.update({c.row_index: "update" for c in to_update})

    errors = list(mapping_result.errors) + [
        f"Row {e.original_row_index}: {e.error_message}" for e in aggregator.result.errors
    ]
    rows = []
    for case in cases:
        summary = case.summary()
        summary["plannedOperation"] = planned.get(case.row_index, "error")
        rows.append(summary)

    return {
        "success": True,
        "stage": "preview",
        "preview": generate_preview(mapping_result),
        "stats": mapping_result.stats,
        "errors": errors,
        "warnings": mapping_result.warnings,
        "mappedTestCases": rows,
    }


# ── Public entry points ─────────────────────────────────────────────────

def import_test_cases(
    request: BulkImportRequest,
    connect: ClientFactory,
    catalog: Optional[FieldCatalogCache] = None,
) -> dict[str, Any]:
    """Bulk import tool.  Business failures come back as ``success: false``."""
    try:
        request.validate()
        parsed = _parse(request)
        mapping_result = _map(request, parsed, catalog)

        if request.preview_only:
            return _preview_payload(request, mapping_result, connect)

        bulk = execute_bulk_operations(
            mapping_result.mapped_test_cases, request.options(), connect, catalog
        )
        bulk_dict = bulk.to_dict()
        return {
            "success": bulk.success,
            "stage": "completed",
            "preview": generate_preview(mapping_result),
            "bulkOperationResult": {
                "summary": bulk_dict["summary"],
                "created": bulk_dict["created"],
                "updated": bulk_dict["updated"],
                "errors": bulk_dict["errors"],
                "warnings": bulk_dict["warnings"],
                "suiteEnrollment": bulk_dict["suiteEnrollment"],
            },
            "fileParsingWarnings": parsed.warnings,
            "mappingWarnings": mapping_result.warnings,
            "mappingErrors": mapping_result.errors,
            "operationErrors": bulk_dict["errors"],
        }
    except ImportPipelineError as exc:
        logger.warning("Import stopped at %s: %s", exc.stage, exc)
        return exc.to_payload()
    except Exception as exc:
        logger.exception("Unexpected error during bulk import")
        return {
            "success": False,
            "stage": "fatal_error",
            "error": str(exc) or type(exc).__name__,
            "message": FATAL_MESSAGE,
        }


def suggest_mapping(
    project: str,
    file_content: str,
    file_name: str,
    catalog: Optional[FieldCatalogCache] = None,
    work_item_type: str = "Test Case",
) -> dict[str, Any]:
    """Advisory header → field mapping for a file; writes nothing."""
    try:
        parsed = parse_test_case_file(file_content, file_name)
        validate_parsed_file(parsed, require_title=False)
        if parsed.errors:
            raise FileParsingError(parsed.errors[0], errors=parsed.errors, warnings=parsed.warnings)

        fields, _ = _catalog_fields(catalog, project, work_item_type)
        suggestion = suggest_field_mapping(parsed.headers, fields)
        return {
            "success": True,
            "stage": "suggestion",
            "headers": suggestion.headers,
            "suggestedMapping": suggestion.suggested_mapping,
            "suggestions": [s.to_dict() for s in suggestion.suggestions],
            "unmappedHeaders": suggestion.unmapped_headers,
            "fieldCount": len(fields),
            "note": SUGGESTION_NOTE,
        }
    except ImportPipelineError as exc:
        return exc.to_payload()
    except Exception as exc:
        logger.exception("Unexpected error while suggesting a mapping")
        return {"success": False, "stage": "fatal_error", "error": str(exc) or type(exc).__name__}
