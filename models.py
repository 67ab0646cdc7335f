"""
models.py – Plain data-classes shared across every module.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union


# ── Parsed file ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RawRow:
    """One data record of the uploaded CSV, keyed by header."""

    row_index: int
    values: Mapping[str, str]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, header: str, default: Optional[str] = None) -> Optional[str]:
        return self.values.get(header, default)

    def to_dict(self) -> dict[str, str]:
        return dict(self.values)


@dataclass
class ParsedFile:
    """Headers + rows decoded from the upload, with any problems found."""

    headers: list[str] = field(default_factory=list)
    rows: list[RawRow] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ── Field catalog / mapping ─────────────────────────────────────────────

@dataclass(frozen=True)
class FieldDefinition:
    """A work-item field as reported by the work item type definition."""

    reference_name: str
    name: str
    read_only: bool = False


@dataclass
class MappingCandidate:
    reference_name: str
    name: str
    score: int

    def to_dict(self) -> dict[str, Any]:
        return {"referenceName": self.reference_name, "name": self.name, "score": self.score}


@dataclass
class MappingSuggestion:
    """Best guess for a single CSV header."""

    header: str
    suggested_reference_name: Optional[str] = None
    confidence: int = 0
    reason: str = ""
    candidates: list[MappingCandidate] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "header": self.header,
            "suggestedReferenceName": self.suggested_reference_name,
            "confidence": self.confidence,
            "reason": self.reason,
        }
        if self.candidates:
            data["candidates"] = [c.to_dict() for c in self.candidates]
        return data


@dataclass
class MappingSuggestionResult:
    headers: list[str]
    suggestions: list[MappingSuggestion] = field(default_factory=list)
    unmapped_headers: list[str] = field(default_factory=list)
    suggested_mapping: dict[str, str] = field(default_factory=dict)


# ── Projection ──────────────────────────────────────────────────────────

@dataclass
class TestStep:
    """A single action + expected-result pair inside a test case."""

    __test__ = False

    action: str
    expected_result: str


@dataclass
class MappedTestCase:
    """A CSV row projected onto Test Case fields."""

    __test__ = False

    row_index: int
    title: str
    original_data: RawRow
    id: Union[int, str, None] = None
    steps: Optional[str] = None
    priority: Optional[int] = None
    area_path: Optional[str] = None
    iteration_path: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[str] = None
    automation_status: Optional[str] = None
    extra_fields: dict[str, str] = field(default_factory=dict)

    def summary(self) -> dict[str, Any]:
        """Short row description used by the preview payload."""
        return {
            "rowIndex": self.row_index,
            "title": self.title,
            "id": self.id,
            "hasSteps": bool(self.steps),
            "priority": self.priority,
            "areaPath": self.area_path,
        }


@dataclass
class MappingResult:
    mapped_test_cases: list[MappedTestCase] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    total_rows: int = 0

    @property
    def stats(self) -> dict[str, int]:
        with_id = sum(1 for tc in self.mapped_test_cases if tc.id is not None)
        return {
            "totalRows": self.total_rows,
            "validRows": len(self.mapped_test_cases),
            "rowsWithId": with_id,
            "rowsWithoutId": len(self.mapped_test_cases) - with_id,
        }


# ── Patch documents ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class AddOperation:
    path: str
    value: Any
    op = "add"

    def to_json(self) -> dict[str, Any]:
        return {"op": self.op, "path": self.path, "value": self.value}


@dataclass(frozen=True)
class ReplaceOperation:
    path: str
    value: Any
    op = "replace"

    def to_json(self) -> dict[str, Any]:
        return {"op": self.op, "path": self.path, "value": self.value}


@dataclass(frozen=True)
class RemoveOperation:
    path: str
    op = "remove"

    def to_json(self) -> dict[str, Any]:
        return {"op": self.op, "path": self.path}


PatchOperation = Union[AddOperation, ReplaceOperation, RemoveOperation]


# ── Bulk operation ──────────────────────────────────────────────────────

@dataclass
class BulkOperationOptions:
    project: str
    plan_id: Optional[int] = None
    suite_id: Optional[int] = None
    batch_size: int = 10
    add_to_suite: bool = False
    lookup_concurrency: int = 1
    work_item_type: str = "Test Case"


@dataclass
class OperationError:
    """Failure of a single row (or a synthetic whole-run entry)."""

    original_row_index: int
    title: str
    operation_kind: str                   # create | update | lookup
    error_message: str
    original_id: Union[int, str, None] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "originalRowIndex": self.original_row_index,
            "title": self.title,
            "operationKind": self.operation_kind,
            "errorMessage": self.error_message,
        }
        if self.original_id is not None:
            data["originalId"] = self.original_id
        return data


@dataclass
class TestCaseResult:
    __test__ = False

    original_row_index: int
    title: str
    work_item_id: int
    operation: str                        # created | updated
    url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "originalRowIndex": self.original_row_index,
            "title": self.title,
            "workItemId": self.work_item_id,
            "url": self.url,
            "operation": self.operation,
        }


@dataclass
class SuiteEnrollmentOutcome:
    attempted: bool = False
    test_case_ids: list[int] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "testCaseIds": list(self.test_case_ids),
            "error": self.error,
        }


@dataclass
class BulkOperationResult:
    """Summary returned after the create / update pass."""

    success: bool = False
    created: list[TestCaseResult] = field(default_factory=list)
    updated: list[TestCaseResult] = field(default_factory=list)
    errors: list[OperationError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    total_processed: int = 0
    failures: int = 0
    suite_enrollment: SuiteEnrollmentOutcome = field(default_factory=SuiteEnrollmentOutcome)

    @property
    def summary(self) -> dict[str, int]:
        return {
            "totalProcessed": self.total_processed,
            "successfulCreations": len(self.created),
            "successfulUpdates": len(self.updated),
            "failures": self.failures,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "summary": self.summary,
            "created": [r.to_dict() for r in self.created],
            "updated": [r.to_dict() for r in self.updated],
            "errors": [e.to_dict() for e in self.errors],
            "warnings": list(self.warnings),
            "suiteEnrollment": self.suite_enrollment.to_dict(),
        }
