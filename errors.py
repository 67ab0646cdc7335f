"""
errors.py – Exception taxonomy for the import pipeline.

Parsing and mapping errors are hard gates that stop the run before any
remote call.  Lookup and suite errors are caught close to where they
happen and recorded in the result instead of propagating.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional


class ImportPipelineError(Exception):
    """Base class for every error raised by the import pipeline."""

    stage = "pipeline"

    def __init__(
        self,
        message: str = "",
        errors: Optional[Iterable[str]] = None,
        warnings: Optional[Iterable[str]] = None,
        stats: Optional[dict[str, int]] = None,
    ) -> None:
        super().__init__(message)
        self.errors = list(errors) if errors is not None else ([message] if message else [])
        self.warnings = list(warnings or [])
        self.stats = stats

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "stage": self.stage,
            "errors": self.errors,
            "warnings": self.warnings,
        }
        if self.stats is not None:
            payload["stats"] = self.stats
        return payload


class InvalidRequestError(ImportPipelineError):
    """Request arguments are inconsistent or out of range."""

    stage = "validation"

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["error"] = str(self)
        return payload


class FileParsingError(ImportPipelineError):
    """The uploaded file could not be decoded or read as CSV."""

    stage = "file_parsing"


class MappingError(ImportPipelineError):
    """No row could be mapped onto Test Case fields."""

    stage = "field_mapping"


class WorkItemLookupError(ImportPipelineError):
    """Fetching an existing work item by id failed."""

    stage = "lookup"

    def __init__(self, work_item_id: int, message: str = "") -> None:
        self.work_item_id = work_item_id
        super().__init__(message or f"Lookup of work item {work_item_id} failed")


class WorkItemNotFoundError(WorkItemLookupError):
    """The remote service reports that the work item does not exist."""

    def __init__(self, work_item_id: int) -> None:
        super().__init__(work_item_id, f"Work item {work_item_id} not found")


class SuiteEnrollmentError(ImportPipelineError):
    """Adding the imported test cases to a suite failed as a whole."""

    stage = "suite_enrollment"


class FatalImportError(ImportPipelineError):
    """Unexpected failure outside the scope of a single row."""

    stage = "fatal_error"
