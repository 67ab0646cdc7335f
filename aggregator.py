"""
aggregator.py – Thread-safe collection of per-row outcomes.

Rows of one batch finish on different worker threads, so every record
call takes the lock.  A row index can be recorded only once.
"""

from __future__ import annotations

import logging
import threading
from typing import Union

from models import (
    BulkOperationResult,
    MappedTestCase,
    OperationError,
    TestCaseResult,
)

logger = logging.getLogger("testcase-import")


class ResultAggregator:
    """Accumulates created / updated / errored rows into one result."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._result = BulkOperationResult()
        self._seen: set[int] = set()

    def _claim(self, row_index: int) -> None:
        if row_index in self._seen:
            raise ValueError(f"Row {row_index} already has a recorded outcome")
        self._seen.add(row_index)

    def record_created(self, case: MappedTestCase, work_item_id: int, url: str | None = None) -> None:
        with self._lock:
            self._claim(case.row_index)
            self._result.created.append(
                TestCaseResult(case.row_index, case.title, work_item_id, "created", url)
            )

    def record_updated(self, case: MappedTestCase, work_item_id: int, url: str | None = None) -> None:
        with self._lock:
            self._claim(case.row_index)
            self._result.updated.append(
                TestCaseResult(case.row_index, case.title, work_item_id, "updated", url)
            )

    def record_error(
        self,
        case: MappedTestCase,
        operation_kind: str,
        message: str,
        original_id: Union[int, str, None] = None,
    ) -> None:
        with self._lock:
            self._claim(case.row_index)
            self._result.errors.append(
                OperationError(case.row_index, case.title, operation_kind, message, original_id)
            )
        logger.debug("Row %d (%s) failed: %s", case.row_index, operation_kind, message)

    def add_warning(self, message: str) -> None:
        with self._lock:
            if message not in self._result.warnings:
                self._result.warnings.append(message)

    @property
    def result(self) -> BulkOperationResult:
        return self._result

    def successes(self) -> list[TestCaseResult]:
        with self._lock:
            return self._result.created + self._result.updated

    def build(self, total: int) -> BulkOperationResult:
        """Finalise counts once every row has been processed."""
        with self._lock:
            result = self._result
            result.created.sort(key=lambda r: r.original_row_index)
            result.updated.sort(key=lambda r: r.original_row_index)
            result.errors.sort(key=lambda e: e.original_row_index)
            result.total_processed = total
            result.failures = len(result.errors)
            result.success = not result.errors
            return result

    def fatal(self, total: int, exc: BaseException) -> BulkOperationResult:
        """Whole-run failure: one synthetic error and every row counted as failed."""
        with self._lock:
            result = self._result
            result.errors.append(
                OperationError(
                    original_row_index=0,
                    title="Bulk Operation",
                    operation_kind="create",
                    error_message=f"Fatal error during bulk operation: {exc}",
                )
            )
            result.total_processed = total
            result.failures = total
            result.success = False
            return result
