"""
batch_executor.py – Create / update test cases in bounded waves.

A partition of R rows is cut into ceil(R / B) batches of B = batch_size.
The rows of one batch run concurrently on B worker threads; the next
batch starts only when every row of the current one has finished.  At
most B remote calls are therefore in flight at any time.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Iterable, Optional

from aggregator import ResultAggregator
from config import Settings
from field_catalog import (
    AREA_PATH_FIELD,
    AUTOMATION_STATUS_FIELD,
    DESCRIPTION_FIELD,
    ITERATION_PATH_FIELD,
    PRIORITY_FIELD,
    STEPS_FIELD,
    TAGS_FIELD,
    TITLE_FIELD,
)
from models import (
    AddOperation,
    BulkOperationOptions,
    FieldDefinition,
    MappedTestCase,
    PatchOperation,
    ReplaceOperation,
)
from steps_format import convert_steps_to_xml

logger = logging.getLogger("testcase-import")

_FIXED_FIELDS = frozenset(
    ref.lower()
    for ref in (
        TITLE_FIELD,
        STEPS_FIELD,
        PRIORITY_FIELD,
        AREA_PATH_FIELD,
        "System.Area Path",
        ITERATION_PATH_FIELD,
        "System.Iteration Path",
        DESCRIPTION_FIELD,
        TAGS_FIELD,
        AUTOMATION_STATUS_FIELD,
    )
)


def clamp_batch_size(batch_size: int) -> int:
    return max(Settings.MIN_BATCH_SIZE, min(Settings.MAX_BATCH_SIZE, int(batch_size)))


def _field_op(kind: str, reference_name: str, value) -> PatchOperation:
    path = f"/fields/{reference_name}"
    if kind == "create":
        return AddOperation(path, value)
    return ReplaceOperation(path, value)


SKIP_UNDEFINED = "not defined"
SKIP_READ_ONLY = "read-only"


def build_patch_document(
    case: MappedTestCase,
    kind: str,
    fields: Optional[Iterable[FieldDefinition]] = None,
    skipped: Optional[list[tuple[str, str]]] = None,
) -> list[PatchOperation]:
    """JSON-patch for one row; ``add`` for create, ``replace`` for update.

    With a field catalog in *fields*, extra fields it does not define or
    marks read-only are left out and ``(reference_name, reason)`` is
    appended to *skipped*.
    """
    document: list[PatchOperation] = [_field_op(kind, TITLE_FIELD, case.title)]

    if case.steps:
        document.append(_field_op(kind, STEPS_FIELD, convert_steps_to_xml(case.steps)))
    if case.priority:
        document.append(_field_op(kind, PRIORITY_FIELD, case.priority))
    if case.area_path:
        document.append(_field_op(kind, AREA_PATH_FIELD, case.area_path))
    if case.iteration_path:
        document.append(_field_op(kind, ITERATION_PATH_FIELD, case.iteration_path))
    if case.description:
        document.append(_field_op(kind, DESCRIPTION_FIELD, case.description))
    if case.tags:
        document.append(_field_op(kind, TAGS_FIELD, case.tags))
    if case.automation_status:
        document.append(_field_op(kind, AUTOMATION_STATUS_FIELD, case.automation_status))

    catalog = {f.reference_name.lower(): f for f in fields} if fields is not None else None
    for reference_name, value in case.extra_fields.items():
        if value is None or value == "":
            continue
        if reference_name.lower() in _FIXED_FIELDS:
            continue
        if catalog is not None:
            definition = catalog.get(reference_name.lower())
            reason = None
            if definition is None:
                reason = SKIP_UNDEFINED
            elif definition.read_only:
                reason = SKIP_READ_ONLY
            if reason is not None:
                if skipped is not None:
                    skipped.append((reference_name, reason))
                continue
        document.append(_field_op(kind, reference_name, value))

    return document


class BatchExecutor:
    """Runs create or update calls for one partition of rows."""

    def __init__(
        self,
        client,
        options: BulkOperationOptions,
        aggregator: ResultAggregator,
        fields: Optional[Iterable[FieldDefinition]] = None,
    ) -> None:
        self._client = client
        self._options = options
        self._aggregator = aggregator
        self._fields = tuple(fields) if fields is not None else None
        self._batch_size = clamp_batch_size(options.batch_size)

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def batches(self, cases: list[MappedTestCase]) -> list[list[MappedTestCase]]:
        size = self._batch_size
        return [cases[i:i + size] for i in range(0, len(cases), size)]

    def process(self, cases: list[MappedTestCase], kind: str) -> None:
        """Run every row of *cases* as ``kind`` ('create' or 'update')."""
        batches = self.batches(cases)
        for number, batch in enumerate(batches, start=1):
            logger.debug(
                "%s wave %d/%d: %d row(s)", kind.capitalize(), number, len(batches), len(batch)
            )
            with ThreadPoolExecutor(max_workers=self._batch_size) as executor:
                futures = [executor.submit(self._run_row, case, kind) for case in batch]
                wait(futures)

    def _run_row(self, case: MappedTestCase, kind: str) -> None:
        try:
            skipped: list[tuple[str, str]] = []
            document = build_patch_document(case, kind, self._fields, skipped)
            for reference_name, reason in skipped:
                verb = "is not defined on" if reason == SKIP_UNDEFINED else "is read-only on"
                self._aggregator.add_warning(
                    f"Field '{reference_name}' {verb} "
                    f"'{self._options.work_item_type}' and was not sent"
                )

            if kind == "create":
                work_item_id, url = self._client.create_test_case(
                    self._options.project, document, self._options.work_item_type
                )
                if not work_item_id:
                    self._aggregator.record_error(
                        case, "create", "Work item was created but no ID was returned"
                    )
                    return
                self._aggregator.record_created(case, work_item_id, url)
            else:
                work_item_id, url = self._client.update_test_case(
                    self._options.project, int(case.id), document
                )
                if not work_item_id:
                    self._aggregator.record_error(
                        case,
                        "update",
                        "Work item update completed but no confirmation received",
                        case.id,
                    )
                    return
                self._aggregator.record_updated(case, work_item_id, url)
        except Exception as exc:
            logger.warning("Row %d: %s failed: %s", case.row_index, kind, exc)
            self._aggregator.record_error(
                case, kind, str(exc) or type(exc).__name__,
                case.id if kind == "update" else None,
            )
