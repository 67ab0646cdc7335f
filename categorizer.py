"""
categorizer.py – Decide per row whether to create, update or reject.

    no id               → create
    non-numeric id      → error (invalid id)
    id not found        → error, never reinterpreted as a create
    id of another type  → error (exists but is not a Test Case)
    id of a Test Case   → update

Lookups go through a thread pool bounded by ``lookup_concurrency``;
the default of 1 checks the rows one after another.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from aggregator import ResultAggregator
from errors import WorkItemNotFoundError
from models import BulkOperationOptions, MappedTestCase

logger = logging.getLogger("testcase-import")

CREATE, UPDATE, ERRORED = "create", "update", "errored"


def _coerce_id(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def classify(
    case: MappedTestCase,
    client,
    options: BulkOperationOptions,
) -> tuple[str, Optional[str]]:
    """Return ``(state, error_message)`` for one row without recording anything."""
    if case.id is None or case.id == "":
        return CREATE, None

    numeric_id = _coerce_id(case.id)
    if numeric_id is None:
        return ERRORED, f"Invalid test case ID: {case.id}"

    try:
        work_item_type = client.get_work_item_type(options.project, numeric_id)
    except WorkItemNotFoundError:
        return ERRORED, (
            f"Test case with ID {case.id} not found. "
            "Cannot update non-existent test case."
        )
    except Exception as exc:
        return ERRORED, f"Error checking test case ID {case.id}: {exc}"

    if work_item_type != options.work_item_type:
        return ERRORED, (
            f"Work item {numeric_id} exists but is not a Test Case "
            f"(type: {work_item_type})"
        )

    case.id = numeric_id
    return UPDATE, None


def categorize_test_cases(
    cases: list[MappedTestCase],
    client,
    options: BulkOperationOptions,
    aggregator: ResultAggregator,
) -> tuple[list[MappedTestCase], list[MappedTestCase]]:
    """Split *cases* into (to_create, to_update); record the rejected rows."""
    workers = max(1, options.lookup_concurrency)
    original_ids = [case.id for case in cases]

    if workers == 1:
        outcomes = [classify(case, client, options) for case in cases]
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            outcomes = list(
                executor.map(lambda case: classify(case, client, options), cases)
            )

    to_create: list[MappedTestCase] = []
    to_update: list[MappedTestCase] = []
    for case, original_id, (state, message) in zip(cases, original_ids, outcomes):
        if state == CREATE:
            to_create.append(case)
        elif state == UPDATE:
            to_update.append(case)
        else:
            aggregator.record_error(case, "lookup", message or "", original_id)

    logger.info(
        "Categorized %d row(s): %d to create, %d to update, %d rejected",
        len(cases), len(to_create), len(to_update),
        len(cases) - len(to_create) - len(to_update),
    )
    return to_create, to_update
