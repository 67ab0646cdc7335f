"""
suite_enrollment.py – Put the imported test cases into a Test Suite.

All successful ids go out in a single request.  The service ignores ids
it cannot add instead of failing, so the only failure reported here is
the request as a whole.
"""

from __future__ import annotations

import logging

from errors import SuiteEnrollmentError
from models import BulkOperationOptions, SuiteEnrollmentOutcome, TestCaseResult

logger = logging.getLogger("testcase-import")


def should_enroll(options: BulkOperationOptions, successes: list[TestCaseResult]) -> bool:
    return bool(
        options.add_to_suite and options.plan_id and options.suite_id and successes
    )


def enroll_in_suite(
    client,
    options: BulkOperationOptions,
    successes: list[TestCaseResult],
) -> SuiteEnrollmentOutcome:
    """Add every successful work item to the configured suite."""
    outcome = SuiteEnrollmentOutcome()
    if not should_enroll(options, successes):
        return outcome

    ids = list(dict.fromkeys(r.work_item_id for r in successes))
    outcome.attempted = True
    outcome.test_case_ids = ids
    try:
        client.add_test_cases_to_suite(options.project, options.plan_id, options.suite_id, ids)
    except Exception as exc:
        error = SuiteEnrollmentError(
            f"Failed to add test cases to suite {options.suite_id}: {exc}"
        )
        logger.error("%s", error)
        outcome.error = str(error)
    return outcome
