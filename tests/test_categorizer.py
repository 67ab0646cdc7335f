"""Tests for create / update / reject categorization."""

import pytest

from aggregator import ResultAggregator
from categorizer import CREATE, ERRORED, UPDATE, categorize_test_cases, classify
from conftest import FakeWorkItemService
from models import BulkOperationOptions, MappedTestCase, RawRow


def _case(row_index, title, id=None):
    return MappedTestCase(row_index=row_index, title=title, original_data=RawRow(row_index, {}), id=id)


OPTIONS = BulkOperationOptions(project="Demo")


class TestClassify:

    def test_no_id_is_create(self, fake_service):
        assert classify(_case(2, "A"), fake_service, OPTIONS) == (CREATE, None)
        assert fake_service.lookups == []

    def test_existing_test_case_is_update(self):
        service = FakeWorkItemService(existing={42: "Test Case"})
        case = _case(2, "A", id="42")

        assert classify(case, service, OPTIONS) == (UPDATE, None)
        assert case.id == 42

    def test_invalid_id(self, fake_service):
        state, message = classify(_case(2, "A", id="TC-7"), fake_service, OPTIONS)

        assert state == ERRORED
        assert message == "Invalid test case ID: TC-7"
        assert fake_service.lookups == []

    def test_not_found_never_becomes_create(self, fake_service):
        state, message = classify(_case(2, "A", id=99), fake_service, OPTIONS)

        assert state == ERRORED
        assert message == (
            "Test case with ID 99 not found. Cannot update non-existent test case."
        )

    def test_wrong_type(self):
        service = FakeWorkItemService(existing={7: "Bug"})

        state, message = classify(_case(2, "A", id=7), service, OPTIONS)

        assert state == ERRORED
        assert message == "Work item 7 exists but is not a Test Case (type: Bug)"

    def test_lookup_failure(self):
        service = FakeWorkItemService(lookup_error=ConnectionError("timeout"))

        state, message = classify(_case(2, "A", id=7), service, OPTIONS)

        assert state == ERRORED
        assert message == "Error checking test case ID 7: timeout"


class TestCategorizeTestCases:

    @pytest.mark.parametrize("concurrency", [1, 4])
    def test_partitions_preserve_order(self, concurrency):
        service = FakeWorkItemService(existing={10: "Test Case", 11: "Test Case", 12: "Bug"})
        options = BulkOperationOptions(project="Demo", lookup_concurrency=concurrency)
        aggregator = ResultAggregator()
        cases = [
            _case(2, "new A"),
            _case(3, "upd 10", id=10),
            _case(4, "bug", id=12),
            _case(5, "new B"),
            _case(6, "upd 11", id=11),
            _case(7, "missing", id=404),
        ]

        to_create, to_update = categorize_test_cases(cases, service, options, aggregator)

        assert [c.title for c in to_create] == ["new A", "new B"]
        assert [c.title for c in to_update] == ["upd 10", "upd 11"]
        errors = aggregator.result.errors
        assert sorted(e.original_row_index for e in errors) == [4, 7]
        assert all(e.operation_kind == "lookup" for e in errors)
        assert {e.original_id for e in errors} == {12, 404}

    def test_every_row_has_one_outcome(self):
        service = FakeWorkItemService(existing={10: "Test Case"})
        aggregator = ResultAggregator()
        cases = [_case(2, "a"), _case(3, "b", id=10), _case(4, "c", id="x")]

        to_create, to_update = categorize_test_cases(cases, service, OPTIONS, aggregator)

        assert len(to_create) + len(to_update) + len(aggregator.result.errors) == len(cases)
