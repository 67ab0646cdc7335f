"""Tests for patch documents and wave execution."""

import math

import pytest

from aggregator import ResultAggregator
from batch_executor import (
    SKIP_READ_ONLY,
    SKIP_UNDEFINED,
    BatchExecutor,
    build_patch_document,
    clamp_batch_size,
)
from conftest import FakeWorkItemService
from models import (
    AddOperation,
    BulkOperationOptions,
    FieldDefinition,
    MappedTestCase,
    RawRow,
    ReplaceOperation,
)


def _case(row_index, title, **kwargs):
    return MappedTestCase(row_index=row_index, title=title, original_data=RawRow(row_index, {}), **kwargs)


def _cases(count, start=2):
    return [_case(start + i, f"tc{i}") for i in range(count)]


# ── Patch documents ─────────────────────────────────────────────────────

class TestBuildPatchDocument:

    def test_create_uses_add(self):
        case = _case(2, "Login", steps="1. Open|Opens", priority=2, area_path="Proj\\Web")

        document = build_patch_document(case, "create")

        assert all(isinstance(op, AddOperation) for op in document)
        assert [op.path for op in document] == [
            "/fields/System.Title",
            "/fields/Microsoft.VSTS.TCM.Steps",
            "/fields/Microsoft.VSTS.Common.Priority",
            "/fields/System.AreaPath",
        ]
        assert document[1].value.startswith('<steps id="0" last="1">')
        assert document[0].to_json() == {"op": "add", "path": "/fields/System.Title", "value": "Login"}

    def test_update_uses_replace(self):
        document = build_patch_document(_case(2, "Login", id=42, tags="smoke"), "update")

        assert all(isinstance(op, ReplaceOperation) for op in document)
        assert document[-1].to_json() == {
            "op": "replace", "path": "/fields/System.Tags", "value": "smoke",
        }

    def test_extra_fields_do_not_duplicate_fixed_ones(self):
        case = _case(2, "Login", extra_fields={"system.title": "Other", "Custom.Risk": "High"})

        document = build_patch_document(case, "create")

        paths = [op.path.lower() for op in document]
        assert paths.count("/fields/system.title") == 1
        assert "/fields/custom.risk" in paths

    def test_unknown_custom_fields_skipped(self):
        case = _case(2, "Login", extra_fields={"Custom.Risk": "High", "Custom.Owner": "qa"})
        skipped = []
        fields = [FieldDefinition("System.Title", "Title"), FieldDefinition("custom.owner", "Owner")]

        document = build_patch_document(case, "create", fields, skipped)

        assert [op.path for op in document] == ["/fields/System.Title", "/fields/Custom.Owner"]
        assert skipped == [("Custom.Risk", SKIP_UNDEFINED)]

    def test_read_only_fields_skipped(self):
        case = _case(2, "Login", extra_fields={"System.ChangedDate": "2024-01-01", "Custom.Owner": "qa"})
        skipped = []
        fields = [
            FieldDefinition("System.ChangedDate", "Changed Date", read_only=True),
            FieldDefinition("Custom.Owner", "Owner"),
        ]

        document = build_patch_document(case, "update", fields, skipped)

        assert [op.path for op in document] == ["/fields/System.Title", "/fields/Custom.Owner"]
        assert skipped == [("System.ChangedDate", SKIP_READ_ONLY)]

    def test_no_catalog_sends_every_extra_field(self):
        case = _case(2, "Login", extra_fields={"Custom.Risk": "High"})

        document = build_patch_document(case, "create")

        assert document[-1].path == "/fields/Custom.Risk"


@pytest.mark.parametrize("given,expected", [(0, 1), (10, 10), (51, 50)])
def test_clamp_batch_size(given, expected):
    assert clamp_batch_size(given) == expected


# ── Waves ───────────────────────────────────────────────────────────────

class TestBatchExecutor:

    @pytest.mark.parametrize("rows,batch_size", [(7, 3), (4, 4), (1, 10)])
    def test_in_flight_never_exceeds_batch_size(self, rows, batch_size):
        service = FakeWorkItemService(delay=0.02)
        options = BulkOperationOptions(project="Demo", batch_size=batch_size)
        aggregator = ResultAggregator()
        executor = BatchExecutor(service, options, aggregator)

        executor.process(_cases(rows), "create")

        assert service.max_in_flight <= batch_size
        assert len(executor.batches(_cases(rows))) == math.ceil(rows / batch_size)
        assert len(aggregator.result.created) == rows

    def test_next_wave_starts_after_previous_finishes(self):
        service = FakeWorkItemService(delay=0.02)
        options = BulkOperationOptions(project="Demo", batch_size=3)
        executor = BatchExecutor(service, options, ResultAggregator())

        executor.process(_cases(8), "create")

        timing = {title: (start, end) for title, start, end in service.calls}
        waves = [[f"tc{i}" for i in range(n, min(n + 3, 8))] for n in range(0, 8, 3)]
        for current, following in zip(waves, waves[1:]):
            last_end = max(timing[t][1] for t in current)
            first_start = min(timing[t][0] for t in following)
            assert last_end <= first_start

    def test_failed_row_does_not_stop_batch(self):
        service = FakeWorkItemService(fail_titles={"tc3"})
        options = BulkOperationOptions(project="Demo", batch_size=4)
        aggregator = ResultAggregator()

        BatchExecutor(service, options, aggregator).process(_cases(6), "create")

        result = aggregator.build(6)
        assert len(result.created) == 5
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.original_row_index == 5
        assert error.operation_kind == "create"
        assert "service rejected 'tc3'" in error.error_message

    def test_update_passes_numeric_id(self):
        service = FakeWorkItemService()
        aggregator = ResultAggregator()
        case = _case(2, "Login", id=42)

        BatchExecutor(service, BulkOperationOptions(project="Demo"), aggregator).process([case], "update")

        assert service.updated[0][0] == 42
        assert aggregator.result.updated[0].work_item_id == 42

    def test_failed_update_keeps_original_id(self):
        service = FakeWorkItemService(fail_titles={"Login"})
        aggregator = ResultAggregator()

        BatchExecutor(service, BulkOperationOptions(project="Demo"), aggregator).process(
            [_case(2, "Login", id=42)], "update"
        )

        assert aggregator.result.errors[0].original_id == 42
        assert aggregator.result.errors[0].operation_kind == "update"

    def test_missing_id_in_response(self):
        class NoIdService(FakeWorkItemService):
            def create_test_case(self, project, document, work_item_type="Test Case"):
                return None, None

        aggregator = ResultAggregator()
        BatchExecutor(NoIdService(), BulkOperationOptions(project="Demo"), aggregator).process(
            [_case(2, "Login")], "create"
        )

        assert aggregator.result.errors[0].error_message == (
            "Work item was created but no ID was returned"
        )

    def test_unknown_field_warning(self):
        service = FakeWorkItemService()
        aggregator = ResultAggregator()
        cases = [
            _case(2, "A", extra_fields={"Custom.Risk": "High"}),
            _case(3, "B", extra_fields={"Custom.Risk": "Low", "System.Rev": "3"}),
        ]
        fields = [
            FieldDefinition("System.Title", "Title"),
            FieldDefinition("System.Rev", "Rev", read_only=True),
        ]

        BatchExecutor(
            service, BulkOperationOptions(project="Demo"), aggregator, fields
        ).process(cases, "create")

        assert sorted(aggregator.result.warnings) == [
            "Field 'Custom.Risk' is not defined on 'Test Case' and was not sent",
            "Field 'System.Rev' is read-only on 'Test Case' and was not sent",
        ]
        assert len(aggregator.result.created) == 2
