"""Tests for the result aggregator."""

import threading

import pytest

from aggregator import ResultAggregator
from models import MappedTestCase, RawRow


def _case(row_index, title="T"):
    return MappedTestCase(row_index=row_index, title=title, original_data=RawRow(row_index, {}))


def test_build_sorts_and_counts():
    agg = ResultAggregator()
    agg.record_created(_case(5, "e"), 105)
    agg.record_created(_case(2, "b"), 102)
    agg.record_updated(_case(4, "d"), 44)
    agg.record_error(_case(3, "c"), "create", "boom")

    result = agg.build(4)

    assert [r.original_row_index for r in result.created] == [2, 5]
    assert result.updated[0].operation == "updated"
    assert result.total_processed == 4
    assert result.failures == 1
    assert result.success is False
    assert result.summary == {
        "totalProcessed": 4,
        "successfulCreations": 2,
        "successfulUpdates": 1,
        "failures": 1,
    }


def test_clean_run_is_success():
    agg = ResultAggregator()
    agg.record_created(_case(2), 1)

    assert agg.build(1).success is True


def test_row_recorded_once():
    agg = ResultAggregator()
    agg.record_created(_case(2), 1)

    with pytest.raises(ValueError):
        agg.record_error(_case(2), "create", "again")


def test_warnings_deduplicated():
    agg = ResultAggregator()
    agg.add_warning("Field 'Custom.X' was not sent")
    agg.add_warning("Field 'Custom.X' was not sent")

    assert agg.result.warnings == ["Field 'Custom.X' was not sent"]


def test_concurrent_records():
    agg = ResultAggregator()
    threads = [
        threading.Thread(target=agg.record_created, args=(_case(i), i))
        for i in range(2, 52)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    result = agg.build(50)
    assert len(result.created) == 50
    assert [r.original_row_index for r in result.created] == list(range(2, 52))


def test_fatal_fails_every_row():
    agg = ResultAggregator()
    agg.record_created(_case(2), 1)

    result = agg.fatal(3, RuntimeError("connection lost"))

    assert result.success is False
    assert result.failures == 3
    assert result.total_processed == 3
    fatal = result.errors[-1]
    assert fatal.original_row_index == 0
    assert fatal.title == "Bulk Operation"
    assert fatal.operation_kind == "create"
    assert fatal.error_message == "Fatal error during bulk operation: connection lost"
