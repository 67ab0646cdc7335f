"""Global test configuration and fixtures."""

import base64
import os
import sys
import threading
import time
from contextlib import contextmanager

import pytest

# Ensure test modules can import the project modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import WorkItemNotFoundError  # noqa: E402
from field_catalog import COMMON_TEST_CASE_FIELDS  # noqa: E402


class FakeWorkItemService:
    """In-memory stand-in for ADOClient that records every call."""

    def __init__(self, existing=None, fail_titles=(), delay=0.0, fields=None,
                 suite_error=None, lookup_error=None):
        self.existing = dict(existing or {})          # id -> work item type
        self.fail_titles = set(fail_titles)
        self.delay = delay
        self.fields = list(fields if fields is not None else COMMON_TEST_CASE_FIELDS)
        self.suite_error = suite_error
        self.lookup_error = lookup_error

        self.lookups = []
        self.created = []
        self.updated = []
        self.suite_calls = []
        self.field_calls = 0
        self.calls = []                               # (title, start, end)

        self._lock = threading.Lock()
        self._next_id = 1000
        self.in_flight = 0
        self.max_in_flight = 0

    @contextmanager
    def _track(self, title):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        start = time.monotonic()
        try:
            if self.delay:
                time.sleep(self.delay)
            yield
        finally:
            end = time.monotonic()
            with self._lock:
                self.in_flight -= 1
                self.calls.append((title, start, end))

    @staticmethod
    def _title(document):
        return next(op.value for op in document if op.path == "/fields/System.Title")

    def get_work_item_type(self, project, work_item_id):
        with self._lock:
            self.lookups.append(work_item_id)
        if self.lookup_error is not None:
            raise self.lookup_error
        if work_item_id not in self.existing:
            raise WorkItemNotFoundError(work_item_id)
        return self.existing[work_item_id]

    def create_test_case(self, project, document, work_item_type="Test Case"):
        title = self._title(document)
        with self._track(title):
            if title in self.fail_titles:
                raise RuntimeError(f"service rejected '{title}'")
            with self._lock:
                self._next_id += 1
                new_id = self._next_id
                self.created.append((new_id, list(document)))
        return new_id, f"https://dev.azure.com/org/_apis/wit/workItems/{new_id}"

    def update_test_case(self, project, work_item_id, document):
        title = self._title(document)
        with self._track(title):
            if title in self.fail_titles:
                raise RuntimeError(f"service rejected '{title}'")
            with self._lock:
                self.updated.append((work_item_id, list(document)))
        return work_item_id, f"https://dev.azure.com/org/_apis/wit/workItems/{work_item_id}"

    def add_test_cases_to_suite(self, project, plan_id, suite_id, test_case_ids):
        self.suite_calls.append((project, plan_id, suite_id, list(test_case_ids)))
        if self.suite_error is not None:
            raise self.suite_error

    def list_work_item_type_fields(self, project, work_item_type):
        self.field_calls += 1
        return list(self.fields)


def encode_csv(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


@pytest.fixture
def fake_service():
    return FakeWorkItemService()


@pytest.fixture
def csv_b64():
    return encode_csv
