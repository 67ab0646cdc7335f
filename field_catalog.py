"""
field_catalog.py – Field definitions per (project, work item type), cached.

The cache is an explicit object handed to the pipeline.  Entries expire
after ``ttl`` seconds and can be dropped on demand with ``invalidate``.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from models import FieldDefinition

logger = logging.getLogger("testcase-import")

# ── Well-known Test Case fields ─────────────────────────────────────────

ID_FIELD = "System.Id"
TITLE_FIELD = "System.Title"
STEPS_FIELD = "Microsoft.VSTS.TCM.Steps"
PRIORITY_FIELD = "Microsoft.VSTS.Common.Priority"
AREA_PATH_FIELD = "System.AreaPath"
ITERATION_PATH_FIELD = "System.IterationPath"
DESCRIPTION_FIELD = "System.Description"
TAGS_FIELD = "System.Tags"
AUTOMATION_STATUS_FIELD = "Microsoft.VSTS.TCM.AutomationStatus"
ASSIGNED_TO_FIELD = "System.AssignedTo"
WORK_ITEM_TYPE_FIELD = "System.WorkItemType"

# maintained by the service; never written by an import
READ_ONLY_FIELDS = frozenset(
    ref.lower()
    for ref in (
        ID_FIELD,
        WORK_ITEM_TYPE_FIELD,
        "System.Rev",
        "System.CreatedDate",
        "System.CreatedBy",
        "System.ChangedDate",
        "System.ChangedBy",
        "System.AuthorizedDate",
        "System.RevisedDate",
        "System.Watermark",
    )
)

COMMON_TEST_CASE_FIELDS: tuple[FieldDefinition, ...] = (
    FieldDefinition(ID_FIELD, "ID", read_only=True),
    FieldDefinition(TITLE_FIELD, "Title"),
    FieldDefinition(STEPS_FIELD, "Steps"),
    FieldDefinition(PRIORITY_FIELD, "Priority"),
    FieldDefinition(AREA_PATH_FIELD, "Area Path"),
    FieldDefinition(ITERATION_PATH_FIELD, "Iteration Path"),
    FieldDefinition(DESCRIPTION_FIELD, "Description"),
    FieldDefinition(TAGS_FIELD, "Tags"),
    FieldDefinition(AUTOMATION_STATUS_FIELD, "Automation status"),
    FieldDefinition(ASSIGNED_TO_FIELD, "Assigned To"),
)

FieldFetcher = Callable[[str, str], list[FieldDefinition]]


class FieldCatalogCache:
    """get-or-fetch cache of field catalogs keyed by (project, type)."""

    def __init__(self, fetcher: FieldFetcher, ttl: float = 3600.0) -> None:
        self._fetcher = fetcher
        self._ttl = ttl
        self._entries: dict[tuple[str, str], tuple[float, list[FieldDefinition]]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(project: str, work_item_type: str) -> tuple[str, str]:
        return (project.lower(), work_item_type.lower())

    def __contains__(self, key: tuple[str, str]) -> bool:
        cache_key = self._key(*key)
        with self._lock:
            entry = self._entries.get(cache_key)
            return entry is not None and entry[0] > time.monotonic()

    def get_or_fetch(self, project: str, work_item_type: str) -> list[FieldDefinition]:
        """Return cached fields, calling the fetcher on a miss or expiry."""
        cache_key = self._key(project, work_item_type)
        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is not None and entry[0] > time.monotonic():
                return list(entry[1])

        fields = list(self._fetcher(project, work_item_type))
        logger.info(
            "Fetched %d field(s) for '%s' in project '%s'",
            len(fields), work_item_type, project,
        )
        with self._lock:
            self._entries[cache_key] = (time.monotonic() + self._ttl, fields)
        return list(fields)

    def invalidate(
        self,
        project: Optional[str] = None,
        work_item_type: Optional[str] = None,
    ) -> None:
        """Drop one entry, every entry of a project, or everything."""
        with self._lock:
            if project is None:
                self._entries.clear()
                return
            if work_item_type is not None:
                self._entries.pop(self._key(project, work_item_type), None)
                return
            for key in [k for k in self._entries if k[0] == project.lower()]:
                del self._entries[key]


def load_field_catalog(
    cache: FieldCatalogCache,
    project: str,
    work_item_type: str,
) -> tuple[list[FieldDefinition], bool]:
    """Fetch through *cache*, falling back to the common Test Case fields.

    Returns ``(fields, from_service)``.  The fallback list is never cached.
    """
    try:
        return cache.get_or_fetch(project, work_item_type), True
    except Exception as exc:
        logger.warning(
            "Failed to fetch fields for '%s', using built-in Test Case fields: %s",
            work_item_type, exc,
        )
        return list(COMMON_TEST_CASE_FIELDS), False
