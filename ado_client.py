"""
ado_client.py – All Azure DevOps REST / SDK interactions.

Uses the official `azure-devops` Python SDK to read work item type
definitions and raw REST (via `requests`) for work-item create / update /
lookup and the Test-Plan suite endpoint, where the JSON-patch payloads are
sent as-is.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional
from urllib.parse import quote

import requests
from azure.devops.connection import Connection
from msrest.authentication import BasicAuthentication

from config import Settings
from errors import WorkItemNotFoundError
from field_catalog import READ_ONLY_FIELDS, WORK_ITEM_TYPE_FIELD
from models import FieldDefinition, PatchOperation

logger = logging.getLogger("testcase-import")


class ADOClient:
    """Wraps every ADO interaction needed by the test-case import."""

    def __init__(
        self,
        org_url: Optional[str] = None,
        pat: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        org_url = (org_url or Settings.ADO_ORG_URL).rstrip("/")
        pat = pat if pat is not None else Settings.ADO_PAT

        creds = BasicAuthentication("", pat)
        self._connection = Connection(base_url=org_url, creds=creds)
        self._wit = self._connection.clients.get_work_item_tracking_client()

        # REST session for the JSON-patch and suite endpoints
        self._session = requests.Session()
        self._session.auth = ("", pat)
        self._org_base = org_url
        self._timeout = timeout or Settings.HTTP_TIMEOUT
        self._api = f"api-version={Settings.ADO_API_VERSION}"
        self._json_header = {"Content-Type": "application/json"}
        self._patch_header = {"Content-Type": "application/json-patch+json"}

    def _base(self, project: str) -> str:
        return f"{self._org_base}/{quote(project, safe='')}"

    # ── Field catalog ───────────────────────────────────────────────────

    def list_work_item_type_fields(
        self, project: str, work_item_type: str
    ) -> list[FieldDefinition]:
        """Return every field defined on *work_item_type*, custom ones included."""
        fields = self._wit.get_work_item_type_fields_with_references(
            project, work_item_type
        )
        if not fields:
            raise ValueError(f"No fields found for work item type: {work_item_type}")
        return [
            FieldDefinition(
                reference_name=f.reference_name or f.name,
                name=f.name or f.reference_name,
                read_only=(f.reference_name or "").lower() in READ_ONLY_FIELDS,
            )
            for f in fields
        ]

    # ── Lookup ──────────────────────────────────────────────────────────

    def get_work_item_type(self, project: str, work_item_id: int) -> str:
        """Fetch only System.WorkItemType for *work_item_id*.

        Raises WorkItemNotFoundError when the service answers 404.
        """
        url = (
            f"{self._base(project)}/_apis/wit/workitems/{work_item_id}"
            f"?fields={WORK_ITEM_TYPE_FIELD}&{self._api}"
        )
        resp = self._session.get(url, timeout=self._timeout)
        if resp.status_code == 404:
            raise WorkItemNotFoundError(work_item_id)
        resp.raise_for_status()
        fields: dict[str, Any] = resp.json().get("fields") or {}
        return fields.get(WORK_ITEM_TYPE_FIELD, "")

    # ── Create / Update Test Case Work Items ────────────────────────────

    def create_test_case(
        self,
        project: str,
        document: Iterable[PatchOperation],
        work_item_type: str = "Test Case",
    ) -> tuple[Optional[int], Optional[str]]:
        """Create a new work item; return its (id, url)."""
        url = (
            f"{self._base(project)}/_apis/wit/workitems/"
            f"${quote(work_item_type)}?{self._api}"
        )
        resp = self._session.post(
            url,
            json=[op.to_json() for op in document],
            headers=self._patch_header,
            timeout=self._timeout,
        )
        resp.raise_for_status()
        body = resp.json()
        new_id = body.get("id")
        logger.info("Created %s #%s", work_item_type, new_id)
        return new_id, body.get("url")

    def update_test_case(
        self,
        project: str,
        work_item_id: int,
        document: Iterable[PatchOperation],
    ) -> tuple[Optional[int], Optional[str]]:
        """Patch an existing work item; return its (id, url)."""
        url = f"{self._base(project)}/_apis/wit/workitems/{work_item_id}?{self._api}"
        resp = self._session.patch(
            url,
            json=[op.to_json() for op in document],
            headers=self._patch_header,
            timeout=self._timeout,
        )
        resp.raise_for_status()
        body = resp.json()
        logger.info("Updated Test Case #%s", work_item_id)
        return body.get("id"), body.get("url")

    # ── Test Plan / Suite ───────────────────────────────────────────────

    def add_test_cases_to_suite(
        self,
        project: str,
        plan_id: int,
        suite_id: int,
        test_case_ids: list[int],
    ) -> None:
        """Add every id to the suite in one request.

        The service adds the valid ids and silently ignores the rest.
        """
        url = (
            f"{self._base(project)}/_apis/testplan/Plans/{plan_id}"
            f"/Suites/{suite_id}/TestCase?{self._api}"
        )
        body = [{"workItem": {"id": tc_id}} for tc_id in test_case_ids]
        resp = self._session.post(
            url, json=body, headers=self._json_header, timeout=self._timeout
        )
        resp.raise_for_status()
        logger.info(
            "Added %d test case(s) to suite %s (plan %s)",
            len(test_case_ids), suite_id, plan_id,
        )
