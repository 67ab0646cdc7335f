#!/usr/bin/env python3
"""
run.py – CLI entry-point for the Azure DevOps test-case importer.

Usage:
    python run.py suggest cases.csv --project Demo
    python run.py import cases.csv --project Demo --preview
    python run.py import cases.csv --project Demo --plan 12 --suite 34 --add-to-suite
"""

from __future__ import annotations

import argparse
import base64
import json
import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ado_client import ADOClient
from bulk_import import BulkImportRequest, import_test_cases, suggest_mapping
from config import Settings
from field_catalog import FieldCatalogCache

console = Console()

# ── Logging ─────────────────────────────────────────────────────────────

def _configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, markup=True)],
    )


# ── Pretty output helpers ──────────────────────────────────────────────

def _show_messages(title: str, messages: list[str], style: str) -> None:
    if messages:
        console.print(f"[{style} bold]{title}[/]")
        for message in messages:
            console.print(f"  • {message}", markup=False)


def _show_suggestion(payload: dict[str, Any]) -> None:
    table = Table(title="Suggested Field Mapping", show_lines=True)
    table.add_column("Header", style="bold")
    table.add_column("Field")
    table.add_column("Conf.", width=6, justify="right")
    table.add_column("Reason", style="dim")

    for s in payload["suggestions"]:
        table.add_row(
            s["header"],
            s["suggestedReferenceName"] or "—",
            str(s["confidence"]),
            s["reason"],
        )
    console.print(table)
    if payload["unmappedHeaders"]:
        console.print(f"[yellow]Unmapped:[/] {', '.join(payload['unmappedHeaders'])}")


def _show_preview(payload: dict[str, Any]) -> None:
    table = Table(title="Import Preview", show_lines=True)
    table.add_column("Row", style="dim", width=5)
    table.add_column("Title", style="bold")
    table.add_column("ID", width=8)
    table.add_column("Plan", width=8)
    table.add_column("Pri", width=4, justify="center")
    table.add_column("Steps", width=6, justify="center")

    for row in payload["mappedTestCases"]:
        table.add_row(
            str(row["rowIndex"]),
            row["title"],
            str(row["id"] or "—"),
            row["plannedOperation"],
            str(row["priority"] or "—"),
            "✓" if row["hasSteps"] else "",
        )
    console.print(table)
    _show_messages("Errors", payload["errors"], "red")
    _show_messages("Warnings", payload["warnings"], "yellow")


def _show_results(payload: dict[str, Any]) -> None:
    bulk = payload["bulkOperationResult"]
    summary = bulk["summary"]
    created = [r["workItemId"] for r in bulk["created"]]
    updated = [r["workItemId"] for r in bulk["updated"]]
    suite = bulk["suiteEnrollment"]

    suite_line = "[dim]not requested[/]"
    if suite["attempted"]:
        suite_line = (
            f"[red]{suite['error']}[/]" if suite["error"]
            else f"{len(suite['testCaseIds'])} test case(s) added"
        )

    console.print()
    console.print(
        Panel(
            f"[green bold]Created:[/]  {summary['successfulCreations']}  →  {created or '—'}\n"
            f"[yellow bold]Updated:[/]  {summary['successfulUpdates']}  →  {updated or '—'}\n"
            f"[red bold]Failed:[/]   {summary['failures']}\n"
            f"[blue bold]Suite:[/]    {suite_line}",
            title=f"Import Summary ({summary['totalProcessed']} rows)",
            border_style="green" if payload["success"] else "red",
        )
    )

    if bulk["errors"]:
        table = Table(title="Row Errors", show_lines=True)
        table.add_column("Row", style="dim", width=5)
        table.add_column("Title", style="bold")
        table.add_column("Op", width=7)
        table.add_column("Error")
        for e in bulk["errors"]:
            table.add_row(
                str(e["originalRowIndex"]), e["title"], e["operationKind"], e["errorMessage"]
            )
        console.print(table)
    _show_messages("Warnings", bulk["warnings"] + payload["mappingWarnings"], "yellow")


def _show_failure(payload: dict[str, Any]) -> None:
    console.print(f"\n[red bold]Import failed at stage '{payload.get('stage')}'[/]")
    if payload.get("error"):
        console.print(payload["error"], markup=False)
    _show_messages("Errors", payload.get("errors", []), "red")
    _show_messages("Warnings", payload.get("warnings", []), "yellow")


# ── Commands ───────────────────────────────────────────────────────────

def _read_file(path: str) -> str:
    return base64.b64encode(Path(path).read_bytes()).decode("ascii")


def _build_catalog(ado: ADOClient) -> FieldCatalogCache:
    return FieldCatalogCache(ado.list_work_item_type_fields, ttl=Settings.FIELD_CACHE_TTL)


def cmd_suggest(args: argparse.Namespace) -> dict[str, Any]:
    ado = ADOClient()
    payload = suggest_mapping(
        project=args.project,
        file_content=_read_file(args.file),
        file_name=Path(args.file).name,
        catalog=_build_catalog(ado),
        work_item_type=args.work_item_type,
    )
    if not args.json and payload["success"]:
        _show_suggestion(payload)
    return payload


def cmd_import(args: argparse.Namespace) -> dict[str, Any]:
    field_mapping = None
    if args.mapping:
        field_mapping = json.loads(Path(args.mapping).read_text(encoding="utf-8"))

    request = BulkImportRequest(
        project=args.project,
        file_content=_read_file(args.file),
        file_name=Path(args.file).name,
        plan_id=args.plan,
        suite_id=args.suite,
        preview_only=args.preview,
        add_to_suite=args.add_to_suite,
        batch_size=args.batch_size,
        ignore_ids=args.ignore_ids,
        field_mapping=field_mapping,
        lookup_concurrency=args.lookup_concurrency,
        work_item_type=args.work_item_type,
    )

    ado = ADOClient()
    payload = import_test_cases(request, lambda: ado, _build_catalog(ado))
    if args.json:
        return payload
    if payload["stage"] == "preview":
        _show_preview(payload)
        console.print("\n[yellow bold]PREVIEW[/] – no changes written to ADO.")
    elif payload["stage"] == "completed":
        _show_results(payload)
    return payload


# ── CLI ─────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="testcase-import",
        description="Bulk import / update Azure DevOps Test Cases from a CSV file.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug-level logging.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("file", help="Path to the CSV file.")
    common.add_argument(
        "--project",
        default=Settings.ADO_PROJECT,
        required=not Settings.ADO_PROJECT,
        help="Azure DevOps project name or ID.",
    )
    common.add_argument(
        "--work-item-type",
        default=Settings.WORK_ITEM_TYPE,
        help="Work item type to import into (default: %(default)s).",
    )
    common.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print the raw JSON payload instead of tables.",
    )

    suggest = sub.add_parser(
        "suggest", parents=[common], help="Suggest a header → field mapping."
    )
    suggest.set_defaults(func=cmd_suggest)

    imp = sub.add_parser("import", parents=[common], help="Create / update test cases.")
    imp.add_argument("--plan", type=int, default=Settings.ADO_TEST_PLAN_ID or None,
                     help="Test plan ID (needed with --add-to-suite).")
    imp.add_argument("--suite", type=int, default=Settings.ADO_TEST_SUITE_ID or None,
                     help="Test suite ID (needed with --add-to-suite).")
    imp.add_argument("--add-to-suite", action="store_true", default=False,
                     help="Add created / updated test cases to the suite.")
    imp.add_argument("--preview", action="store_true", default=False,
                     help="Parse, map and check IDs but do NOT write to ADO.")
    imp.add_argument("--batch-size", type=int, default=Settings.IMPORT_BATCH_SIZE,
                     help="Rows sent concurrently per wave, 1-50 (default: %(default)s).")
    imp.add_argument("--lookup-concurrency", type=int, default=Settings.LOOKUP_CONCURRENCY,
                     help="Concurrent ID lookups (default: %(default)s).")
    imp.add_argument("--ignore-ids", action="store_true", default=False,
                     help="Ignore ID columns and create every row as a new test case.")
    imp.add_argument("--mapping", metavar="JSON_FILE",
                     help="Explicit header → field reference name mapping.")
    imp.set_defaults(func=cmd_import)
    return parser


def main() -> None:
    args = build_parser().parse_args()

    _configure_logging(args.verbose)

    if not args.json:
        console.print(
            Panel(
                "[bold white]Test Case Import[/]  –  CSV → Azure DevOps",
                border_style="bright_magenta",
            )
        )

    Settings.validate()

    try:
        payload = args.func(args)
    except KeyboardInterrupt:
        console.print("\n[red]Aborted by user.[/]")
        sys.exit(130)
    except Exception as exc:
        console.print(f"\n[red bold]Error:[/] {exc}")
        logging.getLogger("testcase-import").debug("Traceback:", exc_info=True)
        sys.exit(1)

    if args.json:
        print(json.dumps(payload, indent=2, default=str))
    elif payload["stage"] not in ("preview", "completed", "suggestion"):
        _show_failure(payload)
    sys.exit(0 if payload["success"] else 1)


if __name__ == "__main__":
    main()
