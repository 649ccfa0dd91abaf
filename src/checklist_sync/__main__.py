from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from contextlib import AsyncExitStack
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from .config import load_config
from .db_connector import DatabaseSession
from .document import ChecklistDocument, ChecklistKind
from .errors import ChecklistSyncError
from .logging_utils import setup_logging
from .media import MediaUploader
from .models import AppConfig
from .notifier import WorkflowNotifier
from .orchestrator import ChecklistSession, FinalizeFields
from .progress import all_sections_progress, overall_progress
from .schema_init import apply_schema
from .storage_client import ObjectStorageClient

console = Console()
LOGGER = logging.getLogger("checklist_sync")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="checklist-sync",
        description="Synchronise inspection checklists with the relational store.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-schema", help="Create the checklist tables if missing")

    kinds = [kind.value for kind in ChecklistKind]
    show = commands.add_parser("show", help="Print a stored checklist as JSON")
    show.add_argument("property_id")
    show.add_argument("kind", choices=kinds)

    save_all = commands.add_parser("save-all", help="Save every section of a document")
    save_all.add_argument("property_id")
    save_all.add_argument("kind", choices=kinds)
    save_all.add_argument("document", type=Path, help="Checklist document JSON file")

    finalize = commands.add_parser("finalize", help="Save and complete a checklist")
    finalize.add_argument("property_id")
    finalize.add_argument("kind", choices=kinds)
    finalize.add_argument("--estimated-visit-date")
    finalize.add_argument("--auto-visit-date")
    finalize.add_argument("--next-reno-steps")
    return parser


def _progress_table(session: ChecklistSession) -> Table:
    document = session.get_document()
    table = Table(title=f"{session.property_id} ({session.kind.value})")
    table.add_column("Section")
    table.add_column("Progress", justify="right")
    for section_id, value in all_sections_progress(document).items():
        table.add_row(section_id, f"{value}%")
    table.add_row("overall", f"{overall_progress(document)}%", style="bold")
    return table


async def run_command(args: argparse.Namespace, config: AppConfig) -> int:
    async with AsyncExitStack() as stack:
        database = await stack.enter_async_context(DatabaseSession(config.database))
        storage = await stack.enter_async_context(ObjectStorageClient(config.storage))
        notifier = await stack.enter_async_context(WorkflowNotifier(config.notifier))
        store = database.store()
        session = ChecklistSession(
            store,
            args.property_id,
            ChecklistKind(args.kind),
            uploader=MediaUploader(storage, config.storage.max_concurrency),
            notifier=notifier,
            properties=store,
            config=config.sync,
        )
        document = await session.load()

        if args.command == "show":
            console.print_json(document.model_dump_json())
            console.print(_progress_table(session))
            return 0

        if args.command == "save-all":
            incoming = ChecklistDocument.model_validate_json(
                args.document.read_text(encoding="utf-8")
            )
            for section_id, section in incoming.sections.items():
                session.update_section(section_id, section)
            await session.save_all_sections()
            await session.drain()
            console.print(_progress_table(session))
            return 0

        fields = FinalizeFields(
            estimated_visit_date=args.estimated_visit_date,
            auto_visit_date=args.auto_visit_date,
            next_reno_steps=args.next_reno_steps,
        )
        finalized = await session.finalize(fields)
        await session.drain()
        if finalized:
            console.print(f"[green]Finalised {args.kind} checklist of {args.property_id}")
            return 0
        console.print("[yellow]Checklist was not finalised; see the log for details")
        return 4


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        config = load_config()
    except Exception as exc:  # pragma: no cover - guard for CLI usage
        setup_logging(console=console)
        LOGGER.error("Configuration error: %s", exc)
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)
    setup_logging(config.log_level, console=console)

    if args.command == "init-schema":
        applied = apply_schema(config.database.url, config.database.schema_resource)
        console.print("Schema applied" if applied else "Schema already present")
        return

    try:
        sys.exit(asyncio.run(run_command(args, config)))
    except ChecklistSyncError as exc:
        LOGGER.error("%s", exc)
        print(f"Checklist error: {exc}", file=sys.stderr)
        sys.exit(2)
    except Exception as exc:  # pragma: no cover - guard for CLI usage
        LOGGER.exception("Command failed")
        print(f"Command failed: {exc}", file=sys.stderr)
        sys.exit(3)


if __name__ == "__main__":
    main()
