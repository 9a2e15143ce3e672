#!/usr/bin/env python3
"""CLI for the file-backed CRM store.

Usage:
    python scripts/crm.py list
    python scripts/crm.py export backup.json
    python scripts/crm.py import backup.json
    python scripts/crm.py pull --token "$LEANAMP_TOKEN"
    python scripts/crm.py push --token "$LEANAMP_TOKEN"
    python scripts/crm.py metrics

Reads settings from environment or .env. Records live under CRM_DATA_DIR.
Without --token the stored credential (AUTH_TOKEN_KEY in the data dir) is
used; with neither, pull and push are no-ops.

Exit code 0 on success, 1 on a failed command.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Ensure project root is on sys.path so we can import src.leanamp
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

from src.leanamp.config import get_settings  # noqa: E402
from src.leanamp.core.logging import configure_structlog  # noqa: E402
from src.leanamp.core.security import CredentialProvider, StaticCredentials, StoredCredentials  # noqa: E402
from src.leanamp.core.storage import FileKeyValueStore  # noqa: E402
from src.leanamp.crm import CRMError, CRMSession  # noqa: E402


def _format_amount(value: float) -> str:
    return f"${max(0.0, value):,.0f}"


def cmd_list(session: CRMSession) -> int:
    records = session.records()
    if not records:
        print("No records yet")
        return 0
    for record in records:
        next_touch = record.next_date.isoformat() if record.next_date else "-"
        print(
            f"{record.id:>14}  {record.stage.value:<12} {_format_amount(record.value):>12}  "
            f"{record.company or '-':<24} {record.project_name or '-':<24} next: {next_touch}"
        )
    return 0


def cmd_export(session: CRMSession, path: str | None) -> int:
    target = Path(path or session.export_filename())
    target.write_text(session.export_records(), encoding="utf-8")
    count = len(session.store.load())
    print(f"Exported {count} CRM record{'' if count == 1 else 's'} to {target}")
    return 0


def cmd_import(session: CRMSession, path: str) -> int:
    count = session.import_records(Path(path).read_text(encoding="utf-8"))
    print(f"Imported {count} CRM record{'' if count == 1 else 's'}.")
    return 0


def cmd_metrics(session: CRMSession) -> int:
    metrics = session.metrics()
    print(f"Active deals:   {metrics.active}")
    print(f"Pipeline value: {_format_amount(metrics.pipeline)}")
    print(f"Weighted value: {_format_amount(metrics.weighted)}")
    print(f"Won / lost:     {metrics.won} / {metrics.lost}")
    print(f"Next 7 days:    {metrics.next_touches}")
    return 0


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    durable = FileKeyValueStore(Path(args.data_dir or settings.CRM_DATA_DIR))
    credentials: CredentialProvider
    if args.token:
        credentials = StaticCredentials(args.token)
    else:
        credentials = StoredCredentials(durable, key=settings.AUTH_TOKEN_KEY)

    session = CRMSession.create(settings, credentials, durable=durable)
    try:
        if args.command == "list":
            return cmd_list(session)
        if args.command == "export":
            return cmd_export(session, args.path)
        if args.command == "import":
            return cmd_import(session, args.path)
        if args.command == "metrics":
            return cmd_metrics(session)
        if args.command == "pull":
            if not session.remote.is_authenticated():
                print("Not signed in; nothing to pull.")
                return 1
            hydrated = await session.hydration.hydrate()
            print("Local store replaced with remote snapshot." if hydrated else "Pull failed.")
            return 0 if hydrated else 1
        if args.command == "push":
            if not session.remote.is_authenticated():
                print("Not signed in; nothing to push.")
                return 1
            pushed = await session.remote.push(session.store.load())
            print("Remote snapshot replaced." if pushed else "Push failed.")
            return 0 if pushed else 1
    except (CRMError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await session.close()
    return 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Manage the local CRM store")
    parser.add_argument("--data-dir", default=None, help="Override CRM_DATA_DIR")
    parser.add_argument("--token", default=None, help="Bearer token for the CRM API")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="Print records in display order")
    export_parser = sub.add_parser("export", help="Write records to a JSON file")
    export_parser.add_argument("path", nargs="?", default=None)
    import_parser = sub.add_parser("import", help="Replace records from a JSON file")
    import_parser.add_argument("path")
    sub.add_parser("pull", help="Overwrite local records with the remote snapshot")
    sub.add_parser("push", help="Replace the remote snapshot with local records")
    sub.add_parser("metrics", help="Print pipeline metrics")
    args = parser.parse_args()

    configure_structlog()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
