"""Import legacy events.json records into the canonical run store.

Usage:
    python scripts/import_runs.py --source events.json --database-url postgresql+psycopg://...
    python scripts/import_runs.py --source events.json --push   # also seed the mirror
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from runtrack.core.config import AppSettings, DatabaseConfig
from runtrack.core.logging import setup_logging
from runtrack.importer.legacy_loader import LegacyImporter, load_records
from runtrack.models.legacy import ImportReport
from runtrack.persistence.github_mirror import GitHubMirrorClient
from runtrack.persistence.memory_backend import MemoryPushOutbox
from runtrack.persistence.sql_store import SQLRunStore
from runtrack.sync.synchronizer import MirrorSynchronizer


def run_import(store: SQLRunStore, source: str, settings: AppSettings) -> ImportReport:
    """Create the schema if needed and import every record in ``source``."""
    print("Creating schema...")
    store.create_schema()

    print(f"Reading {source}...")
    records = load_records(source)
    print(f"Found {len(records)} events to import")

    return LegacyImporter.from_config(store, settings.importer).run(records)


async def push_collection(store: SQLRunStore, settings: AppSettings) -> bool:
    """Push the freshly imported collection to the mirror once."""
    client = GitHubMirrorClient.from_config(settings.mirror)
    synchronizer = MirrorSynchronizer.from_config(settings.mirror, client, MemoryPushOutbox(), store)
    try:
        return await synchronizer.reconcile()
    finally:
        await client.aclose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Import legacy run records")
    parser.add_argument("--source", default="events.json", help="Legacy JSON array of records")
    parser.add_argument("--database-url", default=None, help="Overrides RUNTRACK_DB_URL")
    parser.add_argument("--push", action="store_true", help="Push the run collection to the mirror afterwards")
    args = parser.parse_args()

    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format)

    db_config = settings.database
    if args.database_url:
        db_config = DatabaseConfig(url=args.database_url)
    store = SQLRunStore.from_config(db_config)

    try:
        report = run_import(store, args.source, settings)
        print("\n=== Import Complete ===")
        print(f"Imported: {report.imported}")
        print(f"Skipped:  {report.skipped}")
        print(f"Total:    {report.total}")

        if args.push:
            ok = asyncio.run(push_collection(store, settings))
            print("Mirror push: " + ("ok" if ok else "failed (see log)"))
    finally:
        store.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
