#!/usr/bin/env python

import argparse
import os
import sqlite3
from pathlib import Path
from typing import Optional

from media_indexer.database.ops import CatalogReader
from media_indexer.models import ItemStatus, MediaType


def connect_db(db_path: Path) -> sqlite3.Connection:
    if not db_path.exists():
        raise SystemExit(f"DB not found: {db_path}")
    return sqlite3.connect(db_path)


def list_items(reader: CatalogReader, media_type: Optional[str], status: Optional[str]):
    items = reader.list_items(
        media_type=MediaType(media_type) if media_type else None,
        status=ItemStatus(status) if status else None,
    )
    if not items:
        print("No matching items.")
        return

    print("content_id   | type  | status  | last_seen                  | path")
    print("-------------+-------+---------+----------------------------+-----")
    for item in items:
        print(f"{item.content_id[:12]} | {item.media_type.value.ljust(5)} | {item.status.value.ljust(7)} | "
              f"{item.last_seen.isoformat()[:26].ljust(26)} | {item.current_path}")


def show_item(reader: CatalogReader, content_id: str):
    item = reader.get(content_id)
    if not item:
        print(f"No item with content_id={content_id}")
        return

    print("Media item:")
    print(f"  content_id:    {item.content_id}")
    print(f"  media_type:    {item.media_type.value}")
    print(f"  status:        {item.status.value}")
    print(f"  current_path:  {item.current_path}")
    print(f"  library_root:  {item.library_root}")
    print(f"  first_seen:    {item.first_seen.isoformat()}")
    print(f"  last_seen:     {item.last_seen.isoformat()}")
    if item.user_metadata:
        print("  user_metadata:")
        for key, value in sorted(item.user_metadata.items()):
            print(f"    {key}: {value}")


def show_summary(reader: CatalogReader):
    counts = reader.count_by_status()
    if not counts:
        print("Catalog is empty.")
    else:
        print("type  | active | missing")
        print("------+--------+--------")
        for media_type in MediaType:
            row = counts.get(media_type.value, {})
            print(f"{media_type.value.ljust(5)} | {str(row.get('active', 0)).rjust(6)} | {str(row.get('missing', 0)).rjust(7)}")

    runs = reader.latest_scan_runs(limit=5)
    if runs:
        print("\nRecent scans:")
        for run in runs:
            print(f"  {run.started_at.isoformat()[:19]} {run.outcome.value:9s} "
                  f"observed={run.items_observed} new={run.items_created} "
                  f"moved={run.items_moved} missing={run.items_marked_missing}  {run.library_root}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Query helper for the media catalog SQLite DB.")
    p.add_argument("--db", required=True, help="Path to media_catalog.db")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--list", action="store_true", help="List cataloged items")
    group.add_argument("--item", help="Show details for an item by content_id")
    group.add_argument("--path", help="Show details for the item currently at this path")
    group.add_argument("--summary", action="store_true", help="Item counts per type/status and recent scans")
    p.add_argument("--type", choices=[t.value for t in MediaType], help="Filter --list by media type")
    p.add_argument("--status", choices=[s.value for s in ItemStatus], help="Filter --list by status")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    db_path = Path(args.db).resolve()
    conn = connect_db(db_path)
    reader = CatalogReader(conn)

    try:
        if args.list:
            list_items(reader, args.type, args.status)
        elif args.item:
            show_item(reader, args.item)
        elif args.path:
            item = reader.find_by_path(Path(os.path.abspath(args.path)))
            if item is None:
                print(f"No item found for path: {args.path}")
            else:
                show_item(reader, item.content_id)
        elif args.summary:
            show_summary(reader)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
