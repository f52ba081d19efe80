"""Maintenance utilities for the saved hyperlink store."""
from __future__ import annotations

import argparse
import json
import sqlite3
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from ..config import get_settings
from ..state import LinkStore, StoreError
from ..telemetry import TelemetryCollector


def _load_store(db: Optional[Path]) -> LinkStore:
    return LinkStore(db or get_settings().db_path)


def import_links(store: LinkStore, lines: Iterable[str]) -> int:
    """Append each non-blank, non-comment line as a link."""

    imported = 0
    for line in lines:
        url = line.strip()
        if not url or url.startswith("#"):
            continue
        store.append(url)
        imported += 1
    return imported


def cmd_import(args: argparse.Namespace) -> None:
    store = _load_store(args.db)
    with args.file.open("r", encoding="utf-8") as fh:
        imported = import_links(store, fh)
    print(f"Imported {imported} links into {store.db_path}")


def cmd_list(args: argparse.Namespace) -> None:
    store = _load_store(args.db)
    urls: List[str] = store.list_all()
    if args.json:
        print(json.dumps(urls, indent=2))
        return
    for url in urls:
        print(url)


def cmd_pick(args: argparse.Namespace) -> None:
    store = _load_store(args.db)
    link = store.pick_random_and_remove()
    if link is None:
        print("No hyperlinks available")
        return
    print(link.url)


def cmd_count(args: argparse.Namespace) -> None:
    store = _load_store(args.db)
    print(store.count())


def cmd_telemetry(args: argparse.Namespace) -> None:
    collector = TelemetryCollector(args.telemetry_db or get_settings().telemetry_db_path)
    if args.prune_days is not None:
        removed = collector.prune(args.prune_days)
        print(f"Pruned {removed} metric events")
    commands = collector.get_command_stats()
    errors = collector.get_error_summary(since_hours=args.hours)
    if args.json:
        print(json.dumps({"commands": commands, "errors": errors}, indent=2))
        return
    for name in sorted(commands):
        stats = commands[name]
        print(
            f"{name}: {stats['usage_count']} uses, "
            f"{stats['success_rate']:.0%} ok, {stats['unique_senders']} senders"
        )
    for error_type, count in errors.items():
        print(f"error {error_type}: {count}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage the LinkKeeper hyperlink store.")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite store (default: settings / LINKKEEPER_DB).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    importer = subparsers.add_parser("import", help="Append links from a text file, one per line.")
    importer.add_argument("file", type=Path, help="File with one URL per line.")
    importer.set_defaults(func=cmd_import)

    lister = subparsers.add_parser("list", help="Print every saved link.")
    lister.add_argument("--json", action="store_true", help="Output JSON for automation.")
    lister.set_defaults(func=cmd_list)

    picker = subparsers.add_parser("pick", help="Remove and print one random link.")
    picker.set_defaults(func=cmd_pick)

    counter = subparsers.add_parser("count", help="Print the number of saved links.")
    counter.set_defaults(func=cmd_count)

    report = subparsers.add_parser("telemetry", help="Summarise command usage and recent errors.")
    report.add_argument(
        "--telemetry-db",
        type=Path,
        default=None,
        help="Path to the metrics database (default: settings / LINKKEEPER_TELEMETRY_DB).",
    )
    report.add_argument("--hours", type=float, default=24, help="Error window in hours.")
    report.add_argument(
        "--prune-days",
        type=float,
        default=None,
        help="Delete events older than this many days before reporting.",
    )
    report.add_argument("--json", action="store_true", help="Output JSON for automation.")
    report.set_defaults(func=cmd_telemetry)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.func(args)
    except StoreError as exc:
        print(f"Store error: {exc}", file=sys.stderr)
        return 1
    except sqlite3.Error as exc:
        print(f"Telemetry error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
