#!/usr/bin/env python3
"""Query and maintain the status-update audit trail.

Usage
-----
::

    python scripts/audit_tool.py history 12 --limit 10
    python scripts/audit_tool.py batch batch_m0x1y2_ab12cd
    python scripts/audit_tool.py stats --since 2026-01-01 --until 2026-02-01
    python scripts/audit_tool.py archive --days 90

The log directory defaults to ``GARAGE_LOG_DIR`` (or ``logs``).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pygarage import AuditEntry, AuditLogger, GarageConfig, GarageError  # noqa: E402
from pygarage.audit import format_log_line  # noqa: E402
from pygarage.models import parse_timestamp  # noqa: E402


def _print_entries(entries: list[AuditEntry], json_mode: bool) -> None:
    if json_mode:
        print(json.dumps([entry.to_json_dict() for entry in entries], indent=2, ensure_ascii=False))
        return
    if not entries:
        print("No entries.")
    for entry in entries:
        print(format_log_line(entry))


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


async def _run(args: argparse.Namespace, audit: AuditLogger, config: GarageConfig) -> None:
    if args.command == "history":
        _print_entries(await audit.vehicle_history(args.vehicle_id, args.limit), args.json_mode)

    elif args.command == "batch":
        _print_entries(await audit.batch_history(args.batch_id), args.json_mode)

    elif args.command == "stats":
        end = parse_timestamp(args.until) or datetime.now(UTC)
        start = parse_timestamp(args.since) or end - timedelta(days=7)
        stats = await audit.statistics(start, end)
        if args.json_mode:
            _print_json(stats.to_json_dict())
            return
        print(f"Window    : {stats.start.isoformat()} .. {stats.end.isoformat()}")
        print(f"Updates   : {stats.total_updates} ({stats.successful_updates} ok, {stats.failed_updates} failed)")
        for label, counts in (
            ("Transitions", stats.status_transition_counts),
            ("Vehicles", stats.per_vehicle_counts),
            ("Operators", stats.per_operator_counts),
        ):
            if counts:
                print(f"{label}:")
                for key, count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
                    print(f"  {key}: {count}")

    elif args.command == "archive":
        days = config.archive_days if args.days is None else args.days
        result = await audit.archive(days)
        if args.json_mode:
            _print_json(result.to_json_dict())
        elif result.archive_path is None:
            print(f"Nothing older than {days} days; {result.retained} entries kept.")
        else:
            print(f"Archived {result.archived} entries to {result.archive_path}; {result.retained} kept.")


async def main() -> int:
    parser = argparse.ArgumentParser(description="Query and maintain the status-update audit trail.")
    parser.add_argument("--log-dir", type=Path, help="Audit log directory")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    history = sub.add_parser("history", help="Entries for one vehicle, newest first")
    history.add_argument("vehicle_id", type=int)
    history.add_argument("--limit", type=int, default=50)

    batch = sub.add_parser("batch", help="Entries of one batch in order")
    batch.add_argument("batch_id")

    stats = sub.add_parser("stats", help="Update statistics for a time window")
    stats.add_argument("--since", help="Window start (ISO date/time, default: 7 days before --until)")
    stats.add_argument("--until", help="Window end (ISO date/time, default: now)")

    archive = sub.add_parser("archive", help="Move old entries into an archive file")
    archive.add_argument("--days", type=int, help="Days to keep (default: GARAGE_ARCHIVE_DAYS or 90)")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        overrides = {"log_dir": args.log_dir} if args.log_dir is not None else {}
        config = GarageConfig.from_env(**overrides)
        await _run(args, AuditLogger.from_config(config), config)
    except (GarageError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
