#!/usr/bin/env python3
"""Apply a batch of vehicle status updates from a JSON file.

The input file holds a list of ``{"carName": ..., "status": ...}``
objects. The store is taken from the environment (``GARAGE_STORE_URL`` or
``GARAGE_SQLITE_PATH``) unless ``--sqlite`` / ``--store-url`` is given.

Usage
-----
::

    export GARAGE_SQLITE_PATH=garage.db
    python scripts/update_statuses.py updates.json --operator dispatcher

Options::

    --dry-run            Only analyse the batch; nothing is written
    --json               Print the report as JSON
    --timeout SECONDS    Stop starting new items after this many seconds
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pygarage import GarageClient, GarageConfig, GarageError  # noqa: E402


def _load_requests(path: str) -> Any:
    if path == "-":
        return json.load(sys.stdin)
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _print_preview(preview: Any) -> None:
    print(f"Items: {preview.total} ({preview.unique_vehicles} unique vehicles)")
    for status, count in sorted(preview.status_distribution.items()):
        print(f"  {status}: {count}")
    if preview.duplicates_in_list:
        print(f"Listed more than once: {', '.join(preview.duplicates_in_list)}")
    for match in preview.matches:
        print(f"  ✓ {match.input} -> {match.matched} ({match.match_type}, {match.similarity:.0%})")
    for miss in preview.unmatched:
        hint = f" (did you mean: {', '.join(miss.suggestions)})" if miss.suggestions else ""
        print(f"  ✗ {miss.input}{hint}")
    for invalid in preview.invalid_statuses:
        print(f"  invalid status: {invalid}")


async def main() -> int:
    parser = argparse.ArgumentParser(description="Apply vehicle status updates from a JSON file.")
    parser.add_argument("input", help="JSON file with a list of {carName, status} objects ('-' for stdin)")
    parser.add_argument("--sqlite", type=Path, help="SQLite database holding the garage table")
    parser.add_argument("--store-url", help="Base URL of a remote vehicle store")
    parser.add_argument("--log-dir", type=Path, help="Audit log directory")
    parser.add_argument("--operator", help="Operator recorded in the audit trail")
    parser.add_argument("--reason", help="Reason recorded in the audit trail")
    parser.add_argument("--timeout", type=float, help="Stop starting new items after this many seconds")
    parser.add_argument("--dry-run", action="store_true", help="Only analyse the batch")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    overrides: dict[str, Any] = {}
    if args.sqlite is not None:
        overrides["sqlite_path"] = args.sqlite
    if args.store_url:
        overrides["store_url"] = args.store_url
    if args.log_dir is not None:
        overrides["log_dir"] = args.log_dir

    try:
        requests = _load_requests(args.input)
        config = GarageConfig.from_env(**overrides)
        async with GarageClient(config) as client:
            if args.dry_run:
                preview = await client.preview_batch(requests)
                if args.json_mode:
                    print(json.dumps(preview.to_json_dict(), indent=2, ensure_ascii=False))
                else:
                    _print_preview(preview)
                return 0

            report = await client.update_batch(
                requests,
                operator=args.operator,
                reason=args.reason,
                timeout=args.timeout,
            )
    except (OSError, json.JSONDecodeError, GarageError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if args.json_mode:
        print(json.dumps(report.to_json_dict(), indent=2, ensure_ascii=False))
    else:
        print(GarageClient.render_report(report))
    return 1 if report.summary.failed or report.cancelled else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
