#!/usr/bin/env python3
"""Audit log verification for booking-guard.

Checks the hash chain of an admission audit log, rotated backups included,
and summarises its events.

Exit codes:
    0 — chain intact
    1 — chain broken
    2 — log file missing or unreadable

Usage:
    python scripts/verify_audit_log.py data/audit.jsonl [--format json|text]
"""

from __future__ import annotations

import argparse
import json
import sys
from collections import Counter
from dataclasses import asdict, dataclass, field
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from booking_guard.audit.logger import read_entries, validate_audit_chain  # noqa: E402


@dataclass
class Report:
    path: str
    valid: bool
    entries: int
    files: int = 1
    broken_at_line: int | None = None
    broken_file: str | None = None
    events: dict[str, int] = field(default_factory=dict)
    blocked_clients: dict[str, int] = field(default_factory=dict)


def summarize(log_path: Path, top: int = 5) -> Report:
    """Validate the chain and count events per type and blocked client key."""
    result = validate_audit_chain(log_path)
    events: Counter[str] = Counter()
    blocked: Counter[str] = Counter()

    for entry in read_entries(log_path):
        events[entry.get("event_type", "unknown")] += 1
        if entry.get("result") == "blocked" and entry.get("client_key"):
            blocked[entry["client_key"]] += 1

    return Report(
        path=str(log_path),
        valid=result.valid,
        entries=result.entries,
        files=result.files,
        broken_at_line=result.broken_at_line,
        broken_file=result.broken_file,
        events=dict(events.most_common()),
        blocked_clients=dict(blocked.most_common(top)),
    )


def print_report(report: Report, fmt: str = "text") -> None:
    if fmt == "json":
        print(json.dumps(asdict(report), indent=2))
        return

    status = "OK" if report.valid else f"BROKEN at line {report.broken_at_line} of {report.broken_file}"
    print(f"{report.path}: {report.entries} entries in {report.files} file(s), chain {status}")
    for event_type, count in report.events.items():
        print(f"  {event_type:<20} {count}")
    if report.blocked_clients:
        print("  most blocked clients:")
        for key, count in report.blocked_clients.items():
            print(f"    {key:<40} {count}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Verify a booking-guard audit log")
    parser.add_argument("log_path", type=Path)
    parser.add_argument("--format", choices=["text", "json"], default="text")
    parser.add_argument("--top", type=int, default=5, help="blocked clients to list")
    args = parser.parse_args(argv)

    try:
        report = summarize(args.log_path, top=args.top)
    except (OSError, json.JSONDecodeError) as e:
        print(f"ERROR: cannot read {args.log_path}: {e}", file=sys.stderr)
        return 2

    print_report(report, fmt=args.format)
    return 0 if report.valid else 1


if __name__ == "__main__":
    sys.exit(main())
