"""Tests for the audit log verification script."""

from __future__ import annotations

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent / "scripts"))

from verify_audit_log import main, summarize  # noqa: E402

from booking_guard.audit.logger import AuditLogger
from booking_guard.models import AuditEventType
from tests.conftest import make_audit_event


def _write_log(log_file: Path) -> None:
    logger = AuditLogger(log_path=str(log_file))
    logger.log(make_audit_event(event_type=AuditEventType.RATE_LIMITED, client_key="1.1.1.1"))
    logger.log(make_audit_event(event_type=AuditEventType.BOOKING_LIMITED, client_key="1.1.1.1"))
    logger.log(make_audit_event(event_type=AuditEventType.BOOKING_LIMITED, client_key="2.2.2.2"))
    logger.log(make_audit_event(
        event_type=AuditEventType.BOOKING_CREATED, client_key="3.3.3.3", result="success",
    ))


def test_summarize_counts_events_and_blocked_clients(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    _write_log(log_file)

    report = summarize(log_file)
    assert report.valid
    assert report.entries == 4
    assert report.events == {"booking_limited": 2, "rate_limited": 1, "booking_created": 1}
    assert report.blocked_clients == {"1.1.1.1": 2, "2.2.2.2": 1}


def test_summarize_top_limits_clients(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    _write_log(log_file)
    assert list(summarize(log_file, top=1).blocked_clients) == ["1.1.1.1"]


def test_main_exit_zero_for_intact_chain(tmp_path: Path, capsys) -> None:
    log_file = tmp_path / "audit.jsonl"
    _write_log(log_file)
    assert main([str(log_file), "--format", "json"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert output["valid"] is True


def test_main_exit_one_for_broken_chain(tmp_path: Path, capsys) -> None:
    log_file = tmp_path / "audit.jsonl"
    _write_log(log_file)
    lines = log_file.read_text().strip().split("\n")
    lines[1] = lines[1].replace("1.1.1.1", "6.6.6.6")
    log_file.write_text("\n".join(lines) + "\n")

    assert main([str(log_file)]) == 1
    assert "BROKEN at line 3" in capsys.readouterr().out


def test_main_exit_two_for_missing_file(tmp_path: Path, capsys) -> None:
    assert main([str(tmp_path / "missing.jsonl")]) == 2
    assert "cannot read" in capsys.readouterr().err


def test_main_accepts_rotated_log(tmp_path: Path, capsys) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file), max_bytes=300, backup_count=5)
    for i in range(5):
        logger.log(make_audit_event(action=f"event-{i}", client_key="1.1.1.1"))
    assert (tmp_path / "audit.jsonl.1").exists()

    assert main([str(log_file), "--format", "json"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert output["valid"] is True
    assert output["entries"] == 5
    assert output["blocked_clients"] == {"1.1.1.1": 5}
