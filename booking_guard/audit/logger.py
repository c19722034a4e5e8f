"""Audit logger — append-only JSON Lines record of admission decisions.

Every denial (rate, speed, booking, honeypot) and every booking outcome is
written as one JSON object per line. Each line carries the SHA-256 of the
line before it. The chain runs across size rotation: the first line of a
fresh file points at the last line of ``<name>.1``, so the live file and its
backups verify as one sequence.
"""

from __future__ import annotations

import contextlib
import fcntl
import hashlib
import json
import os
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from booking_guard.models import AuditEvent


def _line_hash(line: str) -> str:
    return hashlib.sha256(line.encode()).hexdigest()


def log_files(log_path: Path) -> list[Path]:
    """Existing files of one audit log, oldest first: ``name.N`` .. ``name.1``, ``name``."""
    backups = [
        path for path in log_path.parent.glob(f"{log_path.name}.*")
        if path.suffix[1:].isdigit()
    ]
    backups.sort(key=lambda path: int(path.suffix[1:]), reverse=True)
    if log_path.exists():
        backups.append(log_path)
    return backups


def _lines(path: Path) -> list[str]:
    text = path.read_text().strip()
    return text.split("\n") if text else []


def read_entries(log_path: Path) -> Iterator[dict[str, Any]]:
    """Yield every entry of the log, rotated backups included, oldest first."""
    for path in log_files(log_path) or [log_path]:
        for line in _lines(path):
            yield json.loads(line)


@dataclass
class ChainValidationResult:
    valid: bool
    entries: int = 0
    files: int = 0
    broken_at_line: int | None = None
    broken_file: str | None = None


def validate_audit_chain(log_path: Path) -> ChainValidationResult:
    """Verify the hash chain over the live file and all of its rotated backups.

    The very first entry must have a null ``prev_hash`` unless it opens a
    rotated backup, whose predecessor may already have been deleted by
    rotation. Raises OSError if neither the log nor any backup exists.
    """
    files = log_files(log_path) or [log_path]
    previous: str | None = None
    entries = 0
    for path in files:
        for number, line in enumerate(_lines(path), start=1):
            entry = json.loads(line)
            entries += 1
            if previous is None:
                ok = path != log_path or entry.get("prev_hash") is None
            else:
                ok = entry.get("prev_hash") == _line_hash(previous)
            if not ok:
                return ChainValidationResult(
                    valid=False,
                    entries=entries,
                    files=len(files),
                    broken_at_line=number,
                    broken_file=path.name,
                )
            previous = line

    return ChainValidationResult(valid=True, entries=entries, files=len(files))


class AuditLogger:
    """Append-only structured audit logger with size rotation and a continuous hash chain."""

    def __init__(
        self,
        log_path: str,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
    ) -> None:
        self.log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._backup_count = backup_count
        self._last_line = self._newest_line()

    @classmethod
    def from_env(cls) -> AuditLogger | None:
        """Build a logger from ``AUDIT_LOG_*`` variables; None when no path is set."""
        log_path = os.environ.get("AUDIT_LOG_PATH")
        if not log_path:
            return None
        return cls(
            log_path=log_path,
            max_bytes=int(os.environ.get("AUDIT_LOG_MAX_BYTES", "10485760")),
            backup_count=int(os.environ.get("AUDIT_LOG_BACKUP_COUNT", "5")),
        )

    def _newest_line(self) -> str | None:
        # Walk newest first so a restart right after rotation still links to .1
        for path in reversed(log_files(self.log_path)):
            lines = _lines(path)
            if lines:
                return lines[-1]
        return None

    def _backup(self, index: int) -> Path:
        return self.log_path.parent / f"{self.log_path.name}.{index}"

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        lock_file = self.log_path.parent / f".{self.log_path.name}.lock"
        with open(lock_file, "w") as lf:
            fcntl.flock(lf, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lf, fcntl.LOCK_UN)

    def _rotate_if_full(self) -> None:
        if not self.log_path.exists() or self.log_path.stat().st_size < self._max_bytes:
            return
        self._backup(self._backup_count).unlink(missing_ok=True)
        for index in range(self._backup_count - 1, 0, -1):
            if self._backup(index).exists():
                self._backup(index).rename(self._backup(index + 1))
        self.log_path.rename(self._backup(1))

    def _encode(self, event: AuditEvent) -> str:
        data = json.loads(event.model_dump_json())
        data["prev_hash"] = _line_hash(self._last_line) if self._last_line is not None else None
        return json.dumps(data, separators=(",", ":"))

    def log(self, event: AuditEvent) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        line = self._encode(event)
        with self._locked():
            self._rotate_if_full()
            with open(self.log_path, "a") as f:
                f.write(line + "\n")
        self._last_line = line
