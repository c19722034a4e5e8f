"""SQLite storage for booked appointments."""

from __future__ import annotations

import json
import sqlite3
from datetime import UTC, date, datetime, time, timedelta
from pathlib import Path

from booking_guard.models import Appointment, AppointmentStatus, BookingRequest


class AppointmentDB:
    """SQLite-backed appointment table."""

    def __init__(self, db_path: str) -> None:
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self) -> None:
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS appointments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                phone TEXT NOT NULL,
                email TEXT,
                address TEXT NOT NULL,
                ward TEXT,
                municipality TEXT,
                service_type TEXT NOT NULL,
                appointment_date TEXT NOT NULL,
                message TEXT,
                images_json TEXT NOT NULL DEFAULT '[]',
                status TEXT NOT NULL DEFAULT 'pending',
                created_at TEXT NOT NULL
            )
        """)
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_appointments_date ON appointments(appointment_date)"
        )
        self.conn.commit()

    def create(self, booking: BookingRequest, images: list[str]) -> Appointment:
        created_at = datetime.now(UTC).isoformat()
        appointment_date = booking.appointment_date.astimezone(UTC).isoformat()
        cursor = self.conn.execute(
            """INSERT INTO appointments
               (name, phone, email, address, ward, municipality, service_type,
                appointment_date, message, images_json, status, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                booking.name,
                booking.phone,
                booking.email,
                booking.address,
                booking.ward,
                booking.municipality,
                booking.service_type.value,
                appointment_date,
                booking.message,
                json.dumps(images),
                AppointmentStatus.PENDING.value,
                created_at,
            ),
        )
        self.conn.commit()
        appointment = self.get(cursor.lastrowid)
        if appointment is None:
            raise RuntimeError("Inserted appointment could not be read back")
        return appointment

    def get(self, appointment_id: int) -> Appointment | None:
        row = self.conn.execute(
            "SELECT * FROM appointments WHERE id = ?", (appointment_id,)
        ).fetchone()
        return self._row_to_appointment(row) if row else None

    def count_on_date(self, day: date) -> int:
        """Count appointments on ``day`` (UTC) that are not cancelled."""
        start = datetime.combine(day, time.min, tzinfo=UTC)
        end = start + timedelta(days=1)
        row = self.conn.execute(
            """SELECT COUNT(*) FROM appointments
               WHERE appointment_date >= ? AND appointment_date < ? AND status != ?""",
            (start.isoformat(), end.isoformat(), AppointmentStatus.CANCELLED.value),
        ).fetchone()
        return int(row[0])

    def update_status(self, appointment_id: int, status: AppointmentStatus) -> None:
        self.conn.execute(
            "UPDATE appointments SET status = ? WHERE id = ?",
            (status.value, appointment_id),
        )
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    def _row_to_appointment(self, row: sqlite3.Row) -> Appointment:
        return Appointment(
            id=row["id"],
            name=row["name"],
            phone=row["phone"],
            email=row["email"],
            address=row["address"],
            ward=row["ward"],
            municipality=row["municipality"],
            service_type=row["service_type"],
            appointment_date=row["appointment_date"],
            message=row["message"],
            images=json.loads(row["images_json"]),
            status=row["status"],
            created_at=row["created_at"],
        )
