"""AppointmentStore SQLite 实现

预约支持直接完成与备注编辑，写入走 compare_and_set。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import AppointmentStatus
from ..models.records import AppointmentRecord
from ..timeutil import from_db, to_db
from .refs import REF_COLUMNS, ref_ids, ref_joins, row_to_assignee, row_to_client
from .transaction import compare_and_set

_SELECT = f"SELECT a.*, {REF_COLUMNS} FROM appointments a {ref_joins('a')}"


class SqliteAppointmentStore:
    """预约记录读写"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add_appointment(self, record: AppointmentRecord) -> None:
        assigned_to, patient_id, company_id = ref_ids(record)
        await self._conn.execute(
            """
            INSERT INTO appointments (id, appointment_code, appointment_type, status,
                                      priority, scheduled_date, location, notes, patient_id,
                                      company_id, assigned_to, created_at, updated_at,
                                      completed_at, completed_by, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.appointment_code,
                record.appointment_type,
                record.status.value,
                record.priority.value,
                to_db(record.scheduled_date),
                record.location,
                record.notes,
                patient_id,
                company_id,
                assigned_to,
                to_db(record.created_at),
                to_db(record.created_at),
                to_db(record.completed_at),
                record.completed_by,
                record.version,
            ),
        )

    async def get_appointment(self, appointment_id: str) -> AppointmentRecord | None:
        cursor = await self._conn.execute(f"{_SELECT} WHERE a.id = ?", (appointment_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    async def list_relevant(self, start: datetime, end: datetime) -> list[AppointmentRecord]:
        """未取消且预约时间落在窗口内"""
        cursor = await self._conn.execute(
            f"{_SELECT} WHERE a.status != ? AND a.scheduled_date BETWEEN ? AND ?",
            (AppointmentStatus.CANCELLED.value, to_db(start), to_db(end)),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def mark_completed(
        self,
        appointment_id: str,
        expected_version: int,
        actor_id: str,
        now: datetime,
    ) -> int:
        return await compare_and_set(
            self._conn,
            "appointments",
            appointment_id,
            expected_version,
            {
                "status": AppointmentStatus.COMPLETED.value,
                "completed_at": to_db(now),
                "completed_by": actor_id,
            },
            now,
        )

    async def update_notes(
        self,
        appointment_id: str,
        expected_version: int,
        notes: str | None,
        now: datetime,
    ) -> int:
        return await compare_and_set(
            self._conn, "appointments", appointment_id, expected_version, {"notes": notes}, now
        )

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> AppointmentRecord:
        return AppointmentRecord(
            id=row["id"],
            version=row["version"],
            assignee=row_to_assignee(row),
            client=row_to_client(row),
            appointment_code=row["appointment_code"],
            appointment_type=row["appointment_type"],
            status=row["status"],
            priority=row["priority"],
            scheduled_date=from_db(row["scheduled_date"]),
            location=row["location"],
            notes=row["notes"],
            created_at=from_db(row["created_at"]),
            completed_at=from_db(row["completed_at"]),
            completed_by=row["completed_by"],
        )
