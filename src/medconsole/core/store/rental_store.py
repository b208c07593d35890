"""RentalStore SQLite 实现

同一租赁记录可投影为到期 / 警报 / 滴定 / 预约四类任务，
读取按各自的日期列分别筛选。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import RentalStatus
from ..models.records import RentalRecord
from ..timeutil import from_db, to_db
from .refs import REF_COLUMNS, ref_ids, ref_joins, row_to_assignee, row_to_client

_SELECT = f"SELECT r.*, {REF_COLUMNS} FROM rentals r {ref_joins('r')}"

# 提醒日期列（列名不接受外部输入）
REMINDER_COLUMNS = frozenset({"alert_date", "titration_reminder_date", "appointment_date"})


class SqliteRentalStore:
    """租赁记录读取"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add_rental(self, record: RentalRecord, medical_device_id: str | None = None) -> None:
        assigned_to, patient_id, company_id = ref_ids(record)
        await self._conn.execute(
            """
            INSERT INTO rentals (id, rental_code, status, device_name, medical_device_id,
                                 patient_id, company_id, assigned_to, start_date, end_date,
                                 alert_date, titration_reminder_date, appointment_date,
                                 updated_at, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.rental_code,
                record.status.value,
                record.device_name,
                medical_device_id,
                patient_id,
                company_id,
                assigned_to,
                to_db(record.start_date),
                to_db(record.end_date),
                to_db(record.alert_date),
                to_db(record.titration_reminder_date),
                to_db(record.appointment_date),
                to_db(record.start_date),
                record.version,
            ),
        )

    async def get_rental(self, rental_id: str) -> RentalRecord | None:
        cursor = await self._conn.execute(f"{_SELECT} WHERE r.id = ?", (rental_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    async def list_expiring(self, start: datetime, end: datetime) -> list[RentalRecord]:
        """ACTIVE 且结束日期落在窗口内"""
        cursor = await self._conn.execute(
            f"{_SELECT} WHERE r.status = ? AND r.end_date BETWEEN ? AND ?",
            (RentalStatus.ACTIVE.value, to_db(start), to_db(end)),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def list_reminders(
        self,
        column: str,
        start: datetime,
        end: datetime,
    ) -> list[RentalRecord]:
        """ACTIVE/PENDING 且指定提醒日期落在窗口内

        Args:
            column: alert_date / titration_reminder_date / appointment_date
        """
        if column not in REMINDER_COLUMNS:
            raise ValueError(f"unknown reminder column: {column}")
        cursor = await self._conn.execute(
            f"{_SELECT} WHERE r.status IN (?, ?) AND r.{column} BETWEEN ? AND ?",
            (
                RentalStatus.ACTIVE.value,
                RentalStatus.PENDING.value,
                to_db(start),
                to_db(end),
            ),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> RentalRecord:
        return RentalRecord(
            id=row["id"],
            version=row["version"],
            assignee=row_to_assignee(row),
            client=row_to_client(row),
            rental_code=row["rental_code"],
            status=row["status"],
            device_name=row["device_name"],
            start_date=from_db(row["start_date"]),
            end_date=from_db(row["end_date"]),
            alert_date=from_db(row["alert_date"]),
            titration_reminder_date=from_db(row["titration_reminder_date"]),
            appointment_date=from_db(row["appointment_date"]),
        )
