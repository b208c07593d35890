"""PaymentStore SQLite 实现"""

from datetime import datetime

import aiosqlite

from ..models.enums import PaymentStatus
from ..models.records import PaymentRecord
from ..timeutil import from_db, to_db
from .refs import REF_COLUMNS, ref_ids, ref_joins, row_to_assignee, row_to_client

_SELECT = f"SELECT pay.*, {REF_COLUMNS} FROM payments pay {ref_joins('pay')}"


class SqlitePaymentStore:
    """付款记录读取"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add_payment(self, record: PaymentRecord) -> None:
        assigned_to, patient_id, company_id = ref_ids(record)
        await self._conn.execute(
            """
            INSERT INTO payments (id, payment_code, status, amount, paid_amount, due_date,
                                  period_end_date, rental_id, patient_id, company_id,
                                  assigned_to, created_at, updated_at, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.payment_code,
                record.status.value,
                record.amount,
                record.paid_amount,
                to_db(record.due_date),
                to_db(record.period_end_date),
                record.rental_id,
                patient_id,
                company_id,
                assigned_to,
                to_db(record.created_at),
                to_db(record.created_at),
                record.version,
            ),
        )

    async def get_payment(self, payment_id: str) -> PaymentRecord | None:
        cursor = await self._conn.execute(f"{_SELECT} WHERE pay.id = ?", (payment_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    async def list_due(self, start: datetime, end: datetime) -> list[PaymentRecord]:
        """PENDING/PARTIAL、仍有余额且到期日落在窗口内"""
        cursor = await self._conn.execute(
            f"""
            {_SELECT}
            WHERE pay.status IN (?, ?)
              AND ROUND(pay.amount - pay.paid_amount, 2) > 0
              AND pay.due_date BETWEEN ? AND ?
            """,
            (
                PaymentStatus.PENDING.value,
                PaymentStatus.PARTIAL.value,
                to_db(start),
                to_db(end),
            ),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def list_period_ends(self, start: datetime, end: datetime) -> list[PaymentRecord]:
        """租赁付款、未结清且账期结束日落在窗口内"""
        cursor = await self._conn.execute(
            f"""
            {_SELECT}
            WHERE pay.rental_id IS NOT NULL
              AND pay.status NOT IN (?, ?)
              AND pay.period_end_date BETWEEN ? AND ?
            """,
            (
                PaymentStatus.PAID.value,
                PaymentStatus.CANCELLED.value,
                to_db(start),
                to_db(end),
            ),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> PaymentRecord:
        return PaymentRecord(
            id=row["id"],
            version=row["version"],
            assignee=row_to_assignee(row),
            client=row_to_client(row),
            payment_code=row["payment_code"],
            status=row["status"],
            amount=row["amount"],
            paid_amount=row["paid_amount"],
            due_date=from_db(row["due_date"]),
            period_end_date=from_db(row["period_end_date"]),
            rental_id=row["rental_id"],
            created_at=from_db(row["created_at"]),
        )
