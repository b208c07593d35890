"""CnamBonStore SQLite 实现"""

from datetime import datetime

import aiosqlite

from ..models.enums import ClientKind, CnamStatus
from ..models.records import CnamBonRecord
from ..timeutil import from_db, to_db
from .refs import REF_COLUMNS, ref_ids, ref_joins, row_to_assignee, row_to_client

_SELECT = f"SELECT b.*, {REF_COLUMNS} FROM cnam_bons b {ref_joins('b')}"


class SqliteCnamBonStore:
    """CNAM 报销单读取"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add_bon(self, record: CnamBonRecord, created_at: datetime | None = None) -> None:
        assigned_to, patient_id, company_id = ref_ids(record)
        stamp = to_db(created_at or record.start_date)
        await self._conn.execute(
            """
            INSERT INTO cnam_bons (id, bon_number, bon_type, status, start_date, end_date,
                                   rental_id, patient_id, company_id, assigned_to,
                                   created_at, updated_at, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.bon_number,
                record.bon_type,
                record.status.value,
                to_db(record.start_date),
                to_db(record.end_date),
                record.rental_id,
                patient_id,
                company_id,
                assigned_to,
                stamp,
                stamp,
                record.version,
            ),
        )

    async def get_bon(self, bon_id: str) -> CnamBonRecord | None:
        cursor = await self._conn.execute(f"{_SELECT} WHERE b.id = ?", (bon_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    async def list_relevant(self, start: datetime, end: datetime) -> list[CnamBonRecord]:
        """APPROUVE 且结束日期落在窗口内"""
        cursor = await self._conn.execute(
            f"{_SELECT} WHERE b.status = ? AND b.end_date BETWEEN ? AND ?",
            (CnamStatus.APPROUVE.value, to_db(start), to_db(end)),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def has_successor(self, bon: CnamBonRecord) -> bool:
        """是否存在同一租赁（无租赁时同一患者）下结束更晚的未拒绝报销单"""
        if bon.rental_id is not None:
            owner_clause, owner_id = "rental_id = ?", bon.rental_id
        elif bon.client is not None and bon.client.type == ClientKind.PATIENT:
            owner_clause, owner_id = "patient_id = ?", bon.client.id
        else:
            return False
        cursor = await self._conn.execute(
            f"""
            SELECT 1 FROM cnam_bons
            WHERE {owner_clause} AND id != ? AND end_date > ? AND status != ?
            LIMIT 1
            """,
            (owner_id, bon.id, to_db(bon.end_date), CnamStatus.REFUSE.value),
        )
        return await cursor.fetchone() is not None

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> CnamBonRecord:
        return CnamBonRecord(
            id=row["id"],
            version=row["version"],
            assignee=row_to_assignee(row),
            client=row_to_client(row),
            bon_number=row["bon_number"],
            bon_type=row["bon_type"],
            status=row["status"],
            start_date=from_db(row["start_date"]),
            end_date=from_db(row["end_date"]),
            rental_id=row["rental_id"],
        )
