"""DiagnosticStore SQLite 实现"""

from datetime import datetime

import aiosqlite

from ..models.enums import DiagnosticStatus
from ..models.records import DiagnosticRecord
from ..timeutil import from_db, to_db
from .refs import REF_COLUMNS, ref_ids, ref_joins, row_to_assignee, row_to_client

_SELECT = f"SELECT d.*, {REF_COLUMNS} FROM diagnostics d {ref_joins('d')}"


class SqliteDiagnosticStore:
    """诊断记录读取"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add_diagnostic(self, record: DiagnosticRecord) -> None:
        assigned_to, patient_id, company_id = ref_ids(record)
        await self._conn.execute(
            """
            INSERT INTO diagnostics (id, diagnostic_code, status, device_name, patient_id,
                                     company_id, assigned_to, created_at, follow_up_date,
                                     updated_at, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.diagnostic_code,
                record.status.value,
                record.device_name,
                patient_id,
                company_id,
                assigned_to,
                to_db(record.created_at),
                to_db(record.follow_up_date),
                to_db(record.created_at),
                record.version,
            ),
        )

    async def get_diagnostic(self, diagnostic_id: str) -> DiagnosticRecord | None:
        cursor = await self._conn.execute(f"{_SELECT} WHERE d.id = ?", (diagnostic_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    async def list_relevant(self, start: datetime, end: datetime) -> list[DiagnosticRecord]:
        """PENDING 且创建日期或随访日期落在窗口内"""
        window = (to_db(start), to_db(end))
        cursor = await self._conn.execute(
            f"""
            {_SELECT}
            WHERE d.status = ?
              AND (d.created_at BETWEEN ? AND ? OR d.follow_up_date BETWEEN ? AND ?)
            """,
            (DiagnosticStatus.PENDING.value, *window, *window),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> DiagnosticRecord:
        return DiagnosticRecord(
            id=row["id"],
            version=row["version"],
            assignee=row_to_assignee(row),
            client=row_to_client(row),
            diagnostic_code=row["diagnostic_code"],
            status=row["status"],
            device_name=row["device_name"],
            created_at=from_db(row["created_at"]),
            follow_up_date=from_db(row["follow_up_date"]),
        )
