"""SaleStore SQLite 实现

2 年（配件）/ 7 年（设备）提醒：提醒日 = 销售日 + N 年。
SQL 按销售日区间 [start - N 年, end - N 年] 各放宽一天预筛，
再按 add_years(sale_date, N) 精确筛选（2 月 29 日销售的提醒落在 2 月 28 日）。
"""

from datetime import datetime, timedelta

import aiosqlite

from ..models.enums import SaleStatus
from ..models.records import SaleRecord
from ..timeutil import add_years, from_db, to_db
from .refs import REF_COLUMNS, ref_ids, ref_joins, row_to_assignee, row_to_client

_SELECT = f"SELECT s.*, {REF_COLUMNS} FROM sales s {ref_joins('s')}"

# 提醒年限 -> 完成标记列
RAPPEL_DONE_COLUMNS = {2: "rappel_2y_done_at", 7: "rappel_7y_done_at"}

# 不再产生提醒的销售状态
INACTIVE_SALE_STATUSES = frozenset(
    {SaleStatus.CANCELLED, SaleStatus.RETURNED, SaleStatus.PARTIALLY_RETURNED}
)

# 年份换算在闰日处不可逆，SQL 预筛区间两端各放宽一天
_SLACK = timedelta(days=1)


class SqliteSaleStore:
    """销售记录读取"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add_sale(self, record: SaleRecord) -> None:
        assigned_to, patient_id, company_id = ref_ids(record)
        await self._conn.execute(
            """
            INSERT INTO sales (id, sale_code, status, device_name, sale_date, patient_id,
                               company_id, assigned_to, rappel_2y_done_at, rappel_7y_done_at,
                               updated_at, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.sale_code,
                record.status.value,
                record.device_name,
                to_db(record.sale_date),
                patient_id,
                company_id,
                assigned_to,
                to_db(record.rappel_2y_done_at),
                to_db(record.rappel_7y_done_at),
                to_db(record.sale_date),
                record.version,
            ),
        )

    async def get_sale(self, sale_id: str) -> SaleRecord | None:
        cursor = await self._conn.execute(f"{_SELECT} WHERE s.id = ?", (sale_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    async def list_rappels(self, years: int, start: datetime, end: datetime) -> list[SaleRecord]:
        """提醒日落在窗口内、提醒未完成且销售有效的记录"""
        done_column = RAPPEL_DONE_COLUMNS[years]
        inactive = sorted(status.value for status in INACTIVE_SALE_STATUSES)
        placeholders = ", ".join("?" for _ in inactive)
        cursor = await self._conn.execute(
            f"""
            {_SELECT}
            WHERE s.status NOT IN ({placeholders})
              AND s.{done_column} IS NULL
              AND s.sale_date BETWEEN ? AND ?
            """,
            (
                *inactive,
                to_db(add_years(start, -years) - _SLACK),
                to_db(add_years(end, -years) + _SLACK),
            ),
        )
        rows = await cursor.fetchall()
        records = [self._row_to_record(row) for row in rows]
        return [
            record
            for record in records
            if start <= add_years(record.sale_date, years) <= end
        ]

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> SaleRecord:
        return SaleRecord(
            id=row["id"],
            version=row["version"],
            assignee=row_to_assignee(row),
            client=row_to_client(row),
            sale_code=row["sale_code"],
            status=row["status"],
            device_name=row["device_name"],
            sale_date=from_db(row["sale_date"]),
            rappel_2y_done_at=from_db(row["rappel_2y_done_at"]),
            rappel_7y_done_at=from_db(row["rappel_7y_done_at"]),
        )
