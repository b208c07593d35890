"""DeviceStore SQLite 实现 -- 医疗设备与维修日志

维护到期日 = （最近一次维修日期，无维修时取设备创建日期）+ 维护周期（月）。
客户与负责人取自设备当前 ACTIVE 租赁。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import DeviceStatus, RentalStatus
from ..models.records import MaintenanceRecord
from ..timeutil import add_months, from_db, to_db
from .refs import REF_COLUMNS, ref_joins, row_to_assignee, row_to_client

_SELECT = f"""
SELECT md.id AS device_id, md.name AS device_name, md.serial_number, md.status AS device_status,
       md.created_at AS device_created_at, md.version AS device_version,
       r.id AS rental_id, r.rental_code,
       (SELECT MAX(rl.repair_date) FROM repair_logs rl
        WHERE rl.medical_device_id = md.id) AS last_repair_date,
       {REF_COLUMNS}
FROM medical_devices md
LEFT JOIN rentals r ON r.medical_device_id = md.id AND r.status = '{RentalStatus.ACTIVE.value}'
{ref_joins('r')}
"""


class SqliteDeviceStore:
    """设备维护读取"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add_device(
        self,
        device_id: str,
        name: str,
        created_at: datetime,
        serial_number: str | None = None,
        status: DeviceStatus = DeviceStatus.ACTIVE,
    ) -> None:
        await self._conn.execute(
            """
            INSERT INTO medical_devices (id, name, serial_number, status, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (device_id, name, serial_number, status.value, to_db(created_at)),
        )

    async def add_repair_log(self, log_id: str, device_id: str, repair_date: datetime) -> None:
        await self._conn.execute(
            "INSERT INTO repair_logs (id, medical_device_id, repair_date) VALUES (?, ?, ?)",
            (log_id, device_id, to_db(repair_date)),
        )

    async def list_repair_dates(self, device_id: str) -> list[datetime]:
        """维修日期升序"""
        cursor = await self._conn.execute(
            "SELECT repair_date FROM repair_logs WHERE medical_device_id = ? "
            "ORDER BY repair_date",
            (device_id,),
        )
        rows = await cursor.fetchall()
        return [from_db(row["repair_date"]) for row in rows]

    async def get_maintenance(
        self,
        device_id: str,
        interval_months: int,
    ) -> MaintenanceRecord | None:
        """设备当前维护状态（不要求仍在租）"""
        cursor = await self._conn.execute(f"{_SELECT} WHERE md.id = ?", (device_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_record(row, interval_months)

    async def list_due(
        self,
        start: datetime,
        end: datetime,
        interval_months: int,
    ) -> list[MaintenanceRecord]:
        """ACTIVE 租赁中的 ACTIVE 设备，维护到期日落在窗口内"""
        cursor = await self._conn.execute(
            f"{_SELECT} WHERE md.status = ? AND r.id IS NOT NULL",
            (DeviceStatus.ACTIVE.value,),
        )
        rows = await cursor.fetchall()
        records = [self._row_to_record(row, interval_months) for row in rows]
        return [record for record in records if start <= record.due_date <= end]

    @staticmethod
    def _row_to_record(row: aiosqlite.Row, interval_months: int) -> MaintenanceRecord:
        created_at = from_db(row["device_created_at"])
        last_repair = from_db(row["last_repair_date"])
        return MaintenanceRecord(
            id=row["device_id"],
            version=row["device_version"],
            assignee=row_to_assignee(row),
            client=row_to_client(row),
            device_name=row["device_name"],
            serial_number=row["serial_number"],
            device_status=row["device_status"],
            device_created_at=created_at,
            last_maintenance_date=last_repair,
            due_date=add_months(last_repair or created_at, interval_months),
            rental_id=row["rental_id"],
            rental_code=row["rental_code"],
        )
