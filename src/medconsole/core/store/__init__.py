"""MedConsole Core Store -- 业务域 SQLite 适配器

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from pathlib import Path

import aiosqlite

from .appointment_store import SqliteAppointmentStore
from .cnam_bon_store import SqliteCnamBonStore
from .device_store import SqliteDeviceStore
from .diagnostic_store import SqliteDiagnosticStore
from .manual_task_store import SqliteManualTaskStore
from .notification_store import SqliteNotificationStore
from .payment_store import SqlitePaymentStore
from .reference_store import SqliteReferenceStore
from .rental_store import SqliteRentalStore
from .sale_store import SqliteSaleStore
from .sqlite_init import init_db
from .transaction import RecordNotFoundError, compare_and_set, run_in_transaction


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接

    write_lock 串行化该连接上的写事务。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.write_lock = asyncio.Lock()
        self.manual_task_store = SqliteManualTaskStore(conn)
        self.diagnostic_store = SqliteDiagnosticStore(conn)
        self.rental_store = SqliteRentalStore(conn)
        self.payment_store = SqlitePaymentStore(conn)
        self.appointment_store = SqliteAppointmentStore(conn)
        self.cnam_bon_store = SqliteCnamBonStore(conn)
        self.sale_store = SqliteSaleStore(conn)
        self.device_store = SqliteDeviceStore(conn)
        self.notification_store = SqliteNotificationStore(conn)
        self.reference_store = SqliteReferenceStore(conn)


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteManualTaskStore",
    "SqliteDiagnosticStore",
    "SqliteRentalStore",
    "SqlitePaymentStore",
    "SqliteAppointmentStore",
    "SqliteCnamBonStore",
    "SqliteSaleStore",
    "SqliteDeviceStore",
    "SqliteNotificationStore",
    "SqliteReferenceStore",
    "RecordNotFoundError",
    "compare_and_set",
    "run_in_transaction",
    "init_db",
]
