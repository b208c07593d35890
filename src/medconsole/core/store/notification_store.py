"""NotificationStore SQLite 实现

仅覆盖任务完成时需要联动的 FOLLOW_UP 通知。
"""

from datetime import datetime

import aiosqlite

from ..timeutil import to_db

FOLLOW_UP = "FOLLOW_UP"
READ = "READ"


class SqliteNotificationStore:
    """通知读写"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add_notification(
        self,
        notification_id: str,
        notification_type: str,
        related_id: str | None,
        created_at: datetime,
        title: str = "",
        status: str = "PENDING",
    ) -> None:
        await self._conn.execute(
            """
            INSERT INTO notifications (id, type, status, related_id, title, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (notification_id, notification_type, status, related_id, title, to_db(created_at)),
        )

    async def mark_follow_up_read(self, related_id: str, now: datetime) -> int:
        """将关联任务的 FOLLOW_UP 通知标记为 READ（不提交），返回影响行数"""
        cursor = await self._conn.execute(
            """
            UPDATE notifications SET status = ?, read_at = ?
            WHERE related_id = ? AND type = ? AND status != ?
            """,
            (READ, to_db(now), related_id, FOLLOW_UP, READ),
        )
        return cursor.rowcount

    async def list_for_related(self, related_id: str) -> list[dict]:
        cursor = await self._conn.execute(
            "SELECT * FROM notifications WHERE related_id = ? ORDER BY created_at",
            (related_id,),
        )
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]
