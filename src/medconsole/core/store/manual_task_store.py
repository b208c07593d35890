"""ManualTaskStore SQLite 实现

manual_tasks 是唯一持久化状态的任务来源。
写操作经 compare_and_set 做版本校验，提交由调用方的事务负责。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import TaskStatus
from ..models.records import ManualTaskRecord
from ..timeutil import from_db, to_db
from .refs import REF_COLUMNS, ref_ids, ref_joins, row_to_assignee, row_to_client
from .transaction import compare_and_set

_SELECT = f"SELECT t.*, {REF_COLUMNS} FROM manual_tasks t {ref_joins('t')}"


class SqliteManualTaskStore:
    """ManualTaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add_task(self, record: ManualTaskRecord) -> None:
        """插入手动任务（不提交）"""
        assigned_to, patient_id, company_id = ref_ids(record)
        await self._conn.execute(
            """
            INSERT INTO manual_tasks (id, title, description, notes, status, priority,
                                      start_date, end_date, assigned_to, patient_id,
                                      company_id, created_at, updated_at, completed_at,
                                      completed_by, version)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.title,
                record.description,
                record.notes,
                record.status.value,
                record.priority.value,
                to_db(record.start_date),
                to_db(record.end_date),
                assigned_to,
                patient_id,
                company_id,
                to_db(record.created_at),
                to_db(record.created_at),
                to_db(record.completed_at),
                record.completed_by,
                record.version,
            ),
        )

    async def get_task(self, task_id: str) -> ManualTaskRecord | None:
        """根据源记录 ID 查询"""
        cursor = await self._conn.execute(f"{_SELECT} WHERE t.id = ?", (task_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    async def list_relevant(self, start: datetime, end: datetime) -> list[ManualTaskRecord]:
        """截止日期（无截止日期时取开始日期）落在窗口内的任务，不限状态"""
        cursor = await self._conn.execute(
            f"{_SELECT} WHERE COALESCE(t.end_date, t.start_date) BETWEEN ? AND ?",
            (to_db(start), to_db(end)),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def mark_completed(
        self,
        task_id: str,
        expected_version: int,
        actor_id: str,
        now: datetime,
    ) -> int:
        """COMPLETED + 完成时间/完成人，返回新版本号"""
        return await compare_and_set(
            self._conn,
            "manual_tasks",
            task_id,
            expected_version,
            {
                "status": TaskStatus.COMPLETED.value,
                "completed_at": to_db(now),
                "completed_by": actor_id,
            },
            now,
        )

    async def update_notes(
        self,
        task_id: str,
        expected_version: int,
        notes: str | None,
        now: datetime,
    ) -> int:
        """覆盖 notes 列，返回新版本号"""
        return await compare_and_set(
            self._conn, "manual_tasks", task_id, expected_version, {"notes": notes}, now
        )

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> ManualTaskRecord:
        return ManualTaskRecord(
            id=row["id"],
            version=row["version"],
            assignee=row_to_assignee(row),
            client=row_to_client(row),
            title=row["title"],
            description=row["description"],
            notes=row["notes"],
            status=row["status"],
            priority=row["priority"],
            start_date=from_db(row["start_date"]),
            end_date=from_db(row["end_date"]),
            created_at=from_db(row["created_at"]),
            completed_at=from_db(row["completed_at"]),
            completed_by=row["completed_by"],
        )
