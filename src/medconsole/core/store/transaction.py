"""乐观锁写入与事务封装

单条业务域记录的写入统一通过 compare_and_set：
UPDATE ... WHERE id = ? AND version = ?，影响行数为 0 即判定为并发冲突。
提交/回滚由本模块的事务函数管理，Store 方法本身不提交。
共享连接上的写事务须持有连接级写锁：同一连接只有一个事务，
一个写者的回滚会连带丢弃其他写者未提交的修改。
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime

import aiosqlite

from ..exceptions import WriteConflictError
from ..timeutil import to_db

# 允许 compare_and_set 写入的表（表名不接受外部输入）
_VERSIONED_TABLES = frozenset(
    {
        "manual_tasks",
        "diagnostics",
        "rentals",
        "payments",
        "appointments",
        "cnam_bons",
        "sales",
    }
)


class RecordNotFoundError(LookupError):
    """compare_and_set 目标记录不存在"""

    def __init__(self, table: str, record_id: str) -> None:
        super().__init__(f"{table}/{record_id} does not exist")
        self.table = table
        self.record_id = record_id


async def compare_and_set(
    conn: aiosqlite.Connection,
    table: str,
    record_id: str,
    expected_version: int,
    updates: dict[str, object],
    updated_at: datetime,
) -> int:
    """按版本号条件更新单条记录（不提交）

    Args:
        conn: 数据库连接
        table: 目标表
        record_id: 记录 ID
        expected_version: 调用方读取到的版本号
        updates: 列名 -> 新值
        updated_at: 写入时间

    Returns:
        写入后的新版本号

    Raises:
        WriteConflictError: 版本号不匹配（记录已被并发修改）
        RecordNotFoundError: 记录不存在
    """
    if table not in _VERSIONED_TABLES:
        raise ValueError(f"table {table} is not versioned")

    assignments = ", ".join(f"{column} = ?" for column in updates)
    params = [*updates.values(), to_db(updated_at), record_id, expected_version]
    sep = ", " if assignments else ""
    cursor = await conn.execute(
        f"UPDATE {table} SET {assignments}{sep}updated_at = ?, version = version + 1 "
        "WHERE id = ? AND version = ?",
        params,
    )
    if cursor.rowcount == 0:
        exists = await conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (record_id,))
        if await exists.fetchone() is None:
            raise RecordNotFoundError(table, record_id)
        raise WriteConflictError(table, record_id, expected_version)
    return expected_version + 1


async def run_in_transaction(
    conn: aiosqlite.Connection,
    work: Callable[[], Awaitable[None]],
    write_lock: asyncio.Lock | None = None,
) -> None:
    """在单事务内执行写操作，成功提交，失败回滚并重新抛出

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        work: 无参异步写操作
        write_lock: 连接级写锁，覆盖 work / commit / rollback 全程
    """
    if write_lock is None:
        await _run(conn, work)
        return
    async with write_lock:
        await _run(conn, work)


async def _run(conn: aiosqlite.Connection, work: Callable[[], Awaitable[None]]) -> None:
    try:
        await work()
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise
