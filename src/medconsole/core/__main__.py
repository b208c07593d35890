"""CLI 入口模块 -- python -m medconsole.core <command>

支持的命令：
  init-db                          创建数据库表结构
  feed <start> <end> [filter]      聚合任务流并输出 JSON 摘要
"""

import asyncio
import json
import sys
from datetime import datetime

from .config import get_db_path, load_engine_settings

USAGE = """用法: python -m medconsole.core <command>
命令:
  init-db                          创建数据库表结构
  feed <start> <end> [filter]      聚合任务流（ISO 日期，filter 默认 all）"""


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(USAGE)
        sys.exit(1)

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command == "feed":
        if len(sys.argv) < 4:
            print(USAGE)
            sys.exit(1)
        type_filter = sys.argv[4] if len(sys.argv) > 4 else "all"
        try:
            start = datetime.fromisoformat(sys.argv[2])
            end = datetime.fromisoformat(sys.argv[3])
        except ValueError as e:
            print(f"日期格式错误: {e}")
            sys.exit(1)
        sys.exit(asyncio.run(print_feed(start, end, type_filter)))
    else:
        print(f"未知命令: {command}")
        print("可用命令: init-db, feed")
        sys.exit(1)


async def init_database() -> None:
    """创建表结构（幂等）"""
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    store_group = await create_store_group(db_path)
    await store_group.conn.close()
    print("初始化完成")


async def print_feed(start: datetime, end: datetime, type_filter: str) -> int:
    """聚合并打印任务流摘要，返回退出码"""
    from .aggregator import Aggregator
    from .exceptions import InvalidFilterError
    from .models.task import FeedFilters
    from .sources import build_readers
    from .store import create_store_group
    from .timeutil import utc_now

    settings = load_engine_settings()
    store_group = await create_store_group(get_db_path())
    try:
        aggregator = Aggregator(build_readers(store_group, settings), settings)
        try:
            result = await aggregator.aggregate(
                start, end, FeedFilters(type_filter=type_filter), utc_now()
            )
        except InvalidFilterError as e:
            print(f"筛选条件无效: {e}")
            return 1
        summary = {
            "stats": result.stats.model_dump(mode="json", by_alias=True),
            "partial": result.partial,
            "skippedSources": [s.source for s in result.skipped_sources],
            "tasks": [
                {
                    "id": task.id,
                    "type": task.type.value,
                    "status": task.status.value,
                    "priority": task.priority.value,
                    "dueDate": task.due_date.isoformat() if task.due_date else None,
                    "title": task.title,
                }
                for task in result.tasks
            ],
        }
        print(json.dumps(summary, ensure_ascii=False, indent=2))
        return 0
    finally:
        await store_group.conn.close()


if __name__ == "__main__":
    main()
