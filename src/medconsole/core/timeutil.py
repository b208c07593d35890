"""时间工具 -- UTC 归一化、数据库 ISO 字符串互转、按月/年偏移

所有落盘时间统一为 UTC 微秒精度 ISO 字符串，保证 SQL 字符串比较与时间序一致。
"""

import calendar
from datetime import UTC, datetime


def utc_now() -> datetime:
    """当前 UTC 时间"""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """naive 时间视为 UTC；aware 时间转换到 UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_db(dt: datetime | None) -> str | None:
    """datetime -> 数据库 ISO 字符串"""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat(timespec="microseconds")


def from_db(value: str | None) -> datetime | None:
    """数据库 ISO 字符串 -> aware datetime"""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def add_months(dt: datetime, months: int) -> datetime:
    """按自然月偏移，月末日期截断到目标月最后一天"""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def add_years(dt: datetime, years: int) -> datetime:
    """按年偏移（2 月 29 日落到非闰年时取 2 月 28 日）"""
    return add_months(dt, years * 12)
