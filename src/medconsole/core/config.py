"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、聚合器超时/并发、优先级升级阈值等可配置项。
阈值类配置统一加载为 EngineSettings，非法值记录告警后回退默认值。
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("MEDCONSOLE_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "MEDCONSOLE_DB_PATH",
        str(_get_base_dir() / "sqlite" / "medconsole.db"),
    )


class EngineSettings(BaseModel):
    """任务引擎配置

    环境变量:
        MEDCONSOLE_READER_TIMEOUT_S: 单个 Source Reader 超时（秒）
        MEDCONSOLE_AGGREGATOR_MAX_CONCURRENCY: Reader 并发上限
        MEDCONSOLE_MAX_WINDOW_DAYS: 查询窗口最大跨度（天）
        MEDCONSOLE_PAYMENT_URGENT_GRACE_DAYS: 付款逾期超过该天数升级为 URGENT
        MEDCONSOLE_RENTAL_EXPIRING_HIGH_DAYS: 租赁到期前该天数内为 HIGH
        MEDCONSOLE_RENTAL_EXPIRING_HORIZON_DAYS: 租赁延期超过该天数视为已处理
        MEDCONSOLE_MAINTENANCE_INTERVAL_MONTHS: 设备维护间隔（月）
        MEDCONSOLE_FEED_CACHE_TTL_S: 任务流缓存 TTL（秒，0 关闭）
    """

    reader_timeout_s: float = Field(default=5.0, gt=0, description="Reader 超时（秒）")
    max_concurrency: int = Field(default=8, ge=1, description="Reader 并发上限")
    max_window_days: int = Field(default=400, ge=1, description="查询窗口最大跨度")
    payment_urgent_grace_days: int = Field(default=7, ge=0)
    rental_expiring_high_days: int = Field(default=7, ge=0)
    rental_expiring_horizon_days: int = Field(default=30, ge=0)
    maintenance_interval_months: int = Field(default=6, ge=1)
    feed_cache_ttl_s: float = Field(default=0.0, ge=0)


# 环境变量 -> (字段名, 类型转换)
_ENV_FIELDS: dict[str, tuple[str, type]] = {
    "MEDCONSOLE_READER_TIMEOUT_S": ("reader_timeout_s", float),
    "MEDCONSOLE_AGGREGATOR_MAX_CONCURRENCY": ("max_concurrency", int),
    "MEDCONSOLE_MAX_WINDOW_DAYS": ("max_window_days", int),
    "MEDCONSOLE_PAYMENT_URGENT_GRACE_DAYS": ("payment_urgent_grace_days", int),
    "MEDCONSOLE_RENTAL_EXPIRING_HIGH_DAYS": ("rental_expiring_high_days", int),
    "MEDCONSOLE_RENTAL_EXPIRING_HORIZON_DAYS": ("rental_expiring_horizon_days", int),
    "MEDCONSOLE_MAINTENANCE_INTERVAL_MONTHS": ("maintenance_interval_months", int),
    "MEDCONSOLE_FEED_CACHE_TTL_S": ("feed_cache_ttl_s", float),
}


def load_engine_settings() -> EngineSettings:
    """从环境变量加载引擎配置

    Returns:
        EngineSettings 实例
    """
    kwargs: dict = {}
    defaults = EngineSettings()

    for env_var, (field_name, cast) in _ENV_FIELDS.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            value = cast(val)
            # 单字段校验范围约束（ValidationError 是 ValueError 子类）
            EngineSettings(**{field_name: value})
            kwargs[field_name] = value
        except ValueError:
            log.warning(
                "invalid_engine_config",
                env_var=env_var,
                value=val,
                fallback=getattr(defaults, field_name),
            )
            # 使用默认值，不阻塞启动

    return EngineSettings(**kwargs)


# 备注字段最大长度
NOTES_MAX_LENGTH: int = 5000

# 手动任务标题截断长度
TITLE_MAX_LENGTH: int = 200
