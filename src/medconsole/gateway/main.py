"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 任务引擎组件装配 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from medconsole.core.aggregator import Aggregator
from medconsole.core.config import EngineSettings, get_db_path, load_engine_settings
from medconsole.core.lifecycle import LifecycleController
from medconsole.core.sources import build_readers
from medconsole.core.store import StoreGroup, create_store_group

from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import health, tasks, users
from .services.query_service import QueryService

log = structlog.get_logger()


def init_app_state(
    app: FastAPI,
    store_group: StoreGroup,
    settings: EngineSettings | None = None,
) -> None:
    """装配任务引擎组件到 app.state（lifespan 与测试共用）"""
    settings = settings or load_engine_settings()
    aggregator = Aggregator(build_readers(store_group, settings), settings)
    app.state.store_group = store_group
    app.state.engine_settings = settings
    app.state.query_service = QueryService(aggregator)
    app.state.lifecycle = LifecycleController(store_group, settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 与引擎组件，关闭时清理连接"""
    db_path = get_db_path()
    store_group = await create_store_group(db_path)
    init_app_state(app, store_group)
    settings = app.state.engine_settings
    log.info(
        "task_engine_initialized",
        db_path=db_path,
        reader_timeout_s=settings.reader_timeout_s,
        max_concurrency=settings.max_concurrency,
        feed_cache_ttl_s=settings.feed_cache_ttl_s,
    )

    yield

    if getattr(app.state, "store_group", None):
        await app.state.store_group.conn.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="MedConsole Task Engine",
        version="0.1.0",
        description="统一任务流物化与生命周期 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()
    setup_logfire()

    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(users.router, tags=["users"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
