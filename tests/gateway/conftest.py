"""gateway 测试配置 -- FastAPI app（绕过 lifespan）+ httpx AsyncClient"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from medconsole.core.config import EngineSettings
from medconsole.core.store import StoreGroup


@pytest_asyncio.fixture
async def app(store_group: StoreGroup, tmp_db_path: Path):
    """创建测试用 FastAPI app 实例，共享根 conftest 的 StoreGroup"""
    os.environ["MEDCONSOLE_DB_PATH"] = str(tmp_db_path)
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from medconsole.gateway.main import create_app, init_app_state

    application = create_app()

    # 手动初始化（绕过 lifespan）
    init_app_state(application, store_group, EngineSettings())

    yield application

    for key in ["MEDCONSOLE_DB_PATH", "LOGFIRE_SEND_TO_LOGFIRE"]:
        os.environ.pop(key, None)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
