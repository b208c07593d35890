"""全局 pytest 配置 -- 临时 SQLite StoreGroup + 引用实体种子数据"""

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from medconsole.core.config import EngineSettings
from medconsole.core.models import AssigneeRef, ClientKind, ClientRef
from medconsole.core.store import StoreGroup, create_store_group


@dataclass(frozen=True)
class Refs:
    """测试用引用实体"""

    alice: AssigneeRef
    bob: AssigneeRef
    patient: ClientRef
    company: ClientRef


@pytest.fixture
def now() -> datetime:
    """固定评估时间：2024-01-15 09:00 UTC"""
    return datetime(2024, 1, 15, 9, 0, tzinfo=UTC)


@pytest.fixture
def january() -> tuple[datetime, datetime]:
    """2024 年 1 月窗口"""
    return (
        datetime(2024, 1, 1, tzinfo=UTC),
        datetime(2024, 1, 31, 23, 59, 59, tzinfo=UTC),
    )


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供已初始化的临时 StoreGroup"""
    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.conn.close()


@pytest_asyncio.fixture
async def refs(store_group: StoreGroup) -> Refs:
    """写入两名用户、一名患者、一家公司"""
    alice = AssigneeRef(
        id="u-alice",
        first_name="Alice",
        last_name="Martin",
        email="alice@example.com",
        role="EMPLOYEE",
    )
    bob = AssigneeRef(
        id="u-bob",
        first_name="Bob",
        last_name="Trabelsi",
        email="bob@example.com",
        role="ADMIN",
    )
    ref_store = store_group.reference_store
    await ref_store.add_user(alice)
    await ref_store.add_user(bob)
    await ref_store.add_patient("p-1", "Sami", "Ben Ali", telephone="+21620000000")
    await ref_store.add_company("c-1", "Clinique Nord", telephone="+21671000000")
    await store_group.conn.commit()
    return Refs(
        alice=alice,
        bob=bob,
        patient=ClientRef(
            id="p-1", name="Sami Ben Ali", type=ClientKind.PATIENT, telephone="+21620000000"
        ),
        company=ClientRef(
            id="c-1", name="Clinique Nord", type=ClientKind.COMPANY, telephone="+21671000000"
        ),
    )
