"""依赖注入模块 -- 通过 FastAPI Depends 注入服务实例

实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from fastapi import Request
from medconsole.core.lifecycle import LifecycleController
from medconsole.core.store import StoreGroup

from .services.query_service import QueryService


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_query_service(request: Request) -> QueryService:
    """从 app.state 获取 QueryService 实例"""
    return request.app.state.query_service


def get_lifecycle(request: Request) -> LifecycleController:
    """从 app.state 获取 LifecycleController 实例"""
    return request.app.state.lifecycle
