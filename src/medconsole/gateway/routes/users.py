"""用户列表路由 -- 负责人筛选下拉数据源"""

from fastapi import APIRouter, Depends
from medconsole.core.store import StoreGroup

from ..deps import get_store_group

router = APIRouter()


@router.get("/api/users")
async def list_users(store_group: StoreGroup = Depends(get_store_group)):
    """返回 [{id, name, role}]"""
    users = await store_group.reference_store.list_users()
    return [
        {
            "id": user.id,
            "name": f"{user.first_name} {user.last_name}".strip() or user.email,
            "role": user.role,
        }
        for user in users
    ]
