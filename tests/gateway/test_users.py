"""用户列表 API 测试"""

from httpx import AsyncClient


class TestListUsers:
    async def test_users_sorted_with_display_name(self, client: AsyncClient, refs):
        resp = await client.get("/api/users")
        assert resp.status_code == 200
        assert resp.json() == [
            {"id": "u-alice", "name": "Alice Martin", "role": "EMPLOYEE"},
            {"id": "u-bob", "name": "Bob Trabelsi", "role": "ADMIN"},
        ]

    async def test_empty_directory(self, client: AsyncClient):
        resp = await client.get("/api/users")
        assert resp.status_code == 200
        assert resp.json() == []
