"""ReferenceStore SQLite 实现 -- 用户 / 患者 / 公司"""

import aiosqlite

from ..models.task import AssigneeRef


class SqliteReferenceStore:
    """引用实体读写（种子数据与用户列表）"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def add_user(self, user: AssigneeRef) -> None:
        await self._conn.execute(
            "INSERT INTO users (id, first_name, last_name, email, role) VALUES (?, ?, ?, ?, ?)",
            (user.id, user.first_name, user.last_name, user.email, user.role),
        )

    async def add_patient(
        self,
        patient_id: str,
        first_name: str,
        last_name: str,
        telephone: str | None = None,
        patient_code: str | None = None,
    ) -> None:
        await self._conn.execute(
            """
            INSERT INTO patients (id, first_name, last_name, telephone, patient_code)
            VALUES (?, ?, ?, ?, ?)
            """,
            (patient_id, first_name, last_name, telephone, patient_code),
        )

    async def add_company(
        self,
        company_id: str,
        company_name: str,
        telephone: str | None = None,
    ) -> None:
        await self._conn.execute(
            "INSERT INTO companies (id, company_name, telephone) VALUES (?, ?, ?)",
            (company_id, company_name, telephone),
        )

    async def get_user(self, user_id: str) -> AssigneeRef | None:
        cursor = await self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    async def list_users(self) -> list[AssigneeRef]:
        """按姓名排序"""
        cursor = await self._conn.execute(
            "SELECT * FROM users ORDER BY first_name, last_name, id"
        )
        rows = await cursor.fetchall()
        return [self._row_to_user(row) for row in rows]

    @staticmethod
    def _row_to_user(row: aiosqlite.Row) -> AssigneeRef:
        return AssigneeRef(
            id=row["id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            email=row["email"],
            role=row["role"],
        )
