"""负责人 / 客户引用的公共 SQL 片段与行映射

各业务域 Store 通过自身外键（assigned_to / patient_id / company_id）
关联 users / patients / companies，不做跨业务域 join。
"""

import aiosqlite

from ..models.enums import ClientKind
from ..models.records import DomainRecord
from ..models.task import AssigneeRef, ClientRef

REF_COLUMNS = """
    u.id AS ref_user_id, u.first_name AS ref_user_first_name,
    u.last_name AS ref_user_last_name, u.email AS ref_user_email, u.role AS ref_user_role,
    p.id AS ref_patient_id, p.first_name AS ref_patient_first_name,
    p.last_name AS ref_patient_last_name, p.telephone AS ref_patient_telephone,
    co.id AS ref_company_id, co.company_name AS ref_company_name,
    co.telephone AS ref_company_telephone
"""


def ref_joins(alias: str) -> str:
    """生成指定表别名的引用 LEFT JOIN 子句"""
    return (
        f"LEFT JOIN users u ON u.id = {alias}.assigned_to "
        f"LEFT JOIN patients p ON p.id = {alias}.patient_id "
        f"LEFT JOIN companies co ON co.id = {alias}.company_id"
    )


def ref_ids(record: DomainRecord) -> tuple[str | None, str | None, str | None]:
    """记录引用 -> (assigned_to, patient_id, company_id) 外键值"""
    assigned_to = record.assignee.id if record.assignee else None
    patient_id = company_id = None
    if record.client is not None:
        if record.client.type == ClientKind.PATIENT:
            patient_id = record.client.id
        else:
            company_id = record.client.id
    return assigned_to, patient_id, company_id


def row_to_assignee(row: aiosqlite.Row) -> AssigneeRef | None:
    """未分配时返回 None（不做默认填充）"""
    if row["ref_user_id"] is None:
        return None
    return AssigneeRef(
        id=row["ref_user_id"],
        first_name=row["ref_user_first_name"],
        last_name=row["ref_user_last_name"],
        email=row["ref_user_email"],
        role=row["ref_user_role"],
    )


def row_to_client(row: aiosqlite.Row) -> ClientRef | None:
    """患者优先，其次公司"""
    if row["ref_patient_id"] is not None:
        name = f"{row['ref_patient_first_name']} {row['ref_patient_last_name']}".strip()
        return ClientRef(
            id=row["ref_patient_id"],
            name=name,
            type=ClientKind.PATIENT,
            telephone=row["ref_patient_telephone"],
        )
    if row["ref_company_id"] is not None:
        return ClientRef(
            id=row["ref_company_id"],
            name=row["ref_company_name"],
            type=ClientKind.COMPANY,
            telephone=row["ref_company_telephone"],
        )
    return None
