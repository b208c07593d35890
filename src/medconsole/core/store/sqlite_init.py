"""SQLite 数据库初始化

PRAGMA 配置 + 业务域表 DDL + 索引创建。
所有可变源表带 version 列，用于乐观锁 compare-and-set。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# 引用表：用户 / 患者 / 公司
_REFERENCE_DDL = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id          TEXT PRIMARY KEY,
        first_name  TEXT NOT NULL DEFAULT '',
        last_name   TEXT NOT NULL DEFAULT '',
        email       TEXT NOT NULL DEFAULT '',
        role        TEXT NOT NULL DEFAULT 'EMPLOYEE'
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS patients (
        id            TEXT PRIMARY KEY,
        first_name    TEXT NOT NULL DEFAULT '',
        last_name     TEXT NOT NULL DEFAULT '',
        telephone     TEXT,
        patient_code  TEXT
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS companies (
        id            TEXT PRIMARY KEY,
        company_name  TEXT NOT NULL DEFAULT '',
        telephone     TEXT
    );
    """,
]

# manual_tasks 表：唯一持久化状态的任务类型
_MANUAL_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS manual_tasks (
    id            TEXT PRIMARY KEY,
    title         TEXT NOT NULL DEFAULT '',
    description   TEXT,
    notes         TEXT,
    status        TEXT NOT NULL DEFAULT 'TODO',
    priority      TEXT NOT NULL DEFAULT 'MEDIUM',
    start_date    TEXT NOT NULL,
    end_date      TEXT,
    assigned_to   TEXT REFERENCES users(id),
    patient_id    TEXT REFERENCES patients(id),
    company_id    TEXT REFERENCES companies(id),
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL,
    completed_at  TEXT,
    completed_by  TEXT,
    version       INTEGER NOT NULL DEFAULT 1
);
"""

_DIAGNOSTICS_DDL = """
CREATE TABLE IF NOT EXISTS diagnostics (
    id               TEXT PRIMARY KEY,
    diagnostic_code  TEXT NOT NULL DEFAULT '',
    status           TEXT NOT NULL DEFAULT 'PENDING',
    device_name      TEXT,
    patient_id       TEXT REFERENCES patients(id),
    company_id       TEXT REFERENCES companies(id),
    assigned_to      TEXT REFERENCES users(id),
    created_at       TEXT NOT NULL,
    follow_up_date   TEXT,
    updated_at       TEXT NOT NULL,
    version          INTEGER NOT NULL DEFAULT 1
);
"""

_MEDICAL_DEVICES_DDL = """
CREATE TABLE IF NOT EXISTS medical_devices (
    id             TEXT PRIMARY KEY,
    name           TEXT NOT NULL DEFAULT '',
    serial_number  TEXT,
    status         TEXT NOT NULL DEFAULT 'ACTIVE',
    created_at     TEXT NOT NULL,
    version        INTEGER NOT NULL DEFAULT 1
);
"""

_REPAIR_LOGS_DDL = """
CREATE TABLE IF NOT EXISTS repair_logs (
    id                 TEXT PRIMARY KEY,
    medical_device_id  TEXT NOT NULL REFERENCES medical_devices(id),
    repair_date        TEXT NOT NULL
);
"""

_RENTALS_DDL = """
CREATE TABLE IF NOT EXISTS rentals (
    id                       TEXT PRIMARY KEY,
    rental_code              TEXT NOT NULL DEFAULT '',
    status                   TEXT NOT NULL DEFAULT 'ACTIVE',
    device_name              TEXT,
    medical_device_id        TEXT REFERENCES medical_devices(id),
    patient_id               TEXT REFERENCES patients(id),
    company_id               TEXT REFERENCES companies(id),
    assigned_to              TEXT REFERENCES users(id),
    start_date               TEXT NOT NULL,
    end_date                 TEXT,
    alert_date               TEXT,
    titration_reminder_date  TEXT,
    appointment_date         TEXT,
    updated_at               TEXT NOT NULL,
    version                  INTEGER NOT NULL DEFAULT 1
);
"""

_PAYMENTS_DDL = """
CREATE TABLE IF NOT EXISTS payments (
    id               TEXT PRIMARY KEY,
    payment_code     TEXT NOT NULL DEFAULT '',
    status           TEXT NOT NULL DEFAULT 'PENDING',
    amount           REAL NOT NULL DEFAULT 0,
    paid_amount      REAL NOT NULL DEFAULT 0,
    due_date         TEXT,
    period_end_date  TEXT,
    rental_id        TEXT REFERENCES rentals(id),
    patient_id       TEXT REFERENCES patients(id),
    company_id       TEXT REFERENCES companies(id),
    assigned_to      TEXT REFERENCES users(id),
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL,
    version          INTEGER NOT NULL DEFAULT 1
);
"""

_APPOINTMENTS_DDL = """
CREATE TABLE IF NOT EXISTS appointments (
    id                TEXT PRIMARY KEY,
    appointment_code  TEXT NOT NULL DEFAULT '',
    appointment_type  TEXT NOT NULL DEFAULT '',
    status            TEXT NOT NULL DEFAULT 'SCHEDULED',
    priority          TEXT NOT NULL DEFAULT 'NORMAL',
    scheduled_date    TEXT NOT NULL,
    location          TEXT,
    notes             TEXT,
    patient_id        TEXT REFERENCES patients(id),
    company_id        TEXT REFERENCES companies(id),
    assigned_to       TEXT REFERENCES users(id),
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL,
    completed_at      TEXT,
    completed_by      TEXT,
    version           INTEGER NOT NULL DEFAULT 1
);
"""

_CNAM_BONS_DDL = """
CREATE TABLE IF NOT EXISTS cnam_bons (
    id           TEXT PRIMARY KEY,
    bon_number   TEXT NOT NULL DEFAULT '',
    bon_type     TEXT NOT NULL DEFAULT '',
    status       TEXT NOT NULL DEFAULT 'EN_ATTENTE_APPROBATION',
    start_date   TEXT NOT NULL,
    end_date     TEXT NOT NULL,
    rental_id    TEXT REFERENCES rentals(id),
    patient_id   TEXT REFERENCES patients(id),
    company_id   TEXT REFERENCES companies(id),
    assigned_to  TEXT REFERENCES users(id),
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,
    version      INTEGER NOT NULL DEFAULT 1
);
"""

_SALES_DDL = """
CREATE TABLE IF NOT EXISTS sales (
    id                 TEXT PRIMARY KEY,
    sale_code          TEXT NOT NULL DEFAULT '',
    status             TEXT NOT NULL DEFAULT 'COMPLETED',
    device_name        TEXT,
    sale_date          TEXT NOT NULL,
    patient_id         TEXT REFERENCES patients(id),
    company_id         TEXT REFERENCES companies(id),
    assigned_to        TEXT REFERENCES users(id),
    rappel_2y_done_at  TEXT,
    rappel_7y_done_at  TEXT,
    updated_at         TEXT NOT NULL,
    version            INTEGER NOT NULL DEFAULT 1
);
"""

_NOTIFICATIONS_DDL = """
CREATE TABLE IF NOT EXISTS notifications (
    id          TEXT PRIMARY KEY,
    type        TEXT NOT NULL,
    status      TEXT NOT NULL DEFAULT 'PENDING',
    related_id  TEXT,
    title       TEXT NOT NULL DEFAULT '',
    created_at  TEXT NOT NULL,
    read_at     TEXT
);
"""

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_manual_tasks_end_date ON manual_tasks(end_date);",
    "CREATE INDEX IF NOT EXISTS idx_manual_tasks_start_date ON manual_tasks(start_date);",
    "CREATE INDEX IF NOT EXISTS idx_diagnostics_status ON diagnostics(status);",
    "CREATE INDEX IF NOT EXISTS idx_rentals_status ON rentals(status);",
    "CREATE INDEX IF NOT EXISTS idx_rentals_end_date ON rentals(end_date);",
    "CREATE INDEX IF NOT EXISTS idx_payments_due_date ON payments(due_date);",
    "CREATE INDEX IF NOT EXISTS idx_payments_period_end ON payments(period_end_date);",
    "CREATE INDEX IF NOT EXISTS idx_appointments_scheduled ON appointments(scheduled_date);",
    "CREATE INDEX IF NOT EXISTS idx_cnam_bons_end_date ON cnam_bons(end_date);",
    "CREATE INDEX IF NOT EXISTS idx_sales_sale_date ON sales(sale_date);",
    "CREATE INDEX IF NOT EXISTS idx_repair_logs_device ON repair_logs(medical_device_id, repair_date);",
    "CREATE INDEX IF NOT EXISTS idx_notifications_related ON notifications(related_id, type);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表（被引用表在前）
    for ddl in _REFERENCE_DDL:
        await conn.execute(ddl)
    for ddl in (
        _MANUAL_TASKS_DDL,
        _DIAGNOSTICS_DDL,
        _MEDICAL_DEVICES_DDL,
        _REPAIR_LOGS_DDL,
        _RENTALS_DDL,
        _PAYMENTS_DDL,
        _APPOINTMENTS_DDL,
        _CNAM_BONS_DDL,
        _SALES_DDL,
        _NOTIFICATIONS_DDL,
    ):
        await conn.execute(ddl)

    # 创建索引
    for idx_sql in _INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
