"""SQLite 数据库初始化

PRAGMA 配置 + 四张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# projects 表 DDL（仅用于可见性过滤）
_PROJECTS_DDL = """
CREATE TABLE IF NOT EXISTS projects (
    project_id    TEXT PRIMARY KEY,
    title         TEXT NOT NULL DEFAULT '',
    tagged_users  TEXT,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);
"""

# tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id                     TEXT PRIMARY KEY,
    project_id                  TEXT,
    title                       TEXT NOT NULL,
    detail                      TEXT,
    creator_user_id             TEXT NOT NULL,
    assignee_user_id            TEXT,
    status                      TEXT NOT NULL DEFAULT 'queued',
    must_be_done_after_task_id  TEXT,
    on_or_after_at              TEXT,
    sort_key                    INTEGER,
    next_task_id                TEXT,
    next_task_assignee_user_id  TEXT,
    recurring_template_id       TEXT,
    recurring_instance_at       TEXT,
    created_at                  TEXT NOT NULL,
    updated_at                  TEXT NOT NULL,
    completed_at                TEXT
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_assignee ON tasks(assignee_user_id);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id);",
    # 同一状态桶内非空排序键唯一（并发重排不会产生重复键）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_status_sort_key "
        "ON tasks(status, sort_key) WHERE sort_key IS NOT NULL;"
    ),
]

# task_events 表 DDL（append-only）
_TASK_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS task_events (
    event_id        TEXT PRIMARY KEY,
    task_id         TEXT NOT NULL,
    actor_user_id   TEXT NOT NULL,
    kind            TEXT NOT NULL,
    schema_version  INTEGER NOT NULL DEFAULT 1,
    before_state    TEXT,
    after_state     TEXT,
    created_at      TEXT NOT NULL,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_TASK_EVENTS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_task_events_task ON task_events(task_id, created_at);",
]

# 事件表禁止更新和删除
_TASK_EVENTS_TRIGGERS = [
    """
    CREATE TRIGGER IF NOT EXISTS trg_task_events_no_update
    BEFORE UPDATE ON task_events
    BEGIN
        SELECT RAISE(ABORT, 'task_events is append-only');
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_task_events_no_delete
    BEFORE DELETE ON task_events
    BEGIN
        SELECT RAISE(ABORT, 'task_events is append-only');
    END;
    """,
]

# recurring_templates 表 DDL
_TEMPLATES_DDL = """
CREATE TABLE IF NOT EXISTS recurring_templates (
    template_id       TEXT PRIMARY KEY,
    project_id        TEXT,
    title             TEXT NOT NULL,
    detail            TEXT,
    assignee_user_id  TEXT,
    creator_user_id   TEXT NOT NULL DEFAULT 'system',
    cron_expr         TEXT,
    every_interval    INTEGER,
    every_unit        TEXT,
    week_parity       TEXT NOT NULL DEFAULT 'any',
    timezone          TEXT NOT NULL,
    start_at          TEXT NOT NULL,
    end_at            TEXT,
    repeat_count      INTEGER,
    run_count         INTEGER NOT NULL DEFAULT 0,
    initial_status    TEXT NOT NULL DEFAULT 'ready',
    enabled           INTEGER NOT NULL DEFAULT 1,
    last_run_at       TEXT,
    next_run_at       TEXT,
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);
"""

_TEMPLATES_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_templates_due ON recurring_templates(enabled, next_run_at);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    conn.row_factory = aiosqlite.Row

    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    await conn.execute(_PROJECTS_DDL)
    await conn.execute(_TASKS_DDL)
    await conn.execute(_TASK_EVENTS_DDL)
    await conn.execute(_TEMPLATES_DDL)

    for idx_sql in _TASKS_INDEXES + _TASK_EVENTS_INDEXES + _TEMPLATES_INDEXES:
        await conn.execute(idx_sql)
    for trigger_sql in _TASK_EVENTS_TRIGGERS:
        await conn.execute(trigger_sql)

    await conn.commit()


async def init_read_connection(conn: aiosqlite.Connection) -> None:
    """初始化只读连接：只设置 PRAGMA，不建表

    每条 SELECT 在 WAL 下读取最近一次提交的快照，不受写连接上未提交事务影响。
    """
    conn.row_factory = aiosqlite.Row

    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")
    await conn.execute("PRAGMA query_only = ON;")


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
