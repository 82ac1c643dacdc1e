"""TaskEventStore SQLite 实现

事件表 append-only：只允许插入，不允许更新或删除（表上有触发器兜底）。
"""

import json

import aiosqlite

from ..models.event import TaskEvent
from ..models.payloads import payload_from_states
from .codec import from_db_ts, to_db_ts


class SqliteTaskEventStore:
    """TaskEventStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_event(self, event: TaskEvent) -> None:
        """追加事件（append-only）

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        before_state = event.before_state
        await self._conn.execute(
            """
            INSERT INTO task_events (event_id, task_id, actor_user_id, kind,
                                     schema_version, before_state, after_state, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.event_id,
                event.task_id,
                event.actor_user_id,
                event.kind.value,
                event.schema_version,
                json.dumps(before_state, ensure_ascii=False) if before_state is not None else None,
                json.dumps(event.after_state, ensure_ascii=False),
                to_db_ts(event.created_at),
            ),
        )

    async def get_events_for_task(
        self,
        task_id: str,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[TaskEvent]:
        """查询指定任务的事件

        Args:
            task_id: 任务 ID
            limit: 最多返回条数，None 表示全部
            newest_first: True 时按时间倒序
        """
        direction = "DESC" if newest_first else "ASC"
        sql = (
            "SELECT * FROM task_events WHERE task_id = ? "
            f"ORDER BY created_at {direction}, event_id {direction}"
        )
        params: list = [task_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    async def count_events(self, task_id: str) -> int:
        """统计指定任务的事件数"""
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM task_events WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> TaskEvent:
        """将数据库行转换为 TaskEvent 模型"""
        before = json.loads(row["before_state"]) if row["before_state"] else None
        after = json.loads(row["after_state"]) if row["after_state"] else None
        return TaskEvent(
            event_id=row["event_id"],
            task_id=row["task_id"],
            actor_user_id=row["actor_user_id"],
            payload=payload_from_states(row["kind"], before, after),
            schema_version=row["schema_version"],
            created_at=from_db_ts(row["created_at"]),
        )
