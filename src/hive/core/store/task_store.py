"""TaskStore SQLite 实现

只提供数据库操作，写方法不自动提交事务，需由调用方在
StoreGroup.transaction() 内调用。
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

import aiosqlite

from ..models.enums import STATUS_PRIORITY, TaskSort, TaskStatus
from ..models.task import ListTasksQuery, Task
from .codec import from_db_ts, to_db_ts, to_db_value

# update_task_fields 允许写入的列
_UPDATABLE_COLUMNS = frozenset(
    {
        "project_id",
        "title",
        "detail",
        "assignee_user_id",
        "status",
        "must_be_done_after_task_id",
        "on_or_after_at",
        "sort_key",
        "next_task_id",
        "next_task_assignee_user_id",
        "completed_at",
    }
)

_STATUS_PRIORITY_SQL = (
    "CASE status "
    + " ".join(f"WHEN '{status.value}' THEN {rank}" for status, rank in STATUS_PRIORITY.items())
    + " END"
)


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> None:
        """创建任务记录"""
        await self._conn.execute(
            """
            INSERT INTO tasks (task_id, project_id, title, detail, creator_user_id,
                               assignee_user_id, status, must_be_done_after_task_id,
                               on_or_after_at, sort_key, next_task_id,
                               next_task_assignee_user_id, recurring_template_id,
                               recurring_instance_at, created_at, updated_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.task_id,
                task.project_id,
                task.title,
                task.detail,
                task.creator_user_id,
                task.assignee_user_id,
                task.status.value,
                task.must_be_done_after_task_id,
                to_db_ts(task.on_or_after_at),
                task.sort_key,
                task.next_task_id,
                task.next_task_assignee_user_id,
                task.recurring_template_id,
                to_db_ts(task.recurring_instance_at),
                to_db_ts(task.created_at),
                to_db_ts(task.updated_at),
                to_db_ts(task.completed_at),
            ),
        )

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            "SELECT * FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def get_statuses(self, task_ids: Iterable[str]) -> dict[str, TaskStatus]:
        """批量查询任务状态（单次查询，无论数量多少）"""
        ids = sorted(set(task_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        cursor = await self._conn.execute(
            f"SELECT task_id, status FROM tasks WHERE task_id IN ({placeholders})",
            ids,
        )
        rows = await cursor.fetchall()
        return {row["task_id"]: TaskStatus(row["status"]) for row in rows}

    async def list_tasks(
        self,
        query: ListTasksQuery,
        visible_project_ids: set[str] | None = None,
        now: datetime | None = None,
    ) -> list[Task]:
        """按条件查询任务列表

        Args:
            query: 筛选 + 排序条件
            visible_project_ids: 调用方可见的项目 ID；None 表示不做可见性过滤
            now: 当前时间；query.include_future 为 False 时隐藏 on_or_after_at 晚于 now 的任务，
                为 None 时不做该过滤
        """
        conditions: list[str] = []
        params: list[Any] = []

        if query.statuses:
            placeholders = ", ".join("?" for _ in query.statuses)
            conditions.append(f"status IN ({placeholders})")
            params.extend(s.value for s in query.statuses)
        elif not query.include_completed:
            conditions.append("status NOT IN (?, ?)")
            params.extend([TaskStatus.COMPLETE.value, TaskStatus.CLOSED.value])

        if query.assignee_user_id:
            conditions.append("assignee_user_id = ?")
            params.append(query.assignee_user_id)

        if query.assignee_user_ids:
            placeholders = ", ".join("?" for _ in query.assignee_user_ids)
            clause = f"assignee_user_id IN ({placeholders})"
            if query.include_unassigned:
                clause = f"({clause} OR assignee_user_id IS NULL)"
            conditions.append(clause)
            params.extend(query.assignee_user_ids)
        elif query.include_unassigned:
            conditions.append("assignee_user_id IS NULL")

        if query.project_id:
            conditions.append("project_id = ?")
            params.append(query.project_id)

        if query.creator_user_id:
            conditions.append("creator_user_id = ?")
            params.append(query.creator_user_id)

        if query.query:
            conditions.append("(title LIKE ? OR detail LIKE ?)")
            pattern = f"%{query.query}%"
            params.extend([pattern, pattern])

        if not query.include_future and now is not None:
            conditions.append("(on_or_after_at IS NULL OR on_or_after_at <= ?)")
            params.append(to_db_ts(now))

        if visible_project_ids is not None:
            if visible_project_ids:
                placeholders = ", ".join("?" for _ in visible_project_ids)
                conditions.append(f"(project_id IS NULL OR project_id IN ({placeholders}))")
                params.extend(sorted(visible_project_ids))
            else:
                conditions.append("project_id IS NULL")

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        direction = "DESC" if query.sort_dir == "desc" else "ASC"
        if query.sort == TaskSort.CREATED_AT:
            order_clause = f"ORDER BY created_at {direction}, task_id {direction}"
        elif query.sort == TaskSort.UPDATED_AT:
            order_clause = f"ORDER BY updated_at {direction}, task_id {direction}"
        else:
            order_clause = (
                f"ORDER BY {_STATUS_PRIORITY_SQL}, sort_key ASC NULLS LAST, "
                "created_at ASC, task_id ASC"
            )

        cursor = await self._conn.execute(
            f"SELECT * FROM tasks {where_clause} {order_clause} LIMIT ?",
            [*params, query.limit],
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def update_task_fields(
        self,
        task_id: str,
        fields: dict[str, Any],
        updated_at: str,
    ) -> None:
        """更新任务字段（仅允许白名单列）"""
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns not updatable: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{column} = ?" for column in fields)
        values = [to_db_value(value) for value in fields.values()]
        await self._conn.execute(
            f"UPDATE tasks SET {assignments}, updated_at = ? WHERE task_id = ?",
            [*values, updated_at, task_id],
        )

    # ---- 排序键原语 ----

    async def max_sort_key(
        self,
        status: TaskStatus,
        exclude_task_id: str | None = None,
    ) -> int | None:
        """状态桶内最大排序键"""
        cursor = await self._conn.execute(
            "SELECT MAX(sort_key) FROM tasks WHERE status = ? AND task_id != ?",
            (status.value, exclude_task_id or ""),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def prev_sort_key(
        self,
        status: TaskStatus,
        below: int,
        exclude_task_id: str,
    ) -> int | None:
        """状态桶内严格小于 below 的最大排序键"""
        cursor = await self._conn.execute(
            """
            SELECT sort_key FROM tasks
            WHERE status = ? AND sort_key IS NOT NULL AND sort_key < ? AND task_id != ?
            ORDER BY sort_key DESC
            LIMIT 1
            """,
            (status.value, below, exclude_task_id),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def list_bucket_ids(self, status: TaskStatus) -> list[str]:
        """状态桶内任务 ID，按 (sort_key 升序 nulls last, created_at 升序, task_id 升序)"""
        cursor = await self._conn.execute(
            """
            SELECT task_id FROM tasks
            WHERE status = ?
            ORDER BY sort_key ASC NULLS LAST, created_at ASC, task_id ASC
            """,
            (status.value,),
        )
        rows = await cursor.fetchall()
        return [row["task_id"] for row in rows]

    async def clear_bucket_sort_keys(self, status: TaskStatus) -> None:
        """清空状态桶内所有排序键（重排前释放唯一索引占用）"""
        await self._conn.execute(
            "UPDATE tasks SET sort_key = NULL WHERE status = ?",
            (status.value,),
        )

    async def set_sort_key(self, task_id: str, sort_key: int) -> None:
        """直接写入排序键（仅供重排使用，不更新 updated_at）"""
        await self._conn.execute(
            "UPDATE tasks SET sort_key = ? WHERE task_id = ?",
            (sort_key, task_id),
        )

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            task_id=row["task_id"],
            project_id=row["project_id"],
            title=row["title"],
            detail=row["detail"],
            creator_user_id=row["creator_user_id"],
            assignee_user_id=row["assignee_user_id"],
            status=row["status"],
            must_be_done_after_task_id=row["must_be_done_after_task_id"],
            on_or_after_at=from_db_ts(row["on_or_after_at"]),
            sort_key=row["sort_key"],
            next_task_id=row["next_task_id"],
            next_task_assignee_user_id=row["next_task_assignee_user_id"],
            recurring_template_id=row["recurring_template_id"],
            recurring_instance_at=from_db_ts(row["recurring_instance_at"]),
            created_at=from_db_ts(row["created_at"]),
            updated_at=from_db_ts(row["updated_at"]),
            completed_at=from_db_ts(row["completed_at"]),
        )
