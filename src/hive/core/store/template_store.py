"""RecurringTemplateStore SQLite 实现

写方法不自动提交事务，需由调用方管理事务。
"""

from datetime import datetime
from typing import Any

import aiosqlite

from ..models.template import RecurringTemplate, ScheduleSpec
from .codec import from_db_ts, to_db_ts, to_db_value

_UPDATABLE_COLUMNS = frozenset(
    {
        "project_id",
        "title",
        "detail",
        "assignee_user_id",
        "cron_expr",
        "every_interval",
        "every_unit",
        "week_parity",
        "timezone",
        "start_at",
        "end_at",
        "repeat_count",
        "run_count",
        "initial_status",
        "enabled",
        "last_run_at",
        "next_run_at",
    }
)


class SqliteTemplateStore:
    """RecurringTemplateStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_template(self, template: RecurringTemplate) -> None:
        """创建模板记录"""
        schedule = template.schedule
        await self._conn.execute(
            """
            INSERT INTO recurring_templates (
                template_id, project_id, title, detail, assignee_user_id,
                creator_user_id, cron_expr, every_interval, every_unit, week_parity,
                timezone, start_at, end_at, repeat_count, run_count, initial_status,
                enabled, last_run_at, next_run_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                template.template_id,
                template.project_id,
                template.title,
                template.detail,
                template.assignee_user_id,
                template.creator_user_id,
                schedule.cron_expr,
                schedule.every_interval,
                schedule.every_unit.value if schedule.every_unit else None,
                schedule.week_parity.value,
                template.timezone,
                to_db_ts(template.start_at),
                to_db_ts(template.end_at),
                template.repeat_count,
                template.run_count,
                template.initial_status.value,
                int(template.enabled),
                to_db_ts(template.last_run_at),
                to_db_ts(template.next_run_at),
                to_db_ts(template.created_at),
                to_db_ts(template.updated_at),
            ),
        )

    async def get_template(self, template_id: str) -> RecurringTemplate | None:
        """根据 template_id 查询模板"""
        cursor = await self._conn.execute(
            "SELECT * FROM recurring_templates WHERE template_id = ?",
            (template_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_template(row)

    async def list_templates(
        self,
        include_disabled: bool = False,
        project_id: str | None = None,
    ) -> list[RecurringTemplate]:
        """查询模板列表，按标题排序"""
        conditions: list[str] = []
        params: list[Any] = []
        if not include_disabled:
            conditions.append("enabled = 1")
        if project_id is not None:
            conditions.append("project_id = ?")
            params.append(project_id)
        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        cursor = await self._conn.execute(
            f"SELECT * FROM recurring_templates {where_clause} ORDER BY title ASC, created_at ASC",
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_template(row) for row in rows]

    async def list_due_templates(self, now: datetime) -> list[RecurringTemplate]:
        """查询到期模板：enabled 且 next_run_at 为空或 <= now，且已到 start_at"""
        now_ts = to_db_ts(now)
        cursor = await self._conn.execute(
            """
            SELECT * FROM recurring_templates
            WHERE enabled = 1
              AND (next_run_at IS NULL OR next_run_at <= ?)
              AND start_at <= ?
            ORDER BY next_run_at ASC NULLS FIRST, created_at ASC
            """,
            (now_ts, now_ts),
        )
        rows = await cursor.fetchall()
        return [self._row_to_template(row) for row in rows]

    async def update_template_fields(
        self,
        template_id: str,
        fields: dict[str, Any],
        updated_at: str,
    ) -> None:
        """更新模板字段（仅允许白名单列）"""
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns not updatable: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{column} = ?" for column in fields)
        values = [to_db_value(value) for value in fields.values()]
        await self._conn.execute(
            f"UPDATE recurring_templates SET {assignments}, updated_at = ? WHERE template_id = ?",
            [*values, updated_at, template_id],
        )

    async def delete_template(self, template_id: str) -> bool:
        """删除模板，返回是否删除了记录"""
        cursor = await self._conn.execute(
            "DELETE FROM recurring_templates WHERE template_id = ?",
            (template_id,),
        )
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_template(row: aiosqlite.Row) -> RecurringTemplate:
        """将数据库行转换为 RecurringTemplate 模型"""
        return RecurringTemplate(
            template_id=row["template_id"],
            project_id=row["project_id"],
            title=row["title"],
            detail=row["detail"],
            assignee_user_id=row["assignee_user_id"],
            creator_user_id=row["creator_user_id"],
            schedule=ScheduleSpec.model_construct(
                cron_expr=row["cron_expr"],
                every_interval=row["every_interval"],
                every_unit=row["every_unit"],
                week_parity=row["week_parity"],
            ),
            timezone=row["timezone"],
            start_at=from_db_ts(row["start_at"]),
            end_at=from_db_ts(row["end_at"]),
            repeat_count=row["repeat_count"],
            run_count=row["run_count"],
            initial_status=row["initial_status"],
            enabled=bool(row["enabled"]),
            last_run_at=from_db_ts(row["last_run_at"]),
            next_run_at=from_db_ts(row["next_run_at"]),
            created_at=from_db_ts(row["created_at"]),
            updated_at=from_db_ts(row["updated_at"]),
        )
