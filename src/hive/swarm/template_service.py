"""TemplateService -- 周期模板管理与 tick

tick 流程（每个到期模板独立处理，失败只计数不中断）：
1. 读连接列出到期模板
2. 每个模板单独开事务并重新读取；已删除、已停用或不再到期 -> 跳过
3. end_at 已过或 repeat_count 已满 -> 停用并跳过
4. 计算新的 next_run_at（调度规格非法在此失败，事务回滚）
5. 同一事务内创建任务并推进模板 last_run_at / next_run_at / run_count
"""

from datetime import datetime, timedelta
from typing import Any

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from hive.core.clock import Clock, ensure_utc
from hive.core.config import get_default_timezone
from hive.core.exceptions import NotFoundError, ValidationError
from hive.core.models import (
    CreateTaskInput,
    CreateTemplateInput,
    RecurringTemplate,
    ScheduleSpec,
    UpdateTemplateInput,
)
from hive.core.store import StoreGroup
from hive.core.store.codec import to_db_ts

from .recurrence import compute_next_run, validate_schedule
from .task_service import TaskService

log = structlog.get_logger()

_SCHEDULE_FIELDS = frozenset({"cron_expr", "every_interval", "every_unit", "week_parity"})
_RESCHEDULE_FIELDS = _SCHEDULE_FIELDS | {"timezone", "start_at"}


class TickResult(BaseModel):
    """一次 tick 的结果统计"""

    created: int = Field(default=0, description="生成的任务数")
    errors: int = Field(default=0, description="处理失败的模板数")


class TemplateService:
    """周期模板业务服务"""

    def __init__(self, store_group: StoreGroup, task_service: TaskService) -> None:
        self._stores = store_group
        self._tasks = task_service

    @property
    def clock(self) -> Clock:
        return self._tasks.clock

    # ---- CRUD ----

    async def create_template(self, data: CreateTemplateInput) -> RecurringTemplate:
        """创建模板并计算首次运行时间

        Raises:
            ValidationError: 调度规格、时区或起止时间非法
        """
        now = self.clock.now()
        timezone = data.timezone or get_default_timezone()
        schedule = data.schedule_spec()
        validate_schedule(schedule, timezone)

        start_at = ensure_utc(data.start_at) if data.start_at else now
        end_at = ensure_utc(data.end_at) if data.end_at else None
        if end_at is not None and end_at <= start_at:
            raise ValidationError("end_at must be after start_at")

        template = RecurringTemplate(
            template_id=str(ULID()),
            project_id=data.project_id,
            title=data.title,
            detail=data.detail,
            assignee_user_id=data.assignee_user_id,
            creator_user_id=data.creator_user_id,
            schedule=schedule,
            timezone=timezone,
            start_at=start_at,
            end_at=end_at,
            repeat_count=data.repeat_count,
            initial_status=data.initial_status,
            enabled=data.enabled,
            next_run_at=(
                self._first_run(schedule, timezone, start_at, now) if data.enabled else None
            ),
            created_at=now,
            updated_at=now,
        )
        async with self._stores.transaction():
            await self._stores.template_store.create_template(template)

        log.info(
            "recurring_template_created",
            template_id=template.template_id,
            next_run_at=to_db_ts(template.next_run_at),
        )
        return template

    async def get_template(self, template_id: str) -> RecurringTemplate:
        """Raises NotFoundError 如果模板不存在"""
        template = await self._stores.reader.template_store.get_template(template_id)
        if template is None:
            raise NotFoundError("template", template_id)
        return template

    async def list_templates(
        self,
        include_disabled: bool = False,
        project_id: str | None = None,
    ) -> list[RecurringTemplate]:
        reader = self._stores.reader
        return await reader.template_store.list_templates(include_disabled, project_id)

    async def update_template(
        self,
        template_id: str,
        data: UpdateTemplateInput,
    ) -> RecurringTemplate:
        """部分更新模板

        调度规格 / 时区 / start_at 变化时重新校验并重算 next_run_at。
        设置 cron_expr 会清空间隔字段，设置间隔字段会清空 cron_expr。

        Raises:
            NotFoundError: 模板不存在
            ValidationError: 合并后的调度规格非法
        """
        now = self.clock.now()
        async with self._stores.transaction():
            current = await self._require_template(template_id)
            requested = {name: getattr(data, name) for name in data.model_fields_set}
            if "title" in requested and requested["title"] is None:
                raise ValidationError("title cannot be cleared")

            fields: dict[str, Any] = {
                name: value
                for name, value in requested.items()
                if name not in _SCHEDULE_FIELDS
            }
            for name in ("start_at", "end_at"):
                if fields.get(name) is not None:
                    fields[name] = ensure_utc(fields[name])
            if "start_at" in fields and fields["start_at"] is None:
                raise ValidationError("start_at cannot be cleared")

            schedule = self._merge_schedule(current.schedule, requested)
            timezone = fields.get("timezone") or current.timezone
            start_at = fields.get("start_at", current.start_at)
            end_at = fields.get("end_at", current.end_at)
            if "timezone" in fields and fields["timezone"] is None:
                fields["timezone"] = current.timezone

            if end_at is not None and end_at <= start_at:
                raise ValidationError("end_at must be after start_at")

            if requested.keys() & _RESCHEDULE_FIELDS:
                validate_schedule(schedule, timezone)
                fields.update(
                    cron_expr=schedule.cron_expr,
                    every_interval=schedule.every_interval,
                    every_unit=schedule.every_unit,
                    week_parity=schedule.week_parity,
                )
                if current.enabled:
                    fields["next_run_at"] = self._first_run(schedule, timezone, start_at, now)

            await self._stores.template_store.update_template_fields(
                template_id, fields, to_db_ts(now)
            )
            updated = await self._require_template(template_id)

        log.info("recurring_template_updated", template_id=template_id, fields=sorted(fields))
        return updated

    async def delete_template(self, template_id: str) -> None:
        """Raises NotFoundError 如果模板不存在"""
        async with self._stores.transaction():
            deleted = await self._stores.template_store.delete_template(template_id)
        if not deleted:
            raise NotFoundError("template", template_id)
        log.info("recurring_template_deleted", template_id=template_id)

    async def enable(self, template_id: str) -> RecurringTemplate:
        """启用模板并重算 next_run_at"""
        now = self.clock.now()
        async with self._stores.transaction():
            current = await self._require_template(template_id)
            if current.enabled:
                return current
            validate_schedule(current.schedule, current.timezone)
            next_run_at = self._first_run(
                current.schedule, current.timezone, current.start_at, now
            )
            await self._stores.template_store.update_template_fields(
                template_id,
                {"enabled": True, "next_run_at": next_run_at},
                to_db_ts(now),
            )
        log.info("recurring_template_enabled", template_id=template_id)
        return current.model_copy(
            update={"enabled": True, "next_run_at": next_run_at, "updated_at": now}
        )

    async def disable(self, template_id: str) -> RecurringTemplate:
        """停用模板并清空 next_run_at"""
        now = self.clock.now()
        async with self._stores.transaction():
            current = await self._require_template(template_id)
            if not current.enabled:
                return current
            await self._stores.template_store.update_template_fields(
                template_id,
                {"enabled": False, "next_run_at": None},
                to_db_ts(now),
            )
        log.info("recurring_template_disabled", template_id=template_id)
        return current.model_copy(
            update={"enabled": False, "next_run_at": None, "updated_at": now}
        )

    # ---- tick ----

    async def tick(self) -> TickResult:
        """处理所有到期模板

        到期列表来自读连接的快照；每个模板在自己的事务内重新读取并确认仍启用且到期，
        列出之后被停用、修改或删除的模板直接跳过。
        单个模板失败被捕获、记录并计入 errors，不影响同批其他模板。
        """
        now = self.clock.now()
        due = await self._stores.reader.template_store.list_due_templates(now)
        result = TickResult()

        for candidate in due:
            with structlog.contextvars.bound_contextvars(template_id=candidate.template_id):
                try:
                    if await self._run_template(candidate.template_id, now):
                        result.created += 1
                except Exception as e:
                    result.errors += 1
                    log.error(
                        "recurring_template_failed",
                        error_type=type(e).__name__,
                        error=str(e),
                    )

        log.info(
            "recurring_tick_completed",
            due=len(due),
            created=result.created,
            errors=result.errors,
        )
        return result

    async def _run_template(self, template_id: str, now: datetime) -> bool:
        """为单个模板生成一次任务

        Returns:
            True 表示创建了任务；模板已不存在、不再到期或刚好结束时返回 False
        """
        async with self._stores.transaction():
            template = await self._stores.template_store.get_template(template_id)
            if template is None or not _is_due(template, now):
                log.info("recurring_template_skipped", found=template is not None)
                return False
            if await self._expire_if_finished(template, now):
                return False

            # 调度规格非法时在任何写入之前失败，事务回滚
            next_run_at = compute_next_run(template.schedule, template.timezone, now)
            run_count = template.run_count + 1
            fields: dict[str, Any] = {
                "last_run_at": now,
                "next_run_at": next_run_at,
                "run_count": run_count,
            }
            finished = (
                template.repeat_count is not None and run_count >= template.repeat_count
            ) or (template.end_at is not None and next_run_at > template.end_at)
            if finished:
                fields.update(enabled=False, next_run_at=None)

            task = await self._tasks.insert_task(
                CreateTaskInput(
                    title=template.title,
                    detail=template.detail,
                    project_id=template.project_id,
                    creator_user_id=template.creator_user_id,
                    assignee_user_id=template.assignee_user_id,
                    status=template.initial_status,
                    recurring_template_id=template.template_id,
                    recurring_instance_at=template.next_run_at or now,
                ),
                now,
            )
            await self._stores.template_store.update_template_fields(
                template_id, fields, to_db_ts(now)
            )

        log.info(
            "recurring_task_created",
            task_id=task.task_id,
            next_run_at=to_db_ts(fields["next_run_at"]),
            finished=finished,
        )
        return True

    async def _expire_if_finished(self, template: RecurringTemplate, now: datetime) -> bool:
        """end_at 已过或 repeat_count 已满时停用模板（调用方持有事务）"""
        exhausted = template.repeat_count is not None and template.run_count >= template.repeat_count
        expired = template.end_at is not None and template.end_at <= now
        if not (exhausted or expired):
            return False
        await self._stores.template_store.update_template_fields(
            template.template_id,
            {"enabled": False, "next_run_at": None},
            to_db_ts(now),
        )
        log.info("recurring_template_expired", exhausted=exhausted, expired=expired)
        return True

    # ---- 内部工具 ----

    async def _require_template(self, template_id: str) -> RecurringTemplate:
        """事务内读取模板（写连接，能看到本事务未提交的修改）"""
        template = await self._stores.template_store.get_template(template_id)
        if template is None:
            raise NotFoundError("template", template_id)
        return template

    @staticmethod
    def _merge_schedule(current: ScheduleSpec, requested: dict[str, Any]) -> ScheduleSpec:
        values = {
            "cron_expr": current.cron_expr,
            "every_interval": current.every_interval,
            "every_unit": current.every_unit,
            "week_parity": current.week_parity,
        }
        if requested.get("cron_expr") is not None:
            values.update(every_interval=None, every_unit=None)
        if requested.get("every_interval") is not None or requested.get("every_unit") is not None:
            values["cron_expr"] = None
        for name in _SCHEDULE_FIELDS:
            if name in requested and requested[name] is not None:
                values[name] = requested[name]
        return ScheduleSpec.model_construct(**values)

    @staticmethod
    def _first_run(
        schedule: ScheduleSpec,
        timezone: str,
        start_at: datetime,
        now: datetime,
    ) -> datetime:
        """首次运行时间

        间隔模板首个时间槽即 start_at；cron 模板取 start_at 起、晚于 now 的第一次命中。
        """
        if schedule.cron_expr is None:
            return ensure_utc(start_at)
        reference = max(ensure_utc(now), ensure_utc(start_at) - timedelta(minutes=1))
        return compute_next_run(schedule, timezone, reference)


def _is_due(template: RecurringTemplate, now: datetime) -> bool:
    """与 list_due_templates 相同的到期条件，作用于事务内重新读取的模板"""
    if not template.enabled or ensure_utc(template.start_at) > now:
        return False
    return template.next_run_at is None or ensure_utc(template.next_run_at) <= now
