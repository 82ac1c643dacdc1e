"""TaskService -- 任务创建/查询/状态流转/指派/排序业务逻辑

每个修改类操作都在一个 StoreGroup.transaction() 内完成：
读取当前任务 -> 校验 -> 写任务 -> 追加一条 TaskEvent。
NotFoundError / InvalidTransitionError 原样抛出，事务回滚后不留任何副作用。
"""

from datetime import datetime

import structlog
from ulid import ULID

from hive.core.clock import Clock, SystemClock
from hive.core.config import TASK_EVENTS_DEFAULT_LIMIT
from hive.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from hive.core.models import (
    DONE_STATES,
    AssignedPayload,
    AssigneeSnapshot,
    BlockedReason,
    CreatedSnapshot,
    CreateTaskInput,
    FieldsSnapshot,
    FieldsUpdatedPayload,
    ListTasksQuery,
    Project,
    ReorderedPayload,
    SortKeySnapshot,
    StatusChangedPayload,
    StatusSnapshot,
    Task,
    TaskCreatedPayload,
    TaskEvent,
    TaskEventPayload,
    TaskStatus,
    UpdateTaskInput,
    is_blocked_transition,
)
from hive.core.store import StoreGroup
from hive.core.store.codec import to_db_ts

from .blocking import compute_blocked_reason, enrich_blocked
from .cache import VisibilityCache
from .sort_keys import SortKeyIndex

log = structlog.get_logger()


class TaskService:
    """任务业务服务"""

    def __init__(self, store_group: StoreGroup, clock: Clock | None = None) -> None:
        self._stores = store_group
        self._clock = clock or SystemClock()
        self._sort_keys = SortKeyIndex(store_group.task_store)
        self._visibility = VisibilityCache()

    @property
    def clock(self) -> Clock:
        return self._clock

    # ---- 创建 / 查询 ----

    async def create_task(self, data: CreateTaskInput) -> Task:
        """创建任务，追加到状态桶末尾并写入 created 事件

        Raises:
            NotFoundError: 前置任务不存在
        """
        now = self._clock.now()
        async with self._stores.transaction():
            task = await self.insert_task(data, now)
        log.info(
            "task_created",
            task_id=task.task_id,
            status=task.status.value,
            sort_key=task.sort_key,
        )
        return await self._enrich_one(task)

    async def insert_task(self, data: CreateTaskInput, now: datetime) -> Task:
        """在调用方事务内插入任务 + created 事件

        周期调度在同一事务内创建任务并推进模板，因此单独暴露。
        """
        if data.must_be_done_after_task_id is not None:
            await self._require_task(data.must_be_done_after_task_id)

        sort_key = await self._sort_keys.append_key(data.status)
        task = Task(
            task_id=str(ULID()),
            project_id=data.project_id,
            title=data.title,
            detail=data.detail,
            creator_user_id=data.creator_user_id,
            assignee_user_id=data.assignee_user_id,
            status=data.status,
            must_be_done_after_task_id=data.must_be_done_after_task_id,
            on_or_after_at=data.on_or_after_at,
            sort_key=sort_key,
            next_task_id=data.next_task_id,
            next_task_assignee_user_id=data.next_task_assignee_user_id,
            recurring_template_id=data.recurring_template_id,
            recurring_instance_at=data.recurring_instance_at,
            created_at=now,
            updated_at=now,
            completed_at=now if data.status in DONE_STATES else None,
        )
        await self._stores.task_store.create_task(task)
        await self._append_event(
            task.task_id,
            data.creator_user_id,
            TaskCreatedPayload(after=CreatedSnapshot(title=task.title, status=task.status)),
            now,
        )
        return task

    async def get_task(self, task_id: str) -> Task:
        """查询单个任务（含 blocked_reason）

        Raises:
            NotFoundError: 任务不存在
        """
        task = await self._stores.reader.task_store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return await self._enrich_one(task)

    async def list_tasks(self, query: ListTasksQuery | None = None) -> list[Task]:
        """按条件查询任务列表，批量填充 blocked_reason

        读连接上执行，只看到已提交的数据。
        """
        query = query or ListTasksQuery()
        now = self._clock.now()
        reader = self._stores.reader
        visible: set[str] | None = None
        if query.identity is not None:
            visible = set(await self._visible_project_ids(query.identity))
        tasks = await reader.task_store.list_tasks(query, visible, now)
        return await enrich_blocked(reader.task_store, tasks, now)

    async def get_task_events(
        self,
        task_id: str,
        limit: int = TASK_EVENTS_DEFAULT_LIMIT,
    ) -> list[TaskEvent]:
        """查询任务事件（最新在前）"""
        reader = self._stores.reader
        if await reader.task_store.get_task(task_id) is None:
            raise NotFoundError("task", task_id)
        return await reader.event_store.get_events_for_task(
            task_id, limit=limit, newest_first=True
        )

    # ---- 修改 ----

    async def update_task(
        self,
        task_id: str,
        data: UpdateTaskInput,
        actor_user_id: str,
    ) -> Task:
        """部分字段更新，写入 updated 事件

        仅 data.model_fields_set 中的字段生效；值未变化时不写入也不产生事件。

        Raises:
            NotFoundError: 任务或新的前置任务不存在
            ValidationError: 任务依赖自身
        """
        now = self._clock.now()
        async with self._stores.transaction():
            current = await self._require_task(task_id)
            requested = {name: getattr(data, name) for name in data.model_fields_set}

            if requested.get("title", "") is None:
                raise ValidationError("title cannot be cleared")
            dependency_id = requested.get("must_be_done_after_task_id")
            if dependency_id is not None:
                if dependency_id == task_id:
                    raise ValidationError("a task cannot depend on itself")
                await self._require_task(dependency_id)

            changes = {
                name: value
                for name, value in requested.items()
                if getattr(current, name) != value
            }
            if not changes:
                return await self._enrich_one(current)

            await self._stores.task_store.update_task_fields(
                task_id, changes, to_db_ts(now)
            )
            await self._append_event(
                task_id,
                actor_user_id,
                FieldsUpdatedPayload(
                    before=FieldsSnapshot(
                        fields=_json_fields({n: getattr(current, n) for n in changes})
                    ),
                    after=FieldsSnapshot(fields=_json_fields(changes)),
                ),
                now,
            )
            updated = current.model_copy(update={**changes, "updated_at": now})

        log.info("task_updated", task_id=task_id, fields=sorted(changes))
        return await self._enrich_one(updated)

    async def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        actor_user_id: str,
    ) -> Task:
        """状态流转

        进入 complete/closed 写 completed_at，离开时清空；
        跨状态桶时排序键重新追加到目标桶末尾。

        Raises:
            NotFoundError: 任务不存在
            InvalidTransitionError: 任务被阻塞且目标为 in_progress/review/complete
        """
        now = self._clock.now()
        async with self._stores.transaction():
            current = await self._require_task(task_id)
            if current.status == status:
                return await self._enrich_one(current)

            if is_blocked_transition(status):
                reason = await self._blocked_reason(current, now)
                if reason is not None:
                    log.info(
                        "task_transition_rejected",
                        task_id=task_id,
                        from_status=current.status.value,
                        to_status=status.value,
                        reason=reason.value,
                    )
                    raise InvalidTransitionError(task_id, status.value, reason.value)

            sort_key = await self._sort_keys.append_key(status, exclude_task_id=task_id)
            completed_at = now if status in DONE_STATES else None
            await self._stores.task_store.update_task_fields(
                task_id,
                {"status": status, "sort_key": sort_key, "completed_at": completed_at},
                to_db_ts(now),
            )
            await self._append_event(
                task_id,
                actor_user_id,
                StatusChangedPayload(
                    before=StatusSnapshot(status=current.status),
                    after=StatusSnapshot(status=status),
                ),
                now,
            )
            updated = current.model_copy(
                update={
                    "status": status,
                    "sort_key": sort_key,
                    "completed_at": completed_at,
                    "updated_at": now,
                }
            )

        log.info(
            "task_status_changed",
            task_id=task_id,
            from_status=current.status.value,
            to_status=status.value,
        )
        return await self._enrich_one(updated)

    async def assign(
        self,
        task_id: str,
        assignee_user_id: str | None,
        actor_user_id: str,
    ) -> Task:
        """指派 / 取消指派执行者，写入 assigned 事件

        Raises:
            NotFoundError: 任务不存在
        """
        now = self._clock.now()
        async with self._stores.transaction():
            current = await self._require_task(task_id)
            await self._stores.task_store.update_task_fields(
                task_id, {"assignee_user_id": assignee_user_id}, to_db_ts(now)
            )
            await self._append_event(
                task_id,
                actor_user_id,
                AssignedPayload(
                    before=AssigneeSnapshot(assignee_user_id=current.assignee_user_id),
                    after=AssigneeSnapshot(assignee_user_id=assignee_user_id),
                ),
                now,
            )
            updated = current.model_copy(
                update={"assignee_user_id": assignee_user_id, "updated_at": now}
            )

        log.info("task_assigned", task_id=task_id, assignee_user_id=assignee_user_id)
        return await self._enrich_one(updated)

    async def reorder(
        self,
        task_id: str,
        before_task_id: str | None,
        actor_user_id: str,
    ) -> Task:
        """在状态桶内移动任务

        before_task_id 为 None 时移动到桶末尾，否则放在该任务之前。
        重排 + 重试与本次移动在同一事务内完成。

        Raises:
            NotFoundError: 任务或目标任务不存在
            ValidationError: 目标是自身或不在同一状态桶
            StorageConflictError: 重排后仍无空隙
        """
        now = self._clock.now()
        async with self._stores.transaction():
            current = await self._require_task(task_id)
            if before_task_id is None:
                new_key = await self._sort_keys.append_key(
                    current.status, exclude_task_id=task_id
                )
            else:
                if before_task_id == task_id:
                    raise ValidationError("cannot reorder a task before itself")
                target = await self._require_task(before_task_id)
                if target.status != current.status:
                    raise ValidationError(
                        f"task {before_task_id} is in status bucket {target.status.value}, "
                        f"not {current.status.value}"
                    )
                new_key = await self._sort_keys.key_before(
                    task_id, current.status, before_task_id
                )

            # 重排可能已改写本任务的键，事件中记录移动前的原始键
            await self._stores.task_store.update_task_fields(
                task_id, {"sort_key": new_key}, to_db_ts(now)
            )
            await self._append_event(
                task_id,
                actor_user_id,
                ReorderedPayload(
                    before=SortKeySnapshot(sort_key=current.sort_key),
                    after=SortKeySnapshot(sort_key=new_key),
                ),
                now,
            )
            updated = current.model_copy(update={"sort_key": new_key, "updated_at": now})

        log.info(
            "task_reordered",
            task_id=task_id,
            before_task_id=before_task_id,
            sort_key=new_key,
        )
        return await self._enrich_one(updated)

    # ---- 项目可见性 ----

    async def create_project(
        self,
        title: str,
        tagged_users: list[str] | None = None,
    ) -> Project:
        now = self._clock.now()
        project = Project(
            project_id=str(ULID()),
            title=title,
            tagged_users=tagged_users,
            created_at=now,
            updated_at=now,
        )
        async with self._stores.transaction():
            await self._stores.project_store.create_project(project)
        self._visibility.invalidate()
        return project

    async def set_project_tagged_users(
        self,
        project_id: str,
        tagged_users: list[str] | None,
    ) -> Project:
        """更新项目可见身份列表

        Raises:
            NotFoundError: 项目不存在
        """
        now = self._clock.now()
        async with self._stores.transaction():
            project = await self._stores.project_store.get_project(project_id)
            if project is None:
                raise NotFoundError("project", project_id)
            await self._stores.project_store.set_tagged_users(
                project_id, tagged_users, to_db_ts(now)
            )
        self._visibility.invalidate()
        return project.model_copy(update={"tagged_users": tagged_users, "updated_at": now})

    async def _visible_project_ids(self, identity: str) -> frozenset[str]:
        cached = self._visibility.get(identity)
        if cached is not None:
            return cached
        reader = self._stores.reader
        project_ids = await reader.project_store.visible_project_ids(identity)
        return self._visibility.put(identity, project_ids)

    # ---- 内部工具 ----

    async def _require_task(self, task_id: str) -> Task:
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    async def _blocked_reason(self, task: Task, now: datetime) -> BlockedReason | None:
        dependency_status = None
        if task.must_be_done_after_task_id is not None:
            statuses = await self._stores.task_store.get_statuses(
                [task.must_be_done_after_task_id]
            )
            dependency_status = statuses.get(task.must_be_done_after_task_id)
        return compute_blocked_reason(task, dependency_status, now)

    async def _enrich_one(self, task: Task) -> Task:
        enriched = await enrich_blocked(
            self._stores.reader.task_store, [task], self._clock.now()
        )
        return enriched[0]

    async def _append_event(
        self,
        task_id: str,
        actor_user_id: str,
        payload: TaskEventPayload,
        now: datetime,
    ) -> None:
        event = TaskEvent(
            event_id=str(ULID()),
            task_id=task_id,
            actor_user_id=actor_user_id,
            payload=payload,
            created_at=now,
        )
        await self._stores.event_store.append_event(event)


def _json_fields(fields: dict) -> dict:
    """字段值转为 JSON 兼容形式（datetime -> ISO 字符串）"""
    return {
        name: value.isoformat() if isinstance(value, datetime) else value
        for name, value in fields.items()
    }
