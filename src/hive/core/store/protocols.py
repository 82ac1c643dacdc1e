"""Store Protocol 接口定义

定义 TaskStore、TaskEventStore、TemplateStore、ProjectStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
写方法均不提交事务，由调用方在事务内调用。
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol

from ..models.enums import TaskStatus
from ..models.event import TaskEvent
from ..models.project import Project
from ..models.task import ListTasksQuery, Task
from ..models.template import RecurringTemplate


class TaskStore(Protocol):
    """Task 存储接口"""

    async def create_task(self, task: Task) -> None:
        """创建任务记录"""
        ...

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        ...

    async def get_statuses(self, task_ids: Iterable[str]) -> dict[str, TaskStatus]:
        """批量查询任务状态，单次往返"""
        ...

    async def list_tasks(
        self,
        query: ListTasksQuery,
        visible_project_ids: set[str] | None = None,
        now: datetime | None = None,
    ) -> list[Task]:
        """按条件查询任务列表（now 用于隐藏未到 on_or_after_at 的任务）"""
        ...

    async def update_task_fields(
        self,
        task_id: str,
        fields: dict[str, Any],
        updated_at: str,
    ) -> None:
        """更新任务字段"""
        ...

    async def max_sort_key(
        self,
        status: TaskStatus,
        exclude_task_id: str | None = None,
    ) -> int | None:
        """状态桶内最大排序键"""
        ...

    async def prev_sort_key(
        self,
        status: TaskStatus,
        below: int,
        exclude_task_id: str,
    ) -> int | None:
        """状态桶内严格小于 below 的最大排序键"""
        ...

    async def list_bucket_ids(self, status: TaskStatus) -> list[str]:
        """状态桶内任务 ID（重排顺序）"""
        ...

    async def clear_bucket_sort_keys(self, status: TaskStatus) -> None:
        """清空状态桶内排序键"""
        ...

    async def set_sort_key(self, task_id: str, sort_key: int) -> None:
        """写入排序键"""
        ...


class TaskEventStore(Protocol):
    """TaskEvent 存储接口

    事件表 append-only：只允许插入，不允许更新或删除。
    """

    async def append_event(self, event: TaskEvent) -> None:
        """追加事件（append-only）"""
        ...

    async def get_events_for_task(
        self,
        task_id: str,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[TaskEvent]:
        """查询指定任务的事件"""
        ...


class TemplateStore(Protocol):
    """RecurringTemplate 存储接口"""

    async def create_template(self, template: RecurringTemplate) -> None: ...

    async def get_template(self, template_id: str) -> RecurringTemplate | None: ...

    async def list_templates(
        self,
        include_disabled: bool = False,
        project_id: str | None = None,
    ) -> list[RecurringTemplate]: ...

    async def list_due_templates(self, now: datetime) -> list[RecurringTemplate]: ...

    async def update_template_fields(
        self,
        template_id: str,
        fields: dict[str, Any],
        updated_at: str,
    ) -> None: ...

    async def delete_template(self, template_id: str) -> bool: ...


class ProjectStore(Protocol):
    """Project 存储接口"""

    async def create_project(self, project: Project) -> None: ...

    async def get_project(self, project_id: str) -> Project | None: ...

    async def set_tagged_users(
        self,
        project_id: str,
        tagged_users: list[str] | None,
        updated_at: str,
    ) -> None: ...

    async def visible_project_ids(self, identity: str) -> set[str]: ...
