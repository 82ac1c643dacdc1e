"""Task Domain Model

tasks 表中的任务记录。所有修改都必须经过 TaskService 的类型化操作，
每次修改在同一事务内追加一条 TaskEvent。
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import BlockedReason, TaskSort, TaskStatus


class Task(BaseModel):
    """Task 数据模型

    completed_at 由状态派生，仅在 status ∈ {complete, closed} 时非空。
    blocked_reason 为读取时计算的字段，不落库。
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    project_id: str | None = Field(default=None, description="所属项目 ID")
    title: str = Field(description="任务标题")
    detail: str | None = Field(default=None, description="任务详情")
    creator_user_id: str = Field(description="创建者")
    assignee_user_id: str | None = Field(default=None, description="执行者")
    status: TaskStatus = Field(default=TaskStatus.QUEUED, description="当前状态")
    must_be_done_after_task_id: str | None = Field(
        default=None,
        description="前置任务 ID（单一依赖）",
    )
    on_or_after_at: datetime | None = Field(
        default=None,
        description="最早可开始时间",
    )
    sort_key: int | None = Field(
        default=None,
        description="状态桶内排序键，由引擎计算，null 排在最后",
    )
    next_task_id: str | None = Field(default=None, description="手动串联提示：下一个任务")
    next_task_assignee_user_id: str | None = Field(
        default=None,
        description="手动串联提示：下一个任务的执行者",
    )
    recurring_template_id: str | None = Field(
        default=None,
        description="生成此任务的周期模板 ID",
    )
    recurring_instance_at: datetime | None = Field(
        default=None,
        description="周期实例对应的计划时间",
    )
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    completed_at: datetime | None = Field(default=None, description="完成时间（派生）")
    blocked_reason: BlockedReason | None = Field(
        default=None,
        description="计算字段：当前阻塞原因",
    )


class CreateTaskInput(BaseModel):
    """创建任务的输入（sort_key / completed_at 不可由调用方指定）"""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    creator_user_id: str = Field(min_length=1)
    project_id: str | None = None
    detail: str | None = None
    assignee_user_id: str | None = None
    status: TaskStatus = TaskStatus.QUEUED
    on_or_after_at: datetime | None = None
    must_be_done_after_task_id: str | None = None
    next_task_id: str | None = None
    next_task_assignee_user_id: str | None = None
    recurring_template_id: str | None = None
    recurring_instance_at: datetime | None = None


class UpdateTaskInput(BaseModel):
    """部分字段更新

    仅显式传入的字段会被写入（model_fields_set），
    状态、执行者、排序键分别走 update_status / assign / reorder。
    """

    model_config = ConfigDict(extra="forbid")

    project_id: str | None = None
    title: str | None = Field(default=None, min_length=1)
    detail: str | None = None
    on_or_after_at: datetime | None = None
    must_be_done_after_task_id: str | None = None
    next_task_id: str | None = None
    next_task_assignee_user_id: str | None = None


class ListTasksQuery(BaseModel):
    """任务列表查询条件"""

    statuses: list[TaskStatus] | None = Field(default=None, description="按状态筛选")
    assignee_user_id: str | None = Field(default=None, description="按执行者筛选")
    assignee_user_ids: list[str] | None = Field(default=None, description="按多个执行者筛选")
    include_unassigned: bool = Field(
        default=False,
        description="同时包含未指派任务；未给 assignee_user_ids 时只返回未指派任务",
    )
    project_id: str | None = Field(default=None, description="按项目筛选")
    creator_user_id: str | None = Field(default=None, description="按创建者筛选")
    identity: str | None = Field(
        default=None,
        description="调用方身份，用于过滤不可见项目下的任务",
    )
    query: str | None = Field(default=None, description="标题/详情模糊搜索")
    include_completed: bool = Field(
        default=False,
        description="未指定 statuses 时是否包含 complete/closed",
    )
    include_future: bool = Field(
        default=False,
        description="是否包含 on_or_after_at 尚未到达的任务",
    )
    sort: TaskSort = Field(default=TaskSort.PLANNED)
    sort_dir: str = Field(default="asc", pattern="^(asc|desc)$")
    limit: int = Field(default=100, ge=1, le=1000)
