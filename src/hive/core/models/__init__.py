"""Hive Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    BLOCKED_DISALLOWED_TARGETS,
    DONE_STATES,
    STATUS_PRIORITY,
    BlockedReason,
    EventKind,
    EveryUnit,
    TaskSort,
    TaskStatus,
    WeekParity,
    is_blocked_transition,
)
from .event import TaskEvent
from .payloads import (
    EVENT_SCHEMA_VERSION,
    AssignedPayload,
    AssigneeSnapshot,
    CreatedSnapshot,
    FieldsSnapshot,
    FieldsUpdatedPayload,
    ReorderedPayload,
    SortKeySnapshot,
    StatusChangedPayload,
    StatusSnapshot,
    TaskCreatedPayload,
    TaskEventPayload,
    payload_from_states,
)
from .project import Project
from .task import CreateTaskInput, ListTasksQuery, Task, UpdateTaskInput
from .template import (
    CreateTemplateInput,
    RecurringTemplate,
    ScheduleSpec,
    UpdateTemplateInput,
)

__all__ = [
    # 枚举
    "TaskStatus",
    "BlockedReason",
    "EventKind",
    "EveryUnit",
    "WeekParity",
    "TaskSort",
    # 状态机
    "DONE_STATES",
    "BLOCKED_DISALLOWED_TARGETS",
    "STATUS_PRIORITY",
    "is_blocked_transition",
    # Task
    "Task",
    "CreateTaskInput",
    "UpdateTaskInput",
    "ListTasksQuery",
    # Event
    "TaskEvent",
    "EVENT_SCHEMA_VERSION",
    "TaskEventPayload",
    "payload_from_states",
    "TaskCreatedPayload",
    "StatusChangedPayload",
    "AssignedPayload",
    "ReorderedPayload",
    "FieldsUpdatedPayload",
    "CreatedSnapshot",
    "StatusSnapshot",
    "AssigneeSnapshot",
    "SortKeySnapshot",
    "FieldsSnapshot",
    # Template
    "RecurringTemplate",
    "ScheduleSpec",
    "CreateTemplateInput",
    "UpdateTemplateInput",
    # Project
    "Project",
]
