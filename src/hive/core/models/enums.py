"""枚举定义

包含 TaskStatus 状态、阻塞原因、事件类型、周期单位与周次奇偶，
以及阻塞时禁止进入的状态集合和 planned 排序的状态优先级。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """任务状态"""

    QUEUED = "queued"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    HOLDING = "holding"
    REVIEW = "review"
    COMPLETE = "complete"
    # 部分部署使用的终态变体，阻塞计算中等同 complete
    CLOSED = "closed"


# 已完成状态：进入时写 completed_at，前置任务处于这些状态时不再阻塞后继
DONE_STATES: frozenset[TaskStatus] = frozenset({TaskStatus.COMPLETE, TaskStatus.CLOSED})

# 任务被阻塞时禁止进入的目标状态
BLOCKED_DISALLOWED_TARGETS: frozenset[TaskStatus] = frozenset(
    {TaskStatus.IN_PROGRESS, TaskStatus.REVIEW, TaskStatus.COMPLETE}
)

# planned 排序的状态优先级（越小越靠前）
STATUS_PRIORITY: dict[TaskStatus, int] = {
    TaskStatus.IN_PROGRESS: 1,
    TaskStatus.REVIEW: 2,
    TaskStatus.READY: 3,
    TaskStatus.QUEUED: 4,
    TaskStatus.HOLDING: 5,
    TaskStatus.COMPLETE: 6,
    TaskStatus.CLOSED: 7,
}


class BlockedReason(StrEnum):
    """阻塞原因"""

    DEPENDENCY = "dependency"
    ON_OR_AFTER = "on_or_after"


class EventKind(StrEnum):
    """任务事件类型"""

    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    REORDERED = "reordered"
    UPDATED = "updated"


class EveryUnit(StrEnum):
    """周期模板的间隔单位"""

    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class WeekParity(StrEnum):
    """ISO 周次奇偶约束"""

    ANY = "any"
    ODD = "odd"
    EVEN = "even"


class TaskSort(StrEnum):
    """任务列表排序方式"""

    PLANNED = "planned"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


def is_blocked_transition(to_status: TaskStatus) -> bool:
    """目标状态是否受阻塞约束

    Args:
        to_status: 目标状态

    Returns:
        True 如果任务被阻塞时不允许进入该状态
    """
    return to_status in BLOCKED_DISALLOWED_TARGETS
