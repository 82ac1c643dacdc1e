"""阻塞计算

优先级（先命中者生效）：
1. on_or_after_at 在未来 -> on_or_after
2. 前置任务存在且未完成 -> dependency
3. 不阻塞

批量版本对 N 个任务只发起一次前置状态查询，然后在内存中拼接。
"""

from collections.abc import Mapping
from datetime import datetime

from hive.core.clock import ensure_utc
from hive.core.models import DONE_STATES, BlockedReason, Task, TaskStatus
from hive.core.store.protocols import TaskStore


def compute_blocked_reason(
    task: Task,
    dependency_status: TaskStatus | None,
    now: datetime,
) -> BlockedReason | None:
    """计算单个任务的阻塞原因

    Args:
        task: 任务
        dependency_status: 前置任务的当前状态；前置不存在时为 None
        now: 当前时间

    Returns:
        阻塞原因，未阻塞时为 None
    """
    if task.on_or_after_at is not None and ensure_utc(task.on_or_after_at) > ensure_utc(now):
        return BlockedReason.ON_OR_AFTER
    if (
        task.must_be_done_after_task_id is not None
        and dependency_status is not None
        and dependency_status not in DONE_STATES
    ):
        return BlockedReason.DEPENDENCY
    return None


async def fetch_dependency_statuses(
    task_store: TaskStore,
    tasks: list[Task],
) -> dict[str, TaskStatus]:
    """收集所有前置任务 ID，单次查询其状态"""
    dependency_ids = {
        t.must_be_done_after_task_id for t in tasks if t.must_be_done_after_task_id
    }
    if not dependency_ids:
        return {}
    return await task_store.get_statuses(dependency_ids)


def apply_blocked_reasons(
    tasks: list[Task],
    statuses: Mapping[str, TaskStatus],
    now: datetime,
) -> list[Task]:
    return [
        task.model_copy(
            update={
                "blocked_reason": compute_blocked_reason(
                    task,
                    statuses.get(task.must_be_done_after_task_id or ""),
                    now,
                )
            }
        )
        for task in tasks
    ]


async def enrich_blocked(
    task_store: TaskStore,
    tasks: list[Task],
    now: datetime,
) -> list[Task]:
    """为任务列表填充 blocked_reason（前置状态一次往返）"""
    statuses = await fetch_dependency_statuses(task_store, tasks)
    return apply_blocked_reasons(tasks, statuses, now)
