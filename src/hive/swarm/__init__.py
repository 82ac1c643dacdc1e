"""Hive Swarm -- 任务编排引擎

状态机与阻塞计算、状态桶内排序键、周期模板调度。
"""

from .scheduler import RecurringScheduler
from .task_service import TaskService
from .template_service import TemplateService, TickResult

__all__ = [
    "TaskService",
    "TemplateService",
    "TickResult",
    "RecurringScheduler",
]
