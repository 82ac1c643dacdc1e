"""Swarm 异常体系

NotFoundError / InvalidTransitionError 原样传播给调用方，由 API 层映射为响应；
ValidationError 表示调度规格或输入不合法；
StorageConflictError 表示存储层检测到并发写冲突。
"""


class SwarmError(Exception):
    """Swarm 引擎基础异常"""


class NotFoundError(SwarmError):
    """任务 / 模板 / 被引用的前置任务不存在"""

    def __init__(self, entity: str, entity_id: str) -> None:
        """
        Args:
            entity: 实体类型（task / template / project）
            entity_id: 未找到的 ID
        """
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransitionError(SwarmError):
    """任务处于阻塞状态时被拒绝的状态流转

    携带计算出的阻塞原因，存储中的任务保持不变。
    """

    def __init__(self, task_id: str, to_status: str, reason: str) -> None:
        """
        Args:
            task_id: 任务 ID
            to_status: 请求的目标状态
            reason: 阻塞原因（dependency / on_or_after）
        """
        super().__init__(
            f"Cannot transition task {task_id} to {to_status}: task is blocked ({reason})"
        )
        self.task_id = task_id
        self.to_status = to_status
        self.reason = reason


class ValidationError(SwarmError):
    """调度规格或请求参数不合法（cron 字段数错误、未知时区等）"""


class StorageConflictError(SwarmError):
    """存储层检测到并发写冲突（唯一约束冲突、数据库锁等待超时等）"""
