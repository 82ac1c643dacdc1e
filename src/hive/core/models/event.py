"""TaskEvent Domain Model

事件表 append-only，不允许更新或删除。
event_id 使用 ULID 格式，时间有序。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import EventKind
from .payloads import EVENT_SCHEMA_VERSION, TaskEventPayload


class TaskEvent(BaseModel):
    """TaskEvent 数据模型

    每次被接受的任务修改对应一条事件，与修改在同一事务内写入。
    """

    event_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    task_id: str = Field(description="关联的 Task ID")
    actor_user_id: str = Field(description="操作者")
    payload: TaskEventPayload = Field(description="按 kind 区分的类型化 payload")
    schema_version: int = Field(
        default=EVENT_SCHEMA_VERSION,
        description="Payload schema 版本号",
    )
    created_at: datetime = Field(description="事件时间戳")

    @property
    def kind(self) -> EventKind:
        return EventKind(self.payload.kind)

    @property
    def before_state(self) -> dict[str, Any] | None:
        if self.payload.before is None:
            return None
        return self.payload.before.model_dump(mode="json")

    @property
    def after_state(self) -> dict[str, Any]:
        return self.payload.after.model_dump(mode="json")
