"""TaskEvent Payload 子类型

以 kind 为判别字段的 tagged union，每个变体携带类型化的
before / after 快照（只记录被修改的字段，不是整行）。
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from .enums import TaskStatus

# 当前 payload schema 版本
EVENT_SCHEMA_VERSION = 1


class CreatedSnapshot(BaseModel):
    """created 事件的 after 快照"""

    title: str
    status: TaskStatus


class StatusSnapshot(BaseModel):
    status: TaskStatus


class AssigneeSnapshot(BaseModel):
    assignee_user_id: str | None = None


class SortKeySnapshot(BaseModel):
    sort_key: int | None = None


class FieldsSnapshot(BaseModel):
    """updated 事件快照：字段名 -> JSON 兼容值"""

    fields: dict[str, Any] = Field(default_factory=dict)


class TaskCreatedPayload(BaseModel):
    """created 事件 payload"""

    kind: Literal["created"] = "created"
    before: None = None
    after: CreatedSnapshot


class StatusChangedPayload(BaseModel):
    """status_changed 事件 payload"""

    kind: Literal["status_changed"] = "status_changed"
    before: StatusSnapshot
    after: StatusSnapshot


class AssignedPayload(BaseModel):
    """assigned 事件 payload"""

    kind: Literal["assigned"] = "assigned"
    before: AssigneeSnapshot
    after: AssigneeSnapshot


class ReorderedPayload(BaseModel):
    """reordered 事件 payload"""

    kind: Literal["reordered"] = "reordered"
    before: SortKeySnapshot
    after: SortKeySnapshot


class FieldsUpdatedPayload(BaseModel):
    """updated 事件 payload（部分字段更新）"""

    kind: Literal["updated"] = "updated"
    before: FieldsSnapshot
    after: FieldsSnapshot


TaskEventPayload = Annotated[
    TaskCreatedPayload
    | StatusChangedPayload
    | AssignedPayload
    | ReorderedPayload
    | FieldsUpdatedPayload,
    Field(discriminator="kind"),
]

_payload_adapter: TypeAdapter[TaskEventPayload] = TypeAdapter(TaskEventPayload)


def payload_from_states(
    kind: str,
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
) -> TaskEventPayload:
    """由落库的 kind + before_state + after_state 还原类型化 payload"""
    return _payload_adapter.validate_python(
        {"kind": kind, "before": before, "after": after}
    )
