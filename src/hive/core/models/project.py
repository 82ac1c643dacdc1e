"""Project Domain Model -- 仅用于任务列表的可见性过滤"""

from datetime import datetime

from pydantic import BaseModel, Field


class Project(BaseModel):
    """项目

    tagged_users 为空（None 或 []）时对所有人可见，否则仅对列出的身份可见。
    """

    project_id: str = Field(description="唯一标识，ULID 格式")
    title: str = Field(description="项目名称")
    tagged_users: list[str] | None = Field(default=None, description="可见身份列表")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")

    def is_visible_to(self, identity: str) -> bool:
        return not self.tagged_users or identity in self.tagged_users
