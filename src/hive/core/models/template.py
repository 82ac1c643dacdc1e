"""RecurringTemplate Domain Model

周期模板：调度规格为 cron 表达式，或 间隔数 + 单位 + 周次奇偶 二选一。
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import EveryUnit, TaskStatus, WeekParity


class ScheduleSpec(BaseModel):
    """调度规格"""

    cron_expr: str | None = Field(default=None, description="5 字段 cron 表达式")
    every_interval: int | None = Field(default=None, ge=1, description="间隔数")
    every_unit: EveryUnit | None = Field(default=None, description="间隔单位")
    week_parity: WeekParity = Field(default=WeekParity.ANY, description="ISO 周次奇偶")

    @property
    def is_cron(self) -> bool:
        return self.cron_expr is not None


class RecurringTemplate(BaseModel):
    """RecurringTemplate 数据模型"""

    template_id: str = Field(description="唯一标识，ULID 格式")
    project_id: str | None = Field(default=None, description="所属项目 ID")
    title: str = Field(description="生成任务的标题")
    detail: str | None = Field(default=None, description="生成任务的详情")
    assignee_user_id: str | None = Field(default=None, description="生成任务的执行者")
    creator_user_id: str = Field(default="system", description="生成任务的创建者")
    schedule: ScheduleSpec = Field(description="调度规格")
    timezone: str = Field(description="IANA 时区名")
    start_at: datetime = Field(description="首次可运行时间")
    end_at: datetime | None = Field(default=None, description="截止时间")
    repeat_count: int | None = Field(default=None, ge=1, description="最大生成次数")
    run_count: int = Field(default=0, description="已生成次数")
    initial_status: TaskStatus = Field(
        default=TaskStatus.READY,
        description="生成任务的初始状态",
    )
    enabled: bool = Field(default=True)
    last_run_at: datetime | None = Field(default=None)
    next_run_at: datetime | None = Field(default=None)
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")


class CreateTemplateInput(BaseModel):
    """创建周期模板的输入"""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    creator_user_id: str = "system"
    project_id: str | None = None
    detail: str | None = None
    assignee_user_id: str | None = None
    cron_expr: str | None = None
    every_interval: int | None = Field(default=None, ge=1)
    every_unit: EveryUnit | None = None
    week_parity: WeekParity = WeekParity.ANY
    timezone: str | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    repeat_count: int | None = Field(default=None, ge=1)
    initial_status: TaskStatus = TaskStatus.READY
    enabled: bool = True

    @model_validator(mode="after")
    def _check_schedule(self) -> "CreateTemplateInput":
        has_cron = self.cron_expr is not None
        has_interval = self.every_interval is not None or self.every_unit is not None
        if has_cron == has_interval:
            raise ValueError("exactly one of cron_expr or every_interval/every_unit is required")
        if has_interval and (self.every_interval is None or self.every_unit is None):
            raise ValueError("every_interval and every_unit must be given together")
        return self

    def schedule_spec(self) -> ScheduleSpec:
        return ScheduleSpec(
            cron_expr=self.cron_expr,
            every_interval=self.every_interval,
            every_unit=self.every_unit,
            week_parity=self.week_parity,
        )


class UpdateTemplateInput(BaseModel):
    """模板部分更新：仅 model_fields_set 中的字段生效"""

    model_config = ConfigDict(extra="forbid")

    project_id: str | None = None
    title: str | None = Field(default=None, min_length=1)
    detail: str | None = None
    assignee_user_id: str | None = None
    cron_expr: str | None = None
    every_interval: int | None = Field(default=None, ge=1)
    every_unit: EveryUnit | None = None
    week_parity: WeekParity | None = None
    timezone: str | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    repeat_count: int | None = Field(default=None, ge=1)
    initial_status: TaskStatus | None = None
