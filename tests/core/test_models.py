"""领域模型单元测试

测试内容：
1. Task / Template 默认值与输入校验
2. TaskEvent payload 按 kind 判别
3. Project 可见性
"""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from hive.core.models import (
    EVENT_SCHEMA_VERSION,
    CreatedSnapshot,
    CreateTaskInput,
    CreateTemplateInput,
    EventKind,
    EveryUnit,
    FieldsUpdatedPayload,
    ListTasksQuery,
    Project,
    ReorderedPayload,
    StatusChangedPayload,
    Task,
    TaskCreatedPayload,
    TaskEvent,
    TaskSort,
    TaskStatus,
    WeekParity,
    is_blocked_transition,
    payload_from_states,
)

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)


class TestTaskModel:
    def test_defaults(self):
        task = Task(
            task_id="01JTASK0000000000000000001",
            title="写周报",
            creator_user_id="alice",
            created_at=NOW,
            updated_at=NOW,
        )
        assert task.status == TaskStatus.QUEUED
        assert task.sort_key is None
        assert task.completed_at is None
        assert task.blocked_reason is None

    def test_create_input_rejects_sort_key(self):
        """排序键只能由引擎计算"""
        with pytest.raises(PydanticValidationError):
            CreateTaskInput(title="x", creator_user_id="alice", sort_key=5)

    def test_create_input_rejects_completed_at(self):
        with pytest.raises(PydanticValidationError):
            CreateTaskInput(title="x", creator_user_id="alice", completed_at=NOW)

    def test_list_query_defaults(self):
        query = ListTasksQuery()
        assert query.sort == TaskSort.PLANNED
        assert query.include_completed is False
        assert query.limit == 100

    def test_list_query_rejects_bad_direction(self):
        with pytest.raises(PydanticValidationError):
            ListTasksQuery(sort_dir="sideways")


class TestBlockedTargets:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (TaskStatus.IN_PROGRESS, True),
            (TaskStatus.REVIEW, True),
            (TaskStatus.COMPLETE, True),
            (TaskStatus.QUEUED, False),
            (TaskStatus.READY, False),
            (TaskStatus.HOLDING, False),
            (TaskStatus.CLOSED, False),
        ],
    )
    def test_is_blocked_transition(self, status: TaskStatus, expected: bool):
        assert is_blocked_transition(status) is expected


class TestEventPayloads:
    def test_created_payload_has_no_before(self):
        event = TaskEvent(
            event_id="01JEVT0000000000000000001",
            task_id="01JTASK0000000000000000001",
            actor_user_id="alice",
            payload=TaskCreatedPayload(
                after=CreatedSnapshot(title="写周报", status=TaskStatus.QUEUED)
            ),
            created_at=NOW,
        )
        assert event.kind == EventKind.CREATED
        assert event.before_state is None
        assert event.after_state == {"title": "写周报", "status": "queued"}
        assert event.schema_version == EVENT_SCHEMA_VERSION

    def test_payload_from_states_discriminates_by_kind(self):
        payload = payload_from_states(
            "status_changed", {"status": "queued"}, {"status": "ready"}
        )
        assert isinstance(payload, StatusChangedPayload)
        assert payload.after.status == TaskStatus.READY

    def test_reordered_payload_allows_null_before(self):
        payload = payload_from_states("reordered", {"sort_key": None}, {"sort_key": 65536})
        assert isinstance(payload, ReorderedPayload)
        assert payload.before.sort_key is None

    def test_updated_payload(self):
        payload = payload_from_states(
            "updated", {"fields": {"title": "旧"}}, {"fields": {"title": "新"}}
        )
        assert isinstance(payload, FieldsUpdatedPayload)
        assert payload.after.fields == {"title": "新"}

    def test_unknown_kind_rejected(self):
        with pytest.raises(PydanticValidationError):
            payload_from_states("deleted", None, {})


class TestTemplateInput:
    def test_cron_template(self):
        data = CreateTemplateInput(title="站会", cron_expr="0 9 * * 1-5")
        spec = data.schedule_spec()
        assert spec.is_cron
        assert spec.week_parity == WeekParity.ANY

    def test_interval_template(self):
        data = CreateTemplateInput(title="周报", every_interval=2, every_unit=EveryUnit.WEEK)
        assert not data.schedule_spec().is_cron
        assert data.initial_status == TaskStatus.READY

    def test_requires_exactly_one_schedule(self):
        with pytest.raises(PydanticValidationError):
            CreateTemplateInput(title="x")
        with pytest.raises(PydanticValidationError):
            CreateTemplateInput(
                title="x", cron_expr="* * * * *", every_interval=1, every_unit=EveryUnit.DAY
            )

    def test_interval_and_unit_together(self):
        with pytest.raises(PydanticValidationError):
            CreateTemplateInput(title="x", every_interval=3)

    def test_interval_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            CreateTemplateInput(title="x", every_interval=0, every_unit=EveryUnit.DAY)


class TestProjectVisibility:
    def _project(self, tagged_users):
        return Project(
            project_id="01JPROJ0000000000000000001",
            title="p",
            tagged_users=tagged_users,
            created_at=NOW,
            updated_at=NOW,
        )

    def test_untagged_visible_to_everyone(self):
        assert self._project(None).is_visible_to("bob")
        assert self._project([]).is_visible_to("bob")

    def test_tagged_visible_only_to_members(self):
        project = self._project(["alice"])
        assert project.is_visible_to("alice")
        assert not project.is_visible_to("bob")
