"""状态机流转测试

测试内容：
1. 被阻塞时进入 in_progress / review / complete 被拒绝，存储不变且无事件
2. on_or_after 优先于 dependency
3. completed_at 派生，status_changed 事件前后快照
4. 跨状态桶时排序键追加到目标桶末尾
"""

from datetime import timedelta

import pytest

from hive.core.clock import FrozenClock
from hive.core.config import SORT_KEY_GAP
from hive.core.exceptions import InvalidTransitionError, NotFoundError
from hive.core.models import BlockedReason, EventKind, TaskStatus
from hive.core.store import StoreGroup
from hive.swarm import TaskService

BLOCKED_TARGETS = [TaskStatus.IN_PROGRESS, TaskStatus.REVIEW, TaskStatus.COMPLETE]


class TestBlockedTransitions:
    @pytest.mark.parametrize("target", BLOCKED_TARGETS)
    async def test_dependency_blocks(
        self, task_service: TaskService, store_group: StoreGroup, make_task, target
    ):
        dep = await make_task("dep", status=TaskStatus.READY)
        task = await make_task("child", must_be_done_after_task_id=dep.task_id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await task_service.update_status(task.task_id, target, "bob")

        assert exc_info.value.reason == BlockedReason.DEPENDENCY.value
        stored = await store_group.task_store.get_task(task.task_id)
        assert stored.status == TaskStatus.QUEUED
        assert stored.sort_key == task.sort_key
        events = await task_service.get_task_events(task.task_id)
        assert [e.kind for e in events] == [EventKind.CREATED]

    @pytest.mark.parametrize("target", BLOCKED_TARGETS)
    async def test_on_or_after_takes_priority(
        self, task_service: TaskService, clock: FrozenClock, make_task, target
    ):
        dep = await make_task("dep")
        task = await make_task(
            "child",
            must_be_done_after_task_id=dep.task_id,
            on_or_after_at=clock.now() + timedelta(days=2),
        )
        with pytest.raises(InvalidTransitionError) as exc_info:
            await task_service.update_status(task.task_id, target, "bob")
        assert exc_info.value.reason == BlockedReason.ON_OR_AFTER.value
        assert (await task_service.get_task(task.task_id)).status == TaskStatus.QUEUED

    @pytest.mark.parametrize(
        "target", [TaskStatus.READY, TaskStatus.HOLDING, TaskStatus.CLOSED]
    )
    async def test_other_targets_allowed_while_blocked(
        self, task_service: TaskService, make_task, target
    ):
        dep = await make_task("dep")
        task = await make_task("child", must_be_done_after_task_id=dep.task_id)
        updated = await task_service.update_status(task.task_id, target, "bob")
        assert updated.status == target
        assert updated.blocked_reason == BlockedReason.DEPENDENCY

    async def test_unblocks_when_dependency_completes(self, task_service: TaskService, make_task):
        dep = await make_task("dep")
        task = await make_task("child", must_be_done_after_task_id=dep.task_id)
        await task_service.update_status(dep.task_id, TaskStatus.CLOSED, "alice")

        updated = await task_service.update_status(task.task_id, TaskStatus.IN_PROGRESS, "bob")
        assert updated.status == TaskStatus.IN_PROGRESS
        assert updated.blocked_reason is None

    async def test_unblocks_when_time_passes(
        self, task_service: TaskService, clock: FrozenClock, make_task
    ):
        task = await make_task("later", on_or_after_at=clock.now() + timedelta(hours=1))
        with pytest.raises(InvalidTransitionError):
            await task_service.update_status(task.task_id, TaskStatus.IN_PROGRESS, "bob")

        clock.advance(timedelta(hours=1))
        updated = await task_service.update_status(task.task_id, TaskStatus.IN_PROGRESS, "bob")
        assert updated.status == TaskStatus.IN_PROGRESS

    async def test_missing_dependency_does_not_block(
        self, task_service: TaskService, store_group: StoreGroup, make_task
    ):
        dep = await make_task("dep")
        task = await make_task("child", must_be_done_after_task_id=dep.task_id)
        # 引用悬空（前置任务已不存在）
        async with store_group.transaction():
            await store_group.conn.execute(
                "UPDATE tasks SET must_be_done_after_task_id = 'ghost' WHERE task_id = ?",
                (task.task_id,),
            )

        updated = await task_service.update_status(task.task_id, TaskStatus.REVIEW, "bob")
        assert updated.status == TaskStatus.REVIEW


class TestStatusSideEffects:
    async def test_unknown_task(self, task_service: TaskService):
        with pytest.raises(NotFoundError):
            await task_service.update_status("missing", TaskStatus.READY, "bob")

    async def test_completed_at_derived(
        self, task_service: TaskService, clock: FrozenClock, make_task
    ):
        task = await make_task("t", status=TaskStatus.READY)
        assert task.completed_at is None

        clock.advance(timedelta(minutes=10))
        done = await task_service.update_status(task.task_id, TaskStatus.COMPLETE, "bob")
        assert done.completed_at == clock.now()

        clock.advance(timedelta(minutes=10))
        reopened = await task_service.update_status(task.task_id, TaskStatus.READY, "bob")
        assert reopened.completed_at is None

        clock.advance(timedelta(minutes=10))
        closed = await task_service.update_status(task.task_id, TaskStatus.CLOSED, "bob")
        assert closed.completed_at == clock.now()
        stored = await task_service.get_task(task.task_id)
        assert stored.completed_at == clock.now()

    async def test_created_complete_has_completed_at(self, clock: FrozenClock, make_task):
        task = await make_task("already done", status=TaskStatus.COMPLETE)
        assert task.completed_at == clock.now()

    async def test_status_changed_event(
        self, task_service: TaskService, clock: FrozenClock, make_task
    ):
        task = await make_task("t")
        clock.advance(timedelta(seconds=1))
        await task_service.update_status(task.task_id, TaskStatus.READY, "bob")

        events = await task_service.get_task_events(task.task_id)
        assert events[0].kind == EventKind.STATUS_CHANGED
        assert events[0].actor_user_id == "bob"
        assert events[0].before_state == {"status": "queued"}
        assert events[0].after_state == {"status": "ready"}

    async def test_same_status_is_noop(self, task_service: TaskService, make_task):
        task = await make_task("t", status=TaskStatus.READY)
        result = await task_service.update_status(task.task_id, TaskStatus.READY, "bob")
        assert result.status == TaskStatus.READY
        events = await task_service.get_task_events(task.task_id)
        assert len(events) == 1

    async def test_cross_bucket_move_appends_key(
        self, task_service: TaskService, make_task
    ):
        ready = [await make_task(f"r{i}", status=TaskStatus.READY) for i in range(2)]
        moving = await make_task("q", status=TaskStatus.QUEUED)
        assert moving.sort_key == SORT_KEY_GAP

        moved = await task_service.update_status(moving.task_id, TaskStatus.READY, "bob")
        assert moved.sort_key == ready[-1].sort_key + SORT_KEY_GAP

    async def test_move_into_empty_bucket(self, task_service: TaskService, make_task):
        await make_task("q1")
        moving = await make_task("q2")
        moved = await task_service.update_status(moving.task_id, TaskStatus.HOLDING, "bob")
        assert moved.sort_key == SORT_KEY_GAP
