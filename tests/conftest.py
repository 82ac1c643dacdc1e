"""全局 pytest 配置 -- 临时 SQLite StoreGroup、冻结时钟与服务 fixture"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio

from hive.core.clock import FrozenClock
from hive.core.models import CreateTaskInput, Task, TaskStatus
from hive.core.store import StoreGroup, create_store_group
from hive.swarm import TaskService, TemplateService

# 2026-03-02 是周一
FROZEN_NOW = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供已初始化的临时 StoreGroup"""
    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FROZEN_NOW)


@pytest.fixture
def task_service(store_group: StoreGroup, clock: FrozenClock) -> TaskService:
    return TaskService(store_group, clock)


@pytest.fixture
def template_service(store_group: StoreGroup, task_service: TaskService) -> TemplateService:
    return TemplateService(store_group, task_service)


@pytest.fixture
def make_task(task_service: TaskService) -> Callable[..., Awaitable[Task]]:
    """按默认字段快速创建任务"""

    async def _make(title: str = "任务", status: TaskStatus = TaskStatus.QUEUED, **kwargs) -> Task:
        return await task_service.create_task(
            CreateTaskInput(title=title, creator_user_id="alice", status=status, **kwargs)
        )

    return _make
