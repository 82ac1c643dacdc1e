"""CLI 入口测试 -- python -m hive.core"""

import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

from hive.core.__main__ import main, run_tick
from hive.core.clock import FrozenClock
from hive.core.models import CreateTemplateInput, EveryUnit, ListTasksQuery
from hive.core.store import create_store_group
from hive.swarm import TaskService, TemplateService


class TestCli:
    def test_usage_without_command(self, monkeypatch: pytest.MonkeyPatch, capsys):
        monkeypatch.setattr(sys, "argv", ["hive.core"])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
        assert "用法" in capsys.readouterr().out

    async def test_run_tick_creates_due_tasks(
        self, tmp_db_path: Path, monkeypatch: pytest.MonkeyPatch, capsys
    ):
        monkeypatch.setenv("HIVE_DB_PATH", str(tmp_db_path))

        # 模板起点在过去，真实时钟下已到期
        group = await create_store_group(str(tmp_db_path))
        clock = FrozenClock(datetime(2020, 1, 1, tzinfo=UTC))
        await TemplateService(group, TaskService(group, clock)).create_template(
            CreateTemplateInput(title="年报", every_interval=1, every_unit=EveryUnit.MONTH)
        )
        await group.close()

        await run_tick()
        out = capsys.readouterr().out
        assert "创建 1 个任务" in out
        assert "失败 0 个模板" in out

        group = await create_store_group(str(tmp_db_path))
        try:
            tasks = await TaskService(group).list_tasks(ListTasksQuery())
            assert [t.title for t in tasks] == ["年报"]
        finally:
            await group.close()
