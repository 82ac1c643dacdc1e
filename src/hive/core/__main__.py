"""CLI 入口模块 -- python -m hive.core <command>

支持的命令：
  tick           立即执行一次周期模板 tick
  run-scheduler  运行周期调度循环，直到被中断
"""

import asyncio
import sys

from .config import get_db_path, load_scheduler_config
from .logging_config import setup_logging

_USAGE = """用法: python -m hive.core <command>
命令:
  tick           立即执行一次周期模板 tick
  run-scheduler  运行周期调度循环，直到被中断"""


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    command = sys.argv[1]
    setup_logging()

    if command == "tick":
        asyncio.run(run_tick())
    elif command == "run-scheduler":
        try:
            asyncio.run(run_scheduler())
        except KeyboardInterrupt:
            print("调度器已停止")
    else:
        print(f"未知命令: {command}")
        print("可用命令: tick, run-scheduler")
        sys.exit(1)


async def run_tick() -> None:
    """执行一次 tick 并输出统计"""
    from hive.swarm import TaskService, TemplateService

    from .clock import SystemClock
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    try:
        task_service = TaskService(store_group, SystemClock())
        result = await TemplateService(store_group, task_service).tick()
        print(f"tick 完成：创建 {result.created} 个任务，失败 {result.errors} 个模板")
    finally:
        await store_group.close()


async def run_scheduler() -> None:
    """运行调度循环"""
    from hive.swarm import RecurringScheduler, TaskService, TemplateService

    from .clock import SystemClock
    from .store import create_store_group

    config = load_scheduler_config()
    if not config.enabled:
        print("调度器已禁用（HIVE_SCHEDULER_ENABLED）")
        return

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    print(f"tick 间隔: {config.tick_interval_s} 秒")

    store_group = await create_store_group(db_path)
    clock = SystemClock()
    task_service = TaskService(store_group, clock)
    scheduler = RecurringScheduler(
        TemplateService(store_group, task_service),
        clock,
        interval_s=config.tick_interval_s,
    )
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()
        await store_group.close()


if __name__ == "__main__":
    main()
