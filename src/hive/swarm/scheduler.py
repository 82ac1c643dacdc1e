"""RecurringScheduler -- 周期模板定时调度

显式的 start() / stop() 生命周期：start 后立即 tick 一次，此后每 interval_s 秒 tick 一次。
循环内异常只记录日志，不终止循环。单进程内单例运行，不做跨进程协调。
"""

import asyncio
from datetime import datetime

import structlog

from hive.core.clock import Clock

from .template_service import TemplateService, TickResult

log = structlog.get_logger()


class RecurringScheduler:
    """周期调度器"""

    def __init__(
        self,
        template_service: TemplateService,
        clock: Clock,
        interval_s: float = 60.0,
    ) -> None:
        self._templates = template_service
        self._clock = clock
        self._interval_s = interval_s
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self.last_tick_at: datetime | None = None
        self.last_result: TickResult | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """启动调度循环（重复调用无副作用）"""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="recurring-scheduler")
        log.info("recurring_scheduler_started", interval_s=self._interval_s)

    async def stop(self) -> None:
        """停止调度循环并等待当前 tick 结束（重复调用无副作用）"""
        if self._task is None:
            return
        self._stop_event.set()
        task = self._task
        self._task = None
        await task
        log.info("recurring_scheduler_stopped")

    async def tick(self) -> TickResult | None:
        """执行一次 tick；异常记录日志后返回 None"""
        self.last_tick_at = self._clock.now()
        try:
            result = await self._templates.tick()
        except Exception as e:
            log.error(
                "recurring_scheduler_tick_failed",
                error_type=type(e).__name__,
                error=str(e),
            )
            return None
        self.last_result = result
        return result

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_s)
            except TimeoutError:
                continue
