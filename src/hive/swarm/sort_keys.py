"""状态桶内排序键（fractional indexing）

- 追加：桶内最大键 + G，空桶为 G
- 插入到 T 之前：取 T 之前最近的键 P（无则 0），新键 = (P + T) // 2
- 无整数空隙时重排整个桶为 (i+1) * G，并基于重新读取的状态重试一次

所有方法都必须在 StoreGroup.transaction() 内调用。
"""

import structlog

from hive.core.config import SORT_KEY_GAP
from hive.core.exceptions import NotFoundError, StorageConflictError
from hive.core.models import TaskStatus
from hive.core.store.protocols import TaskStore

log = structlog.get_logger()


class SortKeyIndex:
    """排序键计算与重排"""

    def __init__(self, task_store: TaskStore, gap: int = SORT_KEY_GAP) -> None:
        self._tasks = task_store
        self._gap = gap

    async def append_key(
        self,
        status: TaskStatus,
        exclude_task_id: str | None = None,
    ) -> int:
        """桶末尾的新键"""
        current_max = await self._tasks.max_sort_key(status, exclude_task_id)
        if current_max is None:
            return self._gap
        return current_max + self._gap

    async def key_before(
        self,
        task_id: str,
        status: TaskStatus,
        target_id: str,
    ) -> int:
        """计算 task_id 插入到 target_id 之前的新键

        Raises:
            StorageConflictError: 重排后仍无整数空隙
        """
        target_key = await self._target_key(target_id)
        if target_key is None:
            # 目标尚无位置，先重排使桶内每个任务都有真实键
            await self.rebalance(status)
            target_key = await self._target_key(target_id)

        new_key = await self._midpoint(task_id, status, target_key)
        if new_key is not None:
            return new_key

        await self.rebalance(status)
        target_key = await self._target_key(target_id)
        new_key = await self._midpoint(task_id, status, target_key)
        if new_key is None:
            raise StorageConflictError(
                f"no sort key room before task {target_id} after rebalance"
            )
        return new_key

    async def rebalance(self, status: TaskStatus) -> int:
        """按 (sort_key 升序 nulls last, created_at 升序, task_id 升序) 重新分配 (i+1) * G

        Returns:
            重排的任务数
        """
        task_ids = await self._tasks.list_bucket_ids(status)
        # 先清空整个桶，避免中间状态触发唯一索引
        await self._tasks.clear_bucket_sort_keys(status)
        for position, task_id in enumerate(task_ids):
            await self._tasks.set_sort_key(task_id, (position + 1) * self._gap)
        log.info("sort_keys_rebalanced", status=status.value, count=len(task_ids))
        return len(task_ids)

    async def _target_key(self, target_id: str) -> int | None:
        target = await self._tasks.get_task(target_id)
        if target is None:
            raise NotFoundError("task", target_id)
        return target.sort_key

    async def _midpoint(
        self,
        task_id: str,
        status: TaskStatus,
        target_key: int | None,
    ) -> int | None:
        """P 与 T 之间的中点；没有整数空隙时返回 None"""
        if target_key is None:
            return None
        prev_key = await self._tasks.prev_sort_key(status, target_key, task_id)
        if prev_key is None:
            prev_key = 0
        new_key = (prev_key + target_key) // 2
        if new_key in (prev_key, target_key):
            log.debug(
                "sort_key_collision",
                status=status.value,
                prev_key=prev_key,
                target_key=target_key,
            )
            return None
        return new_key
