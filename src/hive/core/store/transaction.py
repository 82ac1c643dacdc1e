"""原子事务封装

所有修改类操作（含重排 + 重试）都在同一个 SQLite 事务内完成：
BEGIN IMMEDIATE 立即获取写锁，成功则 COMMIT，任何异常都 ROLLBACK，
保证被拒绝的写入不会部分落盘。

同一连接上的事务通过连接级 asyncio.Lock 串行化，跨进程由 SQLite 写锁
+ busy_timeout 串行化。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite
import structlog

from ..exceptions import StorageConflictError

log = structlog.get_logger()


def _is_lock_error(error: Exception) -> bool:
    text = str(error).lower()
    return "database is locked" in text or "database is busy" in text


@asynccontextmanager
async def atomic(
    conn: aiosqlite.Connection,
    write_lock: asyncio.Lock,
) -> AsyncIterator[aiosqlite.Connection]:
    """在单个事务内执行读-改-写

    Raises:
        StorageConflictError: 唯一约束冲突或数据库锁等待超时
    """
    async with write_lock:
        try:
            await conn.execute("BEGIN IMMEDIATE")
        except aiosqlite.OperationalError as e:
            if _is_lock_error(e):
                raise StorageConflictError("could not acquire write lock") from e
            raise

        try:
            yield conn
        except aiosqlite.IntegrityError as e:
            await conn.rollback()
            log.warning("transaction_integrity_conflict", error=str(e))
            raise StorageConflictError(f"concurrent write conflict: {e}") from e
        except BaseException:
            await conn.rollback()
            raise

        try:
            await conn.commit()
        except aiosqlite.OperationalError as e:
            await conn.rollback()
            if _is_lock_error(e):
                raise StorageConflictError("commit failed: database is locked") from e
            raise
