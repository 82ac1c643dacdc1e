"""Hive Core Store -- SQLite 持久化实现

两个连接：
- 写连接：所有修改都在 transaction() 内执行，事务中的读取也走写连接
- 读连接：事务外的查询（WAL 模式下只看到已提交数据）

写事务进行到一半时，读连接看到的仍是上一次提交的快照。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from .event_store import SqliteTaskEventStore
from .project_store import SqliteProjectStore
from .sqlite_init import init_db, init_read_connection
from .task_store import SqliteTaskStore
from .template_store import SqliteTemplateStore
from .transaction import atomic


class StoreSet:
    """绑定到同一连接的四个 Store"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.task_store = SqliteTaskStore(conn)
        self.event_store = SqliteTaskEventStore(conn)
        self.template_store = SqliteTemplateStore(conn)
        self.project_store = SqliteProjectStore(conn)


class StoreGroup(StoreSet):
    """Store 实例组

    自身的 *_store 属性绑定写连接；reader 绑定只读连接。
    """

    def __init__(self, conn: aiosqlite.Connection, read_conn: aiosqlite.Connection) -> None:
        super().__init__(conn)
        self.conn = conn
        self.read_conn = read_conn
        self.reader = StoreSet(read_conn)
        self._write_lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["StoreGroup"]:
        """在单个原子事务内执行读-改-写"""
        async with atomic(self.conn, self._write_lock):
            yield self

    async def close(self) -> None:
        await self.read_conn.close()
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_db(conn)

    # 读连接在建表之后打开，确保 WAL 已启用
    read_conn = await aiosqlite.connect(db_path)
    await init_read_connection(read_conn)

    return StoreGroup(conn=conn, read_conn=read_conn)


__all__ = [
    "StoreGroup",
    "StoreSet",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteTaskEventStore",
    "SqliteTemplateStore",
    "SqliteProjectStore",
    "init_db",
    "atomic",
]
