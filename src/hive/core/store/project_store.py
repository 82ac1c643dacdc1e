"""ProjectStore SQLite 实现 -- 仅服务于任务可见性过滤"""

import json

import aiosqlite

from ..models.project import Project
from .codec import from_db_ts, to_db_ts


class SqliteProjectStore:
    """ProjectStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_project(self, project: Project) -> None:
        """创建项目记录"""
        await self._conn.execute(
            """
            INSERT INTO projects (project_id, title, tagged_users, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                project.project_id,
                project.title,
                json.dumps(project.tagged_users) if project.tagged_users is not None else None,
                to_db_ts(project.created_at),
                to_db_ts(project.updated_at),
            ),
        )

    async def get_project(self, project_id: str) -> Project | None:
        cursor = await self._conn.execute(
            "SELECT * FROM projects WHERE project_id = ?",
            (project_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_project(row)

    async def list_projects(self) -> list[Project]:
        cursor = await self._conn.execute("SELECT * FROM projects ORDER BY title ASC")
        rows = await cursor.fetchall()
        return [self._row_to_project(row) for row in rows]

    async def set_tagged_users(
        self,
        project_id: str,
        tagged_users: list[str] | None,
        updated_at: str,
    ) -> None:
        await self._conn.execute(
            "UPDATE projects SET tagged_users = ?, updated_at = ? WHERE project_id = ?",
            (
                json.dumps(tagged_users) if tagged_users is not None else None,
                updated_at,
                project_id,
            ),
        )

    async def visible_project_ids(self, identity: str) -> set[str]:
        """查询对指定身份可见的项目 ID"""
        projects = await self.list_projects()
        return {p.project_id for p in projects if p.is_visible_to(identity)}

    @staticmethod
    def _row_to_project(row: aiosqlite.Row) -> Project:
        tagged = json.loads(row["tagged_users"]) if row["tagged_users"] else None
        return Project(
            project_id=row["project_id"],
            title=row["title"],
            tagged_users=tagged,
            created_at=from_db_ts(row["created_at"]),
            updated_at=from_db_ts(row["updated_at"]),
        )
