"""Database repository for project entities."""

import json
import logging
from typing import Any

from src.entities.schemas import Project, ProjectCategory, ProjectSummary
from src.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS projects (
    id            TEXT PRIMARY KEY,
    category      TEXT NOT NULL,
    name          TEXT NOT NULL,
    data          JSONB NOT NULL,
    last_updated  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_projects_category
    ON projects(category, name);
"""

_UPSERT_SQL = """
INSERT INTO projects (id, category, name, data, last_updated)
VALUES ($1, $2, $3, $4, $5)
ON CONFLICT (id) DO UPDATE SET
    category = EXCLUDED.category,
    name = EXCLUDED.name,
    data = EXCLUDED.data,
    last_updated = EXCLUDED.last_updated
"""

# Shallow JSONB merge; the id key is never overwritten
_PATCH_SQL = """
UPDATE projects
SET data = (data || $2::jsonb) - 'id' || jsonb_build_object('id', id),
    last_updated = NOW()
WHERE id = $1
"""


def _load_json(value: Any) -> dict[str, Any]:
    if isinstance(value, str):
        return json.loads(value)
    return dict(value) if value else {}


def _record_to_project(record) -> Project:
    return Project.model_validate(_load_json(record["data"]))


class ProjectRepository:
    """Entity store: get, put, partial update and per-category queries."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Projects table ensured")

    async def get(self, project_id: str) -> Project | None:
        row = await self._db.fetchrow("SELECT data FROM projects WHERE id = $1", project_id)
        return _record_to_project(row) if row else None

    async def put(self, project: Project) -> None:
        """Insert or overwrite a project (last write wins)."""
        await self._db.execute(
            _UPSERT_SQL,
            project.id,
            project.category.value,
            project.name,
            project.to_storage_dict(),
            project.last_updated,
        )

    async def update(self, project_id: str, fields: dict[str, Any]) -> bool:
        """Merge JSON-serializable top-level fields. Returns True if the project exists."""
        result = await self._db.execute(_PATCH_SQL, project_id, fields)
        return result.endswith(" 1")

    async def query_by_category(self, category: ProjectCategory | str) -> list[Project]:
        rows = await self._db.fetch(
            "SELECT data FROM projects WHERE category = $1 ORDER BY name",
            ProjectCategory(category).value,
        )
        return [_record_to_project(r) for r in rows]

    async def list_summaries(self) -> list[ProjectSummary]:
        """id, name and category of every project, grouped by category."""
        rows = await self._db.fetch(
            "SELECT id, name, category FROM projects ORDER BY category, name"
        )
        return [
            ProjectSummary(id=r["id"], name=r["name"], category=r["category"])
            for r in rows
        ]

    async def count(self) -> int:
        return await self._db.fetchval("SELECT COUNT(*) FROM projects") or 0
