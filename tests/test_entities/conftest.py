"""Shared fixtures for entity tests."""

from typing import Any

import pytest

from src.entities.schemas import Project, ProjectCategory, ProjectSummary


class InMemoryProjectRepository:
    """Dict-backed stand-in with the ProjectRepository API."""

    def __init__(self) -> None:
        self.projects: dict[str, Project] = {}
        self.puts = 0

    async def get(self, project_id: str) -> Project | None:
        project = self.projects.get(project_id)
        return project.model_copy(deep=True) if project else None

    async def put(self, project: Project) -> None:
        self.puts += 1
        self.projects[project.id] = project.model_copy(deep=True)

    async def update(self, project_id: str, fields: dict[str, Any]) -> bool:
        project = self.projects.get(project_id)
        if project is None:
            return False
        data = {**project.model_dump(), **fields, "id": project_id}
        self.projects[project_id] = Project.model_validate(data)
        return True

    async def list_summaries(self) -> list[ProjectSummary]:
        return [
            ProjectSummary(id=p.id, name=p.name, category=p.category)
            for p in sorted(self.projects.values(), key=lambda p: (p.category.value, p.name))
        ]


@pytest.fixture
def project_repo() -> InMemoryProjectRepository:
    return InMemoryProjectRepository()


@pytest.fixture
def binance() -> Project:
    return Project(
        id="binance",
        name="Binance",
        category=ProjectCategory.CEX,
        description="Centralized exchange",
        website="https://www.binance.com",
    )
