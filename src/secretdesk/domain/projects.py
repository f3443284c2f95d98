"""Projects group a user's secrets, API keys and environment variables."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime  # noqa: TC003


@dataclass(frozen=True, slots=True)
class ProjectTemplate:
    name: str
    description: str


@dataclass(frozen=True, slots=True)
class Project:
    id: str
    user_id: str
    name: str
    description: str | None = None
    created_at: datetime | None = None


DEFAULT_PROJECTS: tuple[ProjectTemplate, ...] = (
    ProjectTemplate("Development", "Development environment credentials"),
    ProjectTemplate("Staging", "Staging environment credentials"),
    ProjectTemplate("Production", "Production environment credentials"),
)
