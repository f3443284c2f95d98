"""Idempotent default-project provisioning against a local SQL database."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, func, insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from secretdesk.config.storage import get_database_config
from secretdesk.domain.errors import ProvisioningBackendError
from secretdesk.domain.projects import DEFAULT_PROJECTS, Project, ProjectTemplate

from .mappings import create_all_tables, project_table

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = getLogger(__name__)

UNIQUE_VIOLATION = "23505"
INTEGRITY_VIOLATION = "23000"


def _sqlstate(error: IntegrityError) -> str:
    original = error.orig
    code = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if isinstance(code, str) and code:
        return code
    # sqlite3 carries no SQLSTATE; map its messages onto the PostgreSQL classes.
    if "UNIQUE constraint failed" in str(original):
        return UNIQUE_VIOLATION
    return INTEGRITY_VIOLATION


class SqlAlchemyDefaultsProvisioner:
    """Creates the default projects for a user who has none yet."""

    def __init__(
        self,
        *,
        engine: Engine | None = None,
        database_uri: str | None = None,
        templates: tuple[ProjectTemplate, ...] = DEFAULT_PROJECTS,
    ) -> None:
        self._engine = engine or create_engine(
            database_uri or get_database_config().uri, future=True
        )
        self._templates = templates
        create_all_tables(self._engine)

    async def ensure_defaults(self, user_id: str) -> None:
        await asyncio.to_thread(self.create_missing_defaults, user_id)

    def create_missing_defaults(self, user_id: str) -> int:
        """Insert the default projects and return how many rows were created."""

        try:
            with self._engine.begin() as connection:
                existing = connection.execute(
                    select(func.count())
                    .select_from(project_table)
                    .where(project_table.c.user_id == user_id)
                ).scalar_one()
                if existing:
                    log.debug("User %s already has %s project(s)", user_id, existing)
                    return 0
                connection.execute(
                    insert(project_table),
                    [
                        {
                            "user_id": user_id,
                            "name": template.name,
                            "description": template.description,
                        }
                        for template in self._templates
                    ],
                )
        except IntegrityError as exc:
            raise ProvisioningBackendError(
                f"Default projects conflict for user {user_id}: {exc.orig}",
                code=_sqlstate(exc),
            ) from exc
        except SQLAlchemyError as exc:
            raise ProvisioningBackendError(f"Default projects failed: {exc}") from exc

        log.info("Created %s default project(s) for user %s", len(self._templates), user_id)
        return len(self._templates)

    def list_projects(self, user_id: str) -> list[Project]:
        with self._engine.connect() as connection:
            rows = connection.execute(
                select(project_table)
                .where(project_table.c.user_id == user_id)
                .order_by(project_table.c.created_at, project_table.c.name)
            ).mappings()
            return [
                Project(
                    id=row["id"],
                    user_id=row["user_id"],
                    name=row["name"],
                    description=row["description"],
                    created_at=row["created_at"],
                )
                for row in rows
            ]
