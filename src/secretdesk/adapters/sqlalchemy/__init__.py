"""SQLAlchemy adapter package for secretdesk."""

from __future__ import annotations

from .mappings import create_all_tables, metadata, project_table
from .provisioning import SqlAlchemyDefaultsProvisioner

__all__ = [
    "SqlAlchemyDefaultsProvisioner",
    "create_all_tables",
    "metadata",
    "project_table",
]
