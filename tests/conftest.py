from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.pool import StaticPool

from secretdesk.config.callback import CallbackTiming
from secretdesk.config.http_resilience import ResilienceConfig, RetryPolicy
from secretdesk.config.supabase import SupabaseConfig
from tests.support.auth import RecordingSleep

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def timing() -> CallbackTiming:
    return CallbackTiming(initial_delay=1.5, base_delay=1.0, max_attempts=3)


@pytest.fixture
def supabase_config() -> SupabaseConfig:
    return SupabaseConfig(
        url="https://project.supabase.test",
        anon_key="anon-key",
        redirect_url="http://localhost:5173/auth/callback",
        resilience=ResilienceConfig(name="supabase-test", retry=RetryPolicy(total=0)),
    )


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    # One shared connection so worker threads see the same in-memory database.
    engine = create_engine(
        "sqlite+pysqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    try:
        yield engine
    finally:
        engine.dispose()
