from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import httpx
import pytest

from secretdesk.adapters.http_resilience import ResilientClient
from secretdesk.adapters.supabase import MemorySessionStore, SupabaseAuthBackend
from tests.support.supabase import RecordedRequests

if TYPE_CHECKING:
    from secretdesk.config.http_resilience import ResilienceConfig
    from secretdesk.config.supabase import SupabaseConfig

Handler = Callable[[httpx.Request], httpx.Response]
BackendFactory = Callable[..., SupabaseAuthBackend]


@pytest.fixture
def requests_log() -> RecordedRequests:
    return RecordedRequests()


@pytest.fixture
def make_backend(
    supabase_config: SupabaseConfig,
    requests_log: RecordedRequests,
) -> BackendFactory:
    def factory(
        handler: Handler,
        *,
        store: MemorySessionStore | None = None,
    ) -> SupabaseAuthBackend:
        def recording_handler(request: httpx.Request) -> httpx.Response:
            requests_log.append(request)
            return handler(request)

        def client_factory(resilience: ResilienceConfig) -> ResilientClient:
            return ResilientClient(resilience, transport=httpx.MockTransport(recording_handler))

        return SupabaseAuthBackend(
            config=supabase_config,
            store=store or MemorySessionStore(),
            client_factory=client_factory,
        )

    return factory
