from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import TYPE_CHECKING

import httpx
import pytest

from secretdesk.adapters.supabase import MemorySessionStore, SupabaseAuthBackend
from secretdesk.adapters.supabase.session_store import CODE_VERIFIER_KEY, SESSION_KEY
from secretdesk.app import is_authenticated
from secretdesk.domain.auth import AuthEvent
from secretdesk.domain.errors import AuthBackendError, ProvisioningBackendError
from tests.support.supabase import USER_PAYLOAD, session_payload

if TYPE_CHECKING:
    from secretdesk.domain.auth import Session
    from tests.support.supabase import RecordedRequests

BackendFactory = Callable[..., SupabaseAuthBackend]


def _unexpected(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"Unexpected request: {request.method} {request.url}")


async def _wait_for_session(backend: SupabaseAuthBackend) -> Session | None:
    for _ in range(100):
        session = await backend.get_session()
        if session is not None:
            return session
        await asyncio.sleep(0.01)
    return None


def _store_with_session(**overrides: object) -> MemorySessionStore:
    payload = session_payload()
    payload.update(overrides)
    return MemorySessionStore({SESSION_KEY: json.dumps(payload)})


def test_start_oauth_builds_pkce_authorize_url(make_backend: BackendFactory) -> None:
    store = MemorySessionStore()
    backend = make_backend(_unexpected, store=store)

    async def run() -> str:
        async with backend:
            return await backend.start_oauth()

    url = httpx.URL(asyncio.run(run()))

    assert url.path == "/auth/v1/authorize"
    assert url.params["provider"] == "google"
    assert url.params["redirect_to"] == "http://localhost:5173/auth/callback"
    assert url.params["code_challenge_method"] == "s256"
    assert url.params["access_type"] == "offline"
    assert url.params["prompt"] == "consent"
    assert store.get_item(CODE_VERIFIER_KEY)


def test_code_exchange_makes_session_visible_later(
    make_backend: BackendFactory,
    requests_log: RecordedRequests,
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/v1/token"
        assert request.url.params["grant_type"] == "pkce"
        return httpx.Response(200, json=session_payload())

    store = MemorySessionStore({CODE_VERIFIER_KEY: "verifier-123"})
    backend = make_backend(handler, store=store)
    events: list[AuthEvent] = []
    backend.on_auth_state_change(lambda event, _session: events.append(event))

    async def run() -> tuple[Session | None, Session | None]:
        async with backend:
            backend.consume_callback_url("http://localhost:5173/auth/callback?code=abc123")
            immediate = await backend.get_session()
            return immediate, await _wait_for_session(backend)

    immediate, session = asyncio.run(run())

    assert immediate is None
    assert session is not None
    assert session.user is not None
    assert session.user.id == "u1"
    assert session.user.email == "a@b.com"
    assert session.user.provider == "google"
    assert requests_log.body(0) == {"auth_code": "abc123", "code_verifier": "verifier-123"}
    assert requests_log[0].headers["apikey"] == "anon-key"
    assert store.get_item(CODE_VERIFIER_KEY) is None
    assert events == [AuthEvent.SIGNED_IN]


def test_failed_exchange_is_reported_once(make_backend: BackendFactory) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"error": "invalid_grant", "error_description": "Code expired"},
        )

    backend = make_backend(handler, store=MemorySessionStore({CODE_VERIFIER_KEY: "v"}))

    async def run() -> Session | None:
        async with backend:
            backend.consume_callback_url("https://app.test/auth/callback?code=stale")
            for _ in range(100):
                try:
                    await backend.get_session()
                except AuthBackendError as exc:
                    assert "Code expired" in str(exc)
                    break
                await asyncio.sleep(0.01)
            else:
                pytest.fail("exchange error never surfaced")
            return await backend.get_session()

    assert asyncio.run(run()) is None


def test_exchange_without_verifier_fails(make_backend: BackendFactory) -> None:
    backend = make_backend(_unexpected)

    async def run() -> None:
        async with backend:
            backend.consume_callback_url("https://app.test/auth/callback?code=abc")
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            await backend.get_session()

    with pytest.raises(AuthBackendError, match="code verifier"):
        asyncio.run(run())


def test_fragment_tokens_expose_user_before_session(
    make_backend: BackendFactory,
    requests_log: RecordedRequests,
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/v1/user"
        assert request.headers["Authorization"] == "Bearer frag-token"
        return httpx.Response(200, json=USER_PAYLOAD)

    backend = make_backend(handler)
    url = (
        "https://app.test/auth/callback#access_token=frag-token&refresh_token=frag-refresh"
        "&expires_in=3600&token_type=bearer"
    )

    async def run() -> tuple[str | None, Session | None]:
        async with backend:
            backend.consume_callback_url(url)
            user = await backend.get_user()
            return (user.id if user else None), await _wait_for_session(backend)

    user_id, session = asyncio.run(run())

    assert user_id == "u1"
    assert session is not None
    assert session.refresh_token == "frag-refresh"
    assert session.expires_at is not None
    assert requests_log.paths() == ["/auth/v1/user", "/auth/v1/user"]


def test_error_callback_starts_no_exchange(make_backend: BackendFactory) -> None:
    backend = make_backend(_unexpected)

    async def run() -> Session | None:
        async with backend:
            backend.consume_callback_url("https://app.test/cb?code=x&error=access_denied")
            return await backend.get_session()

    assert asyncio.run(run()) is None


def test_expired_session_is_refreshed(
    make_backend: BackendFactory,
    requests_log: RecordedRequests,
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["grant_type"] == "refresh_token"
        return httpx.Response(200, json=session_payload(access_token="access-2"))

    store = _store_with_session(expires_at=1_000)
    backend = make_backend(handler, store=store)
    events: list[AuthEvent] = []
    backend.on_auth_state_change(lambda event, _session: events.append(event))

    async def run() -> Session | None:
        async with backend:
            return await backend.get_session()

    session = asyncio.run(run())

    assert session is not None
    assert session.access_token == "access-2"
    assert requests_log.body(0) == {"refresh_token": "refresh-1"}
    assert events == [AuthEvent.TOKEN_REFRESHED]
    stored = json.loads(store.get_item(SESSION_KEY) or "{}")
    assert stored["access_token"] == "access-2"


def test_refresh_without_session_fails(make_backend: BackendFactory) -> None:
    backend = make_backend(_unexpected)

    async def run() -> None:
        async with backend:
            await backend.refresh_session()

    with pytest.raises(AuthBackendError, match="Auth session missing"):
        asyncio.run(run())


def test_get_user_without_any_token_returns_none(make_backend: BackendFactory) -> None:
    backend = make_backend(_unexpected)

    async def run() -> object:
        async with backend:
            return await backend.get_user()

    assert asyncio.run(run()) is None


def test_network_errors_become_backend_errors(make_backend: BackendFactory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    backend = make_backend(handler, store=_store_with_session())

    async def run() -> object:
        async with backend:
            return await backend.get_user()

    with pytest.raises(AuthBackendError, match="connection refused"):
        asyncio.run(run())


def test_sign_out_clears_session_even_when_already_revoked(make_backend: BackendFactory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/v1/logout"
        return httpx.Response(401, json={"msg": "invalid JWT"})

    store = _store_with_session()
    backend = make_backend(handler, store=store)
    events: list[AuthEvent] = []
    unsubscribe = backend.on_auth_state_change(lambda event, _session: events.append(event))

    async def run() -> None:
        async with backend:
            await backend.sign_out()
            unsubscribe()
            await backend.sign_out()

    asyncio.run(run())

    assert store.get_item(SESSION_KEY) is None
    assert events == [AuthEvent.SIGNED_OUT]


def test_sign_out_server_error_propagates_after_local_clear(make_backend: BackendFactory) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"msg": "database unavailable"})

    store = _store_with_session()
    backend = make_backend(handler, store=store)

    async def run() -> None:
        async with backend:
            await backend.sign_out()

    with pytest.raises(AuthBackendError, match="database unavailable"):
        asyncio.run(run())
    assert store.get_item(SESSION_KEY) is None


def test_listener_errors_do_not_break_notifications(make_backend: BackendFactory) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    backend = make_backend(handler, store=_store_with_session())
    seen: list[AuthEvent] = []

    def broken(_event: AuthEvent, _session: Session | None) -> None:
        raise RuntimeError("listener bug")

    backend.on_auth_state_change(broken)
    backend.on_auth_state_change(lambda event, _session: seen.append(event))

    async def run() -> None:
        async with backend:
            await backend.sign_out()

    asyncio.run(run())

    assert seen == [AuthEvent.SIGNED_OUT]


def test_ensure_defaults_calls_rpc_with_user_token(
    make_backend: BackendFactory,
    requests_log: RecordedRequests,
) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    backend = make_backend(handler, store=_store_with_session())

    async def run() -> None:
        async with backend:
            await backend.ensure_defaults("u1")

    asyncio.run(run())

    request = requests_log[0]
    assert request.url.path == "/rest/v1/rpc/create_default_credential_folders"
    assert requests_log.body(0) == {"target_user_id": "u1"}
    assert request.headers["Authorization"] == "Bearer access-1"


def test_ensure_defaults_reports_postgrest_error_code(make_backend: BackendFactory) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            403,
            json={
                "code": "42501",
                "message": "permission denied for function create_default_credential_folders",
                "details": None,
                "hint": None,
            },
        )

    backend = make_backend(handler)

    async def run() -> None:
        async with backend:
            await backend.ensure_defaults("u1")

    with pytest.raises(ProvisioningBackendError) as excinfo:
        asyncio.run(run())

    assert excinfo.value.code == "42501"
    assert "permission denied" in str(excinfo.value)


def test_ensure_defaults_tolerates_non_json_errors(make_backend: BackendFactory) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="<html>bad gateway</html>")

    backend = make_backend(handler)

    async def run() -> None:
        async with backend:
            await backend.ensure_defaults("u1")

    with pytest.raises(ProvisioningBackendError, match="status 500") as excinfo:
        asyncio.run(run())
    assert excinfo.value.code is None


def test_malformed_stored_session_is_discarded(make_backend: BackendFactory) -> None:
    store = MemorySessionStore({SESSION_KEY: json.dumps({"user": USER_PAYLOAD})})
    backend = make_backend(_unexpected, store=store)

    async def run() -> tuple[Session | None, bool]:
        async with backend:
            return await backend.get_session(), await is_authenticated(backend)

    session, authenticated = asyncio.run(run())

    assert session is None
    assert not authenticated
    assert store.get_item(SESSION_KEY) is None
