"""Supabase auth backend over the GoTrue and PostgREST HTTP APIs."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import json
import secrets
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, TypeVar

import httpx
from pydantic import ValidationError

from secretdesk.adapters.http_resilience import ResilientClient
from secretdesk.domain.auth import AuthEvent
from secretdesk.domain.callback import split_callback_params
from secretdesk.domain.errors import AuthBackendError, ProvisioningBackendError

from .schema import AuthErrorPayload, PostgrestErrorPayload
from .session_store import CODE_VERIFIER_KEY, SESSION_KEY, MemorySessionStore, SessionStore
from .translator import normalize_session_payload, parse_session, parse_user

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from types import TracebackType

    from secretdesk.config.http_resilience import ResilienceConfig
    from secretdesk.config.supabase import SupabaseConfig
    from secretdesk.domain.auth import CanonicalUser, Session
    from secretdesk.domain.ports.auth import AuthStateListener, Unsubscribe

log = getLogger(__name__)

# Sessions are revoked already when logout answers with these.
_LOGOUT_IGNORED_STATUSES = frozenset({401, 403, 404})


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class SupabaseAuthBackend:
    """Auth backend that mirrors the browser client's session handling.

    ``consume_callback_url`` starts the code exchange (PKCE) or adopts the
    fragment tokens (implicit flow) in a background task, so the session shows
    up in ``get_session`` only once that task has finished.
    """

    def __init__(
        self,
        *,
        config: SupabaseConfig,
        store: SessionStore | None = None,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._store = store or MemorySessionStore()
        self._client = (client_factory or ResilientClient)(config.resilience)
        self._now = now
        self._listeners: list[AuthStateListener] = []
        self._pending: asyncio.Task[None] | None = None
        self._callback_access_token: str | None = None

    async def __aenter__(self) -> SupabaseAuthBackend:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        await self._client.aclose()

    async def start_oauth(self, provider: str | None = None) -> str:
        verifier = secrets.token_urlsafe(64)
        self._store.set_item(CODE_VERIFIER_KEY, verifier)
        params: dict[str, str] = {
            "provider": provider or self._config.provider,
            "redirect_to": self._config.redirect_url,
            "code_challenge": _code_challenge(verifier),
            "code_challenge_method": "s256",
        }
        params.update(dict(self._config.oauth_query_params))
        return str(httpx.URL(f"{self._config.auth_url}/authorize", params=params))

    def consume_callback_url(self, url: str) -> None:
        query, fragment = split_callback_params(url)
        if "error" in query or "error" in fragment:
            return
        code = query.get("code") or fragment.get("code")
        if code:
            self._pending = asyncio.create_task(self._exchange_code(code), name="pkce-exchange")
            return
        params = fragment if "access_token" in fragment else query
        access_token = params.get("access_token")
        if access_token:
            self._callback_access_token = access_token
            self._pending = asyncio.create_task(
                self._adopt_callback_tokens(dict(params.items())),
                name="adopt-callback-tokens",
            )

    async def get_session(self) -> Session | None:
        if self._pending is not None:
            if not self._pending.done():
                return None
            task, self._pending = self._pending, None
            error = None if task.cancelled() else task.exception()
            if error is not None:
                raise AuthBackendError(f"Session exchange failed: {error}") from error

        document = self._load_session_document()
        if document is None:
            return None
        try:
            session = parse_session(document)
        except ValidationError:
            log.warning("Discarding malformed stored session")
            self._store.remove_item(SESSION_KEY)
            return None
        if session.is_expired(now=self._now()) and session.refresh_token:
            log.info("Stored session expired, refreshing")
            return await self.refresh_session()
        return session

    async def get_user(self) -> CanonicalUser | None:
        document = self._load_session_document()
        token = document.get("access_token") if document else self._callback_access_token
        if not isinstance(token, str) or not token:
            return None
        response = await self._auth_request("GET", "/user", token=token)
        return parse_user(response.json())

    async def refresh_session(self) -> Session | None:
        document = self._load_session_document()
        refresh_token = document.get("refresh_token") if document else None
        if not isinstance(refresh_token, str) or not refresh_token:
            raise AuthBackendError("Auth session missing: no refresh token stored")
        response = await self._auth_request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            body={"refresh_token": refresh_token},
        )
        session = self._save_session(response.json())
        self._notify(AuthEvent.TOKEN_REFRESHED, session)
        return session

    async def sign_out(self) -> None:
        document = self._load_session_document()
        token = document.get("access_token") if document else None
        try:
            if isinstance(token, str) and token:
                await self._auth_request("POST", "/logout", token=token)
        except AuthBackendError as exc:
            if exc.status_code not in _LOGOUT_IGNORED_STATUSES:
                raise
            log.info("Session already revoked remotely (status %s)", exc.status_code)
        finally:
            self._store.remove_item(SESSION_KEY)
            self._callback_access_token = None
        self._notify(AuthEvent.SIGNED_OUT, None)

    def on_auth_state_change(self, listener: AuthStateListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def ensure_defaults(self, user_id: str) -> None:
        document = self._load_session_document()
        token = document.get("access_token") if document else None
        url = f"{self._config.rest_url}/rpc/{self._config.provisioning_rpc}"
        try:
            response = await self._client.post(
                url,
                json={"target_user_id": user_id},
                headers=self._headers(token if isinstance(token, str) else None),
            )
        except httpx.HTTPError as exc:
            raise ProvisioningBackendError(f"Provisioning request failed: {exc}") from exc
        if response.is_success:
            return
        error = _parse_error(response, PostgrestErrorPayload)
        raise ProvisioningBackendError(
            error.message or f"Provisioning failed with status {response.status_code}",
            code=error.code,
            details=error.details,
            hint=error.hint,
        )

    async def _exchange_code(self, code: str) -> None:
        verifier = self._store.get_item(CODE_VERIFIER_KEY)
        if verifier is None:
            raise AuthBackendError("No PKCE code verifier stored for this sign-in")
        response = await self._auth_request(
            "POST",
            "/token",
            params={"grant_type": "pkce"},
            body={"auth_code": code, "code_verifier": verifier},
        )
        session = self._save_session(response.json())
        self._store.remove_item(CODE_VERIFIER_KEY)
        self._notify(AuthEvent.SIGNED_IN, session)

    async def _adopt_callback_tokens(self, params: Mapping[str, str]) -> None:
        response = await self._auth_request("GET", "/user", token=params["access_token"])
        session = self._save_session(params, user=response.json())
        self._notify(AuthEvent.SIGNED_IN, session)

    async def _auth_request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: Mapping[str, str] | None = None,
        body: object = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                f"{self._config.auth_url}{path}",
                params=params,
                json=body,
                headers=self._headers(token),
            )
        except httpx.HTTPError as exc:
            raise AuthBackendError(f"Auth request {path} failed: {exc}") from exc
        if not response.is_success:
            error = _parse_error(response, AuthErrorPayload)
            raise AuthBackendError(
                error.text,
                status_code=response.status_code,
                code=error.identifier,
            )
        return response

    def _headers(self, token: str | None) -> dict[str, str]:
        return {
            "apikey": self._config.anon_key,
            "Authorization": f"Bearer {token or self._config.anon_key}",
        }

    def _load_session_document(self) -> dict[str, object] | None:
        raw = self._store.get_item(SESSION_KEY)
        if raw is None:
            return None
        try:
            document = json.loads(raw)
        except json.JSONDecodeError:
            log.warning("Discarding unreadable stored session")
            self._store.remove_item(SESSION_KEY)
            return None
        return document if isinstance(document, dict) else None

    def _save_session(
        self,
        payload: Mapping[str, object],
        *,
        user: Mapping[str, object] | None = None,
    ) -> Session:
        try:
            document = normalize_session_payload(payload, now=self._now(), user=user)
        except ValidationError as exc:
            raise AuthBackendError(f"Unexpected session payload: {exc}") from exc
        self._store.set_item(SESSION_KEY, json.dumps(document))
        self._callback_access_token = None
        return parse_session(document)

    def _notify(self, event: AuthEvent, session: Session | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                log.exception("Auth state listener failed for %s", event)


T = TypeVar("T", AuthErrorPayload, PostgrestErrorPayload)


def _parse_error(
    response: httpx.Response,
    model: type[T],
) -> T:
    try:
        payload = response.json()
    except ValueError:
        return model()
    if not isinstance(payload, dict):
        return model()
    try:
        return model.model_validate(payload)
    except ValidationError:
        return model()

