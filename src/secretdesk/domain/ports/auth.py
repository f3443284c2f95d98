"""Ports for the authentication backend consumed by the reconciler."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from secretdesk.domain.auth import AuthEvent, CanonicalUser, Session

AuthStateListener = Callable[["AuthEvent", "Session | None"], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class AuthBackend(Protocol):
    """Opaque authentication capability.

    ``get_session`` and ``get_user`` return ``None`` when nothing is known yet and
    raise ``AuthBackendError`` for transport or service failures.
    """

    async def start_oauth(self, provider: str | None = None) -> str: ...

    async def get_session(self) -> Session | None: ...

    async def get_user(self) -> CanonicalUser | None: ...

    async def refresh_session(self) -> Session | None: ...

    async def sign_out(self) -> None: ...

    def on_auth_state_change(self, listener: AuthStateListener) -> Unsubscribe: ...


@runtime_checkable
class CallbackUrlConsumer(Protocol):
    """Backends that establish the session themselves from the redirect URL.

    ``consume_callback_url`` must return immediately; the session becomes
    visible through ``get_session`` once the backend has processed it.
    """

    def consume_callback_url(self, url: str) -> None: ...
