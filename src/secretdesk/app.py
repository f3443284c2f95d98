"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Literal

from secretdesk.adapters.supabase import FileSessionStore, SupabaseAuthBackend
from secretdesk.config.callback import CallbackTiming, get_callback_timing
from secretdesk.config.storage import get_storage_config
from secretdesk.config.supabase import get_supabase_config
from secretdesk.domain.auth import profile_from_user
from secretdesk.domain.errors import AuthBackendError, CallbackError
from secretdesk.domain.ports.auth import CallbackUrlConsumer
from secretdesk.domain.ports.provisioning import DefaultsProvisioner
from secretdesk.domain.provisioning import ensure_user_setup
from secretdesk.domain.reconciliation import SessionReconciler, Sleep

if TYPE_CHECKING:
    from secretdesk.adapters.supabase import SessionStore
    from secretdesk.config.supabase import SupabaseConfig
    from secretdesk.domain.auth import CanonicalUser, UserProfile
    from secretdesk.domain.errors import ProvisioningWarning
    from secretdesk.domain.ports.auth import AuthBackend

log = getLogger(__name__)

SUCCESS_REDIRECT = "/dashboard"
FAILURE_REDIRECT = "/"


@dataclass(frozen=True, slots=True)
class CallbackSuccess:
    user: CanonicalUser
    redirect_to: str = SUCCESS_REDIRECT
    status: Literal["success"] = field(default="success", init=False)

    def as_dict(self) -> dict[str, object]:
        return {"status": self.status, "user": self.user.as_dict()}


@dataclass(frozen=True, slots=True)
class CallbackFailure:
    kind: str
    message: str
    redirect_to: str = FAILURE_REDIRECT
    redirect_after_seconds: float = CallbackTiming().failure_redirect_delay
    status: Literal["error"] = field(default="error", init=False)

    def as_dict(self) -> dict[str, object]:
        return {"status": self.status, "kind": self.kind, "message": self.message}


CallbackOutcome = CallbackSuccess | CallbackFailure


def build_reconciler(
    backend: AuthBackend,
    *,
    provisioner: DefaultsProvisioner | None = None,
    timing: CallbackTiming | None = None,
    sleep: Sleep = asyncio.sleep,
) -> SessionReconciler:
    """Reconciler for ``backend``, provisioning through the backend when it can."""

    if provisioner is None and isinstance(backend, DefaultsProvisioner):
        provisioner = backend
    return SessionReconciler(backend, provisioner=provisioner, timing=timing, sleep=sleep)


async def complete_oauth_callback(
    url: str,
    *,
    backend: AuthBackend,
    provisioner: DefaultsProvisioner | None = None,
    timing: CallbackTiming | None = None,
    sleep: Sleep = asyncio.sleep,
    reconciler: SessionReconciler | None = None,
) -> CallbackOutcome:
    """Turn an OAuth redirect into a single success or failure outcome.

    The outcome is returned as soon as it is decided; provisioning keeps running
    on the reconciler's background tasks. Whoever owns the backend's client
    passes its own ``reconciler`` and drains it before closing the client.
    """

    if reconciler is None:
        reconciler = build_reconciler(
            backend,
            provisioner=provisioner,
            timing=timing,
            sleep=sleep,
        )
    if isinstance(backend, CallbackUrlConsumer):
        backend.consume_callback_url(url)

    try:
        user = await reconciler.reconcile(url)
    except CallbackError as exc:
        return CallbackFailure(
            kind=exc.kind,
            message=exc.message,
            redirect_after_seconds=reconciler.timing.failure_redirect_delay,
        )
    return CallbackSuccess(user=user)


async def get_user_profile(backend: AuthBackend) -> UserProfile | None:
    user = await backend.get_user()
    return profile_from_user(user) if user is not None else None


async def is_authenticated(backend: AuthBackend) -> bool:
    try:
        session = await backend.get_session()
    except AuthBackendError:
        log.warning("Could not determine session state", exc_info=True)
        return False
    return session is not None and session.user is not None


def _default_store() -> SessionStore:
    return FileSessionStore(get_storage_config().session_path())


def _build_backend(
    config: SupabaseConfig | None,
    store: SessionStore | None,
) -> SupabaseAuthBackend:
    return SupabaseAuthBackend(
        config=config or get_supabase_config(),
        store=store or _default_store(),
    )


def run_oauth_callback(
    url: str,
    *,
    config: SupabaseConfig | None = None,
    store: SessionStore | None = None,
    provisioner: DefaultsProvisioner | None = None,
    timing: CallbackTiming | None = None,
) -> CallbackOutcome:
    """Complete an OAuth callback using the configured Supabase project.

    Provisioning still in flight once the outcome is known gets up to
    ``timing.provisioning_drain`` seconds before the HTTP client is closed.
    """

    effective_timing = timing or get_callback_timing()

    async def run() -> CallbackOutcome:
        async with _build_backend(config, store) as backend:
            reconciler = build_reconciler(
                backend,
                provisioner=provisioner,
                timing=effective_timing,
            )
            outcome = await complete_oauth_callback(url, backend=backend, reconciler=reconciler)
            log.info("OAuth callback finished with status=%s", outcome.status)
            await reconciler.drain(timeout=effective_timing.provisioning_drain)
            return outcome

    return asyncio.run(run())


def start_sign_in(
    provider: str | None = None,
    *,
    config: SupabaseConfig | None = None,
    store: SessionStore | None = None,
) -> str:
    """Return the provider authorization URL the browser should be sent to."""

    async def run() -> str:
        async with _build_backend(config, store) as backend:
            return await backend.start_oauth(provider)

    return asyncio.run(run())


def sign_out(*, config: SupabaseConfig | None = None, store: SessionStore | None = None) -> None:
    async def run() -> None:
        async with _build_backend(config, store) as backend:
            await backend.sign_out()

    asyncio.run(run())
    log.info("Signed out")


def current_profile(
    *,
    config: SupabaseConfig | None = None,
    store: SessionStore | None = None,
) -> UserProfile | None:
    async def run() -> UserProfile | None:
        async with _build_backend(config, store) as backend:
            return await get_user_profile(backend)

    return asyncio.run(run())


def provision_defaults(
    user_id: str,
    *,
    provisioner: DefaultsProvisioner,
) -> ProvisioningWarning | None:
    """Run ensure-defaults for ``user_id`` outside of a sign-in."""

    return asyncio.run(ensure_user_setup(provisioner, user_id))
