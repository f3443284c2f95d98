"""Session reconciliation after an OAuth redirect.

The auth backend stores the session asynchronously relative to the redirect, so
the first look may find nothing. The reconciler walks a small state machine::

    INIT -> CHECKING(n) -> SUCCEEDED
                        -> RETRYING -> CHECKING(n + 1)
                        -> FALLBACK_USER -> SUCCEEDED | FAILED
                        -> FAILED

Waits go through an injected ``sleep`` so tests can observe the backoff schedule
without real timers. Every run ends in exactly one terminal state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from secretdesk.config.callback import CallbackTiming

from .callback import CallbackSignal, detect
from .errors import CallbackError, MissingParametersError, ProviderError, SessionMissingError
from .provisioning import ensure_user_setup

if TYPE_CHECKING:
    from .auth import CanonicalUser
    from .ports.auth import AuthBackend
    from .ports.provisioning import DefaultsProvisioner

log = getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
_StateHandler = Callable[["ReconciliationRun"], Awaitable["ReconcileState"]]


class ReconcileState(StrEnum):
    INIT = "init"
    CHECKING = "checking"
    RETRYING = "retrying"
    FALLBACK_USER = "fallback_user"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = frozenset({ReconcileState.SUCCEEDED, ReconcileState.FAILED})


class AttemptOutcome(StrEnum):
    SESSION_FOUND = "session_found"
    NO_SESSION_YET = "no_session_yet"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True, slots=True)
class ReconciliationAttempt:
    attempt_number: int
    outcome: AttemptOutcome
    detail: str | None = None


@dataclass(slots=True)
class ReconciliationRun:
    """Bookkeeping for one pass through the state machine."""

    signal: CallbackSignal
    state: ReconcileState = ReconcileState.INIT
    attempts: list[ReconciliationAttempt] = field(default_factory=list["ReconciliationAttempt"])
    transitions: list[ReconcileState] = field(default_factory=list["ReconcileState"])
    user: CanonicalUser | None = None
    error: CallbackError | None = None

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    def fail(self, error: CallbackError) -> ReconcileState:
        self.error = error
        return ReconcileState.FAILED

    def succeed(self, user: CanonicalUser) -> ReconcileState:
        self.user = user
        return ReconcileState.SUCCEEDED


class SessionReconciler:
    def __init__(
        self,
        backend: AuthBackend,
        *,
        provisioner: DefaultsProvisioner | None = None,
        timing: CallbackTiming | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._backend = backend
        self._provisioner = provisioner
        self._timing = timing or CallbackTiming()
        self._sleep = sleep
        self._background: set[asyncio.Task[object]] = set()
        self.last_run: ReconciliationRun | None = None

    @property
    def timing(self) -> CallbackTiming:
        return self._timing

    @property
    def pending_provisioning(self) -> int:
        return len(self._background)

    async def reconcile(self, url: str) -> CanonicalUser:
        """Resolve the signed-in user for the callback at ``url``.

        Raises ``ProviderError``, ``MissingParametersError`` or
        ``SessionMissingError``; no other exception escapes.
        """

        run = ReconciliationRun(signal=detect(url))
        self.last_run = run
        handlers: dict[ReconcileState, _StateHandler] = {
            ReconcileState.INIT: self._start,
            ReconcileState.CHECKING: self._check_session,
            ReconcileState.RETRYING: self._back_off,
            ReconcileState.FALLBACK_USER: self._fetch_user_directly,
        }

        while run.state not in TERMINAL_STATES:
            run.state = await handlers[run.state](run)
            run.transitions.append(run.state)

        if run.error is not None:
            log.error("OAuth callback failed (%s): %s", run.error.kind, run.error)
            raise run.error
        if run.user is None:
            raise SessionMissingError("No user data available", attempts=run.attempt_count)

        log.info(
            "OAuth callback succeeded: user=%s, provider=%s, attempts=%s",
            run.user.id,
            run.user.provider,
            run.attempt_count,
        )
        self._schedule_provisioning(run.user.id)
        return run.user

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for detached provisioning tasks; never alters a decided outcome."""

        if not self._background:
            return
        _, pending = await asyncio.wait(set(self._background), timeout=timeout)
        if pending:
            log.warning("%s provisioning task(s) still running after %ss", len(pending), timeout)

    async def _start(self, run: ReconciliationRun) -> ReconcileState:
        provider_error = run.signal.provider_error
        if provider_error is not None:
            return run.fail(ProviderError(provider_error.code, provider_error.description))
        if not run.signal.is_callback:
            log.warning("No OAuth parameters found in callback URL")
            return run.fail(MissingParametersError())

        log.debug("Waiting %ss for the backend to persist the session", self._timing.initial_delay)
        await self._sleep(self._timing.initial_delay)
        return ReconcileState.CHECKING

    async def _check_session(self, run: ReconciliationRun) -> ReconcileState:
        attempt_number = run.attempt_count + 1
        has_budget = attempt_number < self._timing.max_attempts
        try:
            session = await self._backend.get_session()
        except Exception as exc:  # noqa: BLE001
            run.attempts.append(
                ReconciliationAttempt(attempt_number, AttemptOutcome.TRANSPORT_ERROR, str(exc))
            )
            log.warning("Session error on attempt %s: %s", attempt_number, exc)
            if has_budget:
                return ReconcileState.RETRYING
            return run.fail(SessionMissingError(str(exc), attempts=attempt_number))

        if session is not None and session.user is not None:
            run.attempts.append(ReconciliationAttempt(attempt_number, AttemptOutcome.SESSION_FOUND))
            log.info("Session found on attempt %s", attempt_number)
            return run.succeed(session.user)

        run.attempts.append(ReconciliationAttempt(attempt_number, AttemptOutcome.NO_SESSION_YET))
        if has_budget:
            log.info("No session on attempt %s, retrying", attempt_number)
            return ReconcileState.RETRYING
        log.info("No session after %s attempts, asking for the user directly", attempt_number)
        return ReconcileState.FALLBACK_USER

    async def _back_off(self, run: ReconciliationRun) -> ReconcileState:
        await self._sleep(self._timing.backoff_for(run.attempt_count))
        return ReconcileState.CHECKING

    async def _fetch_user_directly(self, run: ReconciliationRun) -> ReconcileState:
        try:
            user = await self._backend.get_user()
        except Exception as exc:  # noqa: BLE001
            detail = f"Unable to retrieve user: {exc}"
            return run.fail(SessionMissingError(detail, attempts=run.attempt_count))
        if user is None:
            return run.fail(
                SessionMissingError(
                    "No user data available after OAuth callback",
                    attempts=run.attempt_count,
                )
            )

        log.info("User %s found via direct lookup", user.id)
        await self._refresh_opportunistically()
        return run.succeed(user)

    async def _refresh_opportunistically(self) -> None:
        try:
            refreshed = await self._backend.refresh_session()
        except Exception as exc:  # noqa: BLE001
            log.warning("Failed to refresh session: %s", exc)
            return
        if refreshed is not None:
            log.info("Session refreshed after direct user lookup")

    def _schedule_provisioning(self, user_id: str) -> None:
        if self._provisioner is None:
            return
        task: asyncio.Task[object] = asyncio.create_task(
            ensure_user_setup(self._provisioner, user_id),
            name=f"ensure-defaults-{user_id}",
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
