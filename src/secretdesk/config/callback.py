"""Timing policy for OAuth callback reconciliation."""

from __future__ import annotations

from dataclasses import dataclass

from .env import optional_float_env, optional_int_env
from .errors import ConfigurationError

# The auth backend persists the session asynchronously after the redirect.
DEFAULT_INITIAL_DELAY_SECONDS = 1.5
DEFAULT_BASE_DELAY_SECONDS = 1.0
DEFAULT_MAX_SESSION_ATTEMPTS = 3
DEFAULT_PROVISIONING_DRAIN_SECONDS = 10.0
DEFAULT_FAILURE_REDIRECT_DELAY_SECONDS = 3.0


@dataclass(frozen=True, slots=True)
class CallbackTiming:
    """Backoff schedule for session checks.

    The wait before retry ``n`` is ``n * base_delay``, so the worst case spent
    waiting is ``initial_delay + base_delay * (max_attempts - 1) * max_attempts / 2``.
    """

    initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS
    max_attempts: int = DEFAULT_MAX_SESSION_ATTEMPTS
    provisioning_drain: float = DEFAULT_PROVISIONING_DRAIN_SECONDS
    failure_redirect_delay: float = DEFAULT_FAILURE_REDIRECT_DELAY_SECONDS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError("Callback max_attempts must be at least 1")
        if min(self.initial_delay, self.base_delay, self.provisioning_drain) < 0:
            raise ConfigurationError("Callback delays must be non-negative")

    def backoff_for(self, attempt: int) -> float:
        return attempt * self.base_delay

    @property
    def worst_case_wait(self) -> float:
        return self.initial_delay + sum(
            self.backoff_for(attempt) for attempt in range(1, self.max_attempts)
        )


def get_callback_timing() -> CallbackTiming:
    return CallbackTiming(
        initial_delay=optional_float_env(
            "SECRETDESK_CALLBACK_INITIAL_DELAY", DEFAULT_INITIAL_DELAY_SECONDS
        ),
        base_delay=optional_float_env("SECRETDESK_CALLBACK_BASE_DELAY", DEFAULT_BASE_DELAY_SECONDS),
        max_attempts=optional_int_env(
            "SECRETDESK_CALLBACK_MAX_ATTEMPTS", DEFAULT_MAX_SESSION_ATTEMPTS
        ),
    )
