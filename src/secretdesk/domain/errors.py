"""Error taxonomy for OAuth callback completion.

Only the three ``CallbackError`` subclasses ever reach the caller of the
reconciler. Adapter errors are converted at attempt boundaries and
``ProvisioningWarning`` is reported, never raised past ``ensure_user_setup``.
"""

from __future__ import annotations

from enum import StrEnum

UNKNOWN_PROVIDER_ERROR_DESCRIPTION = "Unknown OAuth error"


class CallbackError(RuntimeError):
    """Terminal, user-presentable failure of a callback."""

    kind: str = "CallbackError"
    user_message: str = "Authentication failed"

    @property
    def message(self) -> str:
        return self.user_message


class ProviderError(CallbackError):
    """The identity provider rejected the sign-in; waiting cannot fix it."""

    kind = "ProviderError"

    def __init__(self, code: str, description: str = UNKNOWN_PROVIDER_ERROR_DESCRIPTION) -> None:
        super().__init__(f"OAuth failed: {code} - {description}")
        self.code = code
        self.description = description

    @property
    def message(self) -> str:
        return f"OAuth Error: {self.code} - {self.description}"


class MissingParametersError(CallbackError):
    """The navigation carried no OAuth evidence at all."""

    kind = "MissingParameters"
    user_message = (
        "Invalid authentication callback - missing OAuth parameters. "
        "Please try signing in again."
    )

    def __init__(self) -> None:
        super().__init__("Invalid OAuth callback - missing authentication parameters")


class SessionMissingError(CallbackError):
    """The backend never produced an identity within the attempt budget."""

    kind = "SessionMissing"
    user_message = (
        "Authentication session could not be established. This might be due to "
        "browser settings or network issues. Please try again."
    )

    def __init__(self, detail: str, *, attempts: int = 0) -> None:
        super().__init__(f"Auth session missing after {attempts} attempts: {detail}")
        self.detail = detail
        self.attempts = attempts


class AuthBackendError(RuntimeError):
    """Raised by auth adapters for transport or service failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class ProvisioningBackendError(RuntimeError):
    """Raised by provisioners; ``code`` follows PostgreSQL SQLSTATE values."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details
        self.hint = hint


class ProvisioningFailure(StrEnum):
    PERMISSION_DENIED = "permission_denied"
    ALREADY_EXISTS = "already_exists"
    CONSTRAINT_VIOLATION = "constraint_violation"
    UNEXPECTED = "unexpected"


class ProvisioningWarning(RuntimeWarning):
    """Diagnostic record of a failed ensure-defaults call."""

    def __init__(self, user_id: str, category: ProvisioningFailure, detail: str) -> None:
        super().__init__(f"Default setup for user {user_id} incomplete ({category}): {detail}")
        self.user_id = user_id
        self.category = category
        self.detail = detail
