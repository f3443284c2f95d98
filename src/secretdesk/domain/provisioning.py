"""Best-effort provisioning of a freshly signed-in user's defaults."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from .errors import ProvisioningBackendError, ProvisioningFailure, ProvisioningWarning

if TYPE_CHECKING:
    from .ports.provisioning import DefaultsProvisioner

log = getLogger(__name__)

PERMISSION_DENIED_CODE = "42501"
UNIQUE_VIOLATION_CODE = "23505"
INTEGRITY_CONSTRAINT_CLASS = "23"


def classify_provisioning_error(error: Exception) -> ProvisioningFailure:
    code = error.code if isinstance(error, ProvisioningBackendError) else None
    if code == PERMISSION_DENIED_CODE:
        return ProvisioningFailure.PERMISSION_DENIED
    if code == UNIQUE_VIOLATION_CODE:
        return ProvisioningFailure.ALREADY_EXISTS
    if code is not None and code.startswith(INTEGRITY_CONSTRAINT_CLASS):
        return ProvisioningFailure.CONSTRAINT_VIOLATION
    return ProvisioningFailure.UNEXPECTED


async def ensure_user_setup(
    provisioner: DefaultsProvisioner,
    user_id: str,
) -> ProvisioningWarning | None:
    """Ask the provisioner for the user's defaults without ever raising.

    Authentication must succeed even when the default projects cannot be
    created, so every failure is classified, logged and returned instead.
    """

    log.info("Ensuring default projects for user %s", user_id)
    try:
        await provisioner.ensure_defaults(user_id)
    except Exception as exc:  # noqa: BLE001
        warning = ProvisioningWarning(user_id, classify_provisioning_error(exc), str(exc))
        _log_warning(warning, exc)
        return warning

    log.info("Default projects ready for user %s", user_id)
    return None


def _log_warning(warning: ProvisioningWarning, error: Exception) -> None:
    match warning.category:
        case ProvisioningFailure.PERMISSION_DENIED:
            log.error(
                "Permission denied creating defaults for user %s; check row-level "
                "security policies and function grants: %s",
                warning.user_id,
                warning.detail,
            )
        case ProvisioningFailure.ALREADY_EXISTS:
            log.warning(
                "Defaults may already exist for user %s (duplicate key): %s",
                warning.user_id,
                warning.detail,
            )
        case ProvisioningFailure.CONSTRAINT_VIOLATION:
            log.error(
                "Constraint violation creating defaults for user %s: %s",
                warning.user_id,
                warning.detail,
            )
        case _:
            log.error(
                "Unexpected error creating defaults for user %s",
                warning.user_id,
                exc_info=error,
            )
    log.warning("User setup incomplete for %s; authentication continues", warning.user_id)
