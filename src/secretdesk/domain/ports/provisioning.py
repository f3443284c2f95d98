"""Port for idempotent per-user default resources."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class DefaultsProvisioner(Protocol):
    async def ensure_defaults(self, user_id: str) -> None:
        """Create the user's default projects unless they already exist.

        Must be safe to call repeatedly for the same user. Failures are raised as
        ``ProvisioningBackendError`` where a SQLSTATE-like code is known.
        """
        ...
