"""Domain port definitions for adapters."""

from __future__ import annotations

from .auth import AuthBackend, AuthStateListener, CallbackUrlConsumer, Unsubscribe
from .provisioning import DefaultsProvisioner

__all__ = [
    "AuthBackend",
    "AuthStateListener",
    "CallbackUrlConsumer",
    "DefaultsProvisioner",
    "Unsubscribe",
]
