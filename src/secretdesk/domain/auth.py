"""Identity and session values shared by the reconciler and its adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_PROFILE_PROVIDER = "google"

# Sessions this close to expiry are refreshed before being handed out.
EXPIRY_MARGIN = timedelta(seconds=10)


class AuthEvent(StrEnum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


@dataclass(frozen=True, slots=True)
class CanonicalUser:
    """Normalized identity, independent of the channel that produced it."""

    id: str
    email: str
    provider: str | None = None
    metadata: Mapping[str, object] = field(
        default_factory=lambda: MappingProxyType({}), repr=False, compare=False
    )

    def as_dict(self) -> dict[str, object]:
        rendered: dict[str, object] = {"id": self.id, "email": self.email}
        if self.provider is not None:
            rendered["provider"] = self.provider
        return rendered


@dataclass(frozen=True, slots=True)
class Session:
    access_token: str = field(repr=False)
    refresh_token: str | None = field(default=None, repr=False)
    expires_at: datetime | None = None
    user: CanonicalUser | None = None

    def is_expired(self, *, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        reference = now or datetime.now(UTC)
        return self.expires_at - EXPIRY_MARGIN <= reference


@dataclass(frozen=True, slots=True)
class UserProfile:
    id: str
    email: str
    full_name: str | None = None
    avatar_url: str | None = None
    provider: str = DEFAULT_PROFILE_PROVIDER


def profile_from_user(user: CanonicalUser) -> UserProfile:
    user_metadata = user.metadata.get("user_metadata")
    details: Mapping[str, object] = user_metadata if isinstance(user_metadata, dict) else {}

    def _text(key: str) -> str | None:
        value = details.get(key)
        return value if isinstance(value, str) and value else None

    return UserProfile(
        id=user.id,
        email=user.email,
        full_name=_text("full_name"),
        avatar_url=_text("avatar_url"),
        provider=_text("provider") or user.provider or DEFAULT_PROFILE_PROVIDER,
    )
