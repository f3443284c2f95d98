"""Translate Supabase payloads into domain identities and sessions."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING

from secretdesk.domain.auth import CanonicalUser, Session

from .schema import SessionPayload, UserPayload

if TYPE_CHECKING:
    from collections.abc import Mapping


def parse_user(raw: Mapping[str, object]) -> CanonicalUser:
    payload = UserPayload.model_validate(raw)
    metadata_email = payload.user_metadata.get("email")
    email = payload.email or (metadata_email if isinstance(metadata_email, str) else "")
    provider = payload.app_metadata.get("provider") or payload.user_metadata.get("provider")
    return CanonicalUser(
        id=payload.id,
        email=email,
        provider=provider if isinstance(provider, str) else None,
        metadata=MappingProxyType(dict(raw)),
    )


def parse_session(raw: Mapping[str, object]) -> Session:
    payload = SessionPayload.model_validate(raw)
    user_raw = raw.get("user")
    user = parse_user(user_raw) if isinstance(user_raw, dict) else None
    return Session(
        access_token=payload.access_token,
        refresh_token=payload.refresh_token,
        expires_at=_expiry(payload),
        user=user,
    )


def normalize_session_payload(
    raw: Mapping[str, object],
    *,
    now: datetime,
    user: Mapping[str, object] | None = None,
) -> dict[str, object]:
    """Return the JSON document persisted for a session, with absolute expiry."""

    payload = SessionPayload.model_validate(raw)
    expires_at = payload.expires_at
    if expires_at is None and payload.expires_in is not None:
        expires_at = int((now + timedelta(seconds=payload.expires_in)).timestamp())
    document: dict[str, object] = {
        "access_token": payload.access_token,
        "token_type": payload.token_type,
        "refresh_token": payload.refresh_token,
        "expires_at": expires_at,
    }
    user_raw = user if user is not None else raw.get("user")
    if isinstance(user_raw, dict):
        document["user"] = dict(user_raw)
    return document


def _expiry(payload: SessionPayload) -> datetime | None:
    if payload.expires_at is None:
        return None
    return datetime.fromtimestamp(payload.expires_at, tz=UTC)
