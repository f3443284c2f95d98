"""Minimal Pydantic models for the Supabase auth (GoTrue) and PostgREST APIs."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class SupabaseBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class UserPayload(SupabaseBaseModel):
    id: str
    email: str | None = None
    app_metadata: dict[str, object] = Field(default_factory=dict)
    user_metadata: dict[str, object] = Field(default_factory=dict)

    _normalize_email = field_validator("email", mode="before")(_blank_to_none)


class SessionPayload(SupabaseBaseModel):
    access_token: str
    token_type: str | None = "bearer"
    expires_in: int | None = None
    expires_at: int | None = None
    refresh_token: str | None = None
    user: UserPayload | None = None

    @field_validator("expires_in", "expires_at", mode="before")
    @classmethod
    def _parse_int(cls, value: int | str | None) -> int | None:
        if value is None or value == "":
            return None
        return int(value)

    _normalize_refresh_token = field_validator("refresh_token", mode="before")(_blank_to_none)


class AuthErrorPayload(SupabaseBaseModel):
    """GoTrue reports errors under several field names depending on the endpoint."""

    error: str | None = None
    error_description: str | None = None
    error_code: str | None = None
    code: int | str | None = None
    msg: str | None = None
    message: str | None = None

    @property
    def text(self) -> str:
        return (
            self.error_description
            or self.msg
            or self.message
            or self.error
            or "Unknown auth error"
        )

    @property
    def identifier(self) -> str | None:
        return self.error_code or self.error


class PostgrestErrorPayload(SupabaseBaseModel):
    code: str | None = None
    message: str | None = None
    details: str | None = None
    hint: str | None = None
