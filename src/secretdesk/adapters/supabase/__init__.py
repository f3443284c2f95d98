"""Public interface for the Supabase adapter."""

from __future__ import annotations

from .client import SupabaseAuthBackend
from .schema import AuthErrorPayload, PostgrestErrorPayload, SessionPayload, UserPayload
from .session_store import FileSessionStore, MemorySessionStore, SessionStore
from .translator import parse_session, parse_user

__all__ = [
    "AuthErrorPayload",
    "FileSessionStore",
    "MemorySessionStore",
    "PostgrestErrorPayload",
    "SessionPayload",
    "SessionStore",
    "SupabaseAuthBackend",
    "UserPayload",
    "parse_session",
    "parse_user",
]
