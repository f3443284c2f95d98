"""Supabase auth and REST configuration values."""

from __future__ import annotations

from dataclasses import dataclass, field

from .env import optional_env_var, require_env_vars
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

DEFAULT_OAUTH_PROVIDER = "google"
DEFAULT_REDIRECT_URL = "http://localhost:5173/auth/callback"
DEFAULT_PROVISIONING_RPC = "create_default_credential_folders"
SUPABASE_TIMEOUT_SECONDS = 15.0

# Google only issues a refresh token when offline access is requested with consent.
DEFAULT_OAUTH_QUERY_PARAMS: tuple[tuple[str, str], ...] = (
    ("access_type", "offline"),
    ("prompt", "consent"),
)


@dataclass(frozen=True, slots=True)
class SupabaseConfig:
    url: str
    anon_key: str
    redirect_url: str = DEFAULT_REDIRECT_URL
    provider: str = DEFAULT_OAUTH_PROVIDER
    provisioning_rpc: str = DEFAULT_PROVISIONING_RPC
    oauth_query_params: tuple[tuple[str, str], ...] = DEFAULT_OAUTH_QUERY_PARAMS
    resilience: ResilienceConfig = field(
        default_factory=lambda: ResilienceConfig(name="supabase")
    )

    @property
    def auth_url(self) -> str:
        return f"{self.url.rstrip('/')}/auth/v1"

    @property
    def rest_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1"


def get_supabase_config(*, resilience: ResilienceConfig | None = None) -> SupabaseConfig:
    values = require_env_vars(("SUPABASE_URL", "SUPABASE_ANON_KEY"))
    base_url = values["SUPABASE_URL"].rstrip("/")
    anon_key = values["SUPABASE_ANON_KEY"]
    return SupabaseConfig(
        url=base_url,
        anon_key=anon_key,
        redirect_url=optional_env_var("SECRETDESK_REDIRECT_URL") or DEFAULT_REDIRECT_URL,
        provider=optional_env_var("SECRETDESK_OAUTH_PROVIDER") or DEFAULT_OAUTH_PROVIDER,
        provisioning_rpc=optional_env_var("SECRETDESK_PROVISIONING_RPC")
        or DEFAULT_PROVISIONING_RPC,
        resilience=resilience
        or ResilienceConfig(
            name="supabase",
            base_url=base_url,
            timeout_seconds=SUPABASE_TIMEOUT_SECONDS,
            retry=RetryPolicy(total=2),
            ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
            default_headers={"apikey": anon_key},
        ),
    )
