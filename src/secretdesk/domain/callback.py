"""Detection of OAuth redirect evidence in a callback URL."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from .errors import UNKNOWN_PROVIDER_ERROR_DESCRIPTION


@dataclass(frozen=True, slots=True)
class ProviderErrorInfo:
    code: str
    description: str = UNKNOWN_PROVIDER_ERROR_DESCRIPTION


@dataclass(frozen=True, slots=True)
class CallbackSignal:
    has_code: bool = False
    has_access_token: bool = False
    provider_error: ProviderErrorInfo | None = None

    @property
    def is_callback(self) -> bool:
        return self.has_code or self.has_access_token or self.provider_error is not None


def split_callback_params(url: str | httpx.URL) -> tuple[httpx.QueryParams, httpx.QueryParams]:
    """Return the query and fragment parameters of ``url`` as two separate maps."""

    # Split by hand so percent-escapes inside the fragment survive parsing.
    base, _, fragment = str(url).partition("#")
    return httpx.URL(base).params, httpx.QueryParams(fragment)


def detect(url: str | httpx.URL) -> CallbackSignal:
    query, fragment = split_callback_params(url)
    return CallbackSignal(
        has_code="code" in query or "code" in fragment,
        has_access_token="access_token" in query or "access_token" in fragment,
        provider_error=_provider_error(query, fragment),
    )


def _provider_error(
    query: httpx.QueryParams,
    fragment: httpx.QueryParams,
) -> ProviderErrorInfo | None:
    sources = [params for params in (query, fragment) if "error" in params]
    if not sources:
        return None

    # Query first: a non-blank query value always wins over the fragment.
    primary = next((params for params in sources if params["error"].strip()), sources[0])
    code = primary["error"].strip() or "unknown_error"

    description = None
    for params in (primary, query, fragment):
        candidate = params.get("error_description", "").strip()
        if candidate:
            description = candidate
            break
    return ProviderErrorInfo(
        code=code,
        description=description or UNKNOWN_PROVIDER_ERROR_DESCRIPTION,
    )
