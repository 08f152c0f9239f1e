from __future__ import annotations

from functools import lru_cache

from gatherhub.core.config import settings
from gatherhub.identity.base import IdentityProvider
from gatherhub.identity.clerk import ClerkIdentityProvider, LocalIdentityProvider


def create_identity_provider(backend: str | None = None) -> IdentityProvider:
    selected_backend = (backend or settings.identity_backend).strip().lower()
    if selected_backend == "clerk":
        return ClerkIdentityProvider(
            settings.identity_api_url,
            settings.identity_secret_key,
            timeout=settings.http_timeout_seconds,
        )
    if selected_backend == "local":
        return LocalIdentityProvider()
    raise ValueError(f"unsupported identity backend: {selected_backend}")


@lru_cache(maxsize=1)
def get_identity_provider() -> IdentityProvider:
    return create_identity_provider()
