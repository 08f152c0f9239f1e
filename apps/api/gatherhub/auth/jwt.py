from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import jwt
from jwt import PyJWKClient, PyJWTError

from gatherhub.core.config import settings


@dataclass(frozen=True)
class SessionClaims:
    """The subset of identity provider session claims the API relies on."""

    user_id: str
    role: str | None
    onboarding_complete: bool
    email: str | None
    name: str | None
    image_url: str | None


@lru_cache(maxsize=1)
def _jwks_client(url: str) -> PyJWKClient:
    return PyJWKClient(url, cache_keys=True)


def _signing_key(token: str) -> tuple[Any, list[str]]:
    if settings.auth_jwks_url:
        key = _jwks_client(settings.auth_jwks_url).get_signing_key_from_jwt(token).key
        return key, ["RS256"]
    if not settings.auth_jwt_secret:
        raise ValueError("session token verification is not configured")
    return settings.auth_jwt_secret, [settings.auth_jwt_algorithm]


def _claims_from_payload(payload: dict[str, Any]) -> SessionClaims:
    sub = payload.get("sub")
    if not sub or not isinstance(sub, str):
        raise ValueError("session token has no subject")

    metadata = payload.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}

    # Role can be a top-level custom claim or live in the public metadata
    role = payload.get("role") or metadata.get("role")

    return SessionClaims(
        user_id=sub,
        role=role if isinstance(role, str) else None,
        onboarding_complete=bool(metadata.get("onboardingComplete", False)),
        email=payload.get("email"),
        name=payload.get("name"),
        image_url=payload.get("image_url"),
    )


def verify_session_token(token: str) -> SessionClaims:
    try:
        key, algorithms = _signing_key(token)
        payload = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            issuer=settings.auth_jwt_issuer,
            audience=settings.auth_jwt_audience,
            options={
                "require": ["sub", "exp"],
                "verify_aud": settings.auth_jwt_audience is not None,
            },
        )
    except PyJWTError as exc:
        raise ValueError("invalid session token") from exc

    azp = payload.get("azp")
    if settings.auth_authorized_parties and azp and azp not in settings.auth_authorized_parties:
        raise ValueError("session token issued for an unknown party")

    return _claims_from_payload(payload)
