from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from gatherhub.auth.jwt import SessionClaims, verify_session_token
from gatherhub.core.config import settings
from gatherhub.db import get_db
from gatherhub.models import User
from gatherhub.models.user import UserRole
from gatherhub.services.user_service import ensure_user_mirror

DBSession = Annotated[Session, Depends(get_db)]


def _unauthorized(detail: str = "unauthorized") -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.removeprefix("Bearer ").strip() or None


def _dev_claims(token: str) -> SessionClaims:
    prefix = settings.dev_auth_prefix
    if not token.startswith(prefix):
        raise _unauthorized(f"invalid dev token (expected prefix {prefix})")

    email = token.removeprefix(prefix).strip()
    if "@" not in email:
        raise _unauthorized("invalid email in token")

    return SessionClaims(
        user_id=token,
        role=None,
        onboarding_complete=True,
        email=email,
        name=None,
        image_url=None,
    )


def _resolve_claims(token: str) -> SessionClaims:
    # Local dev auth only
    if settings.auth_mode == "dev" and settings.env == "local":
        return _dev_claims(token)

    if settings.auth_mode != "jwt":
        raise _unauthorized("auth not configured")

    try:
        return verify_session_token(token)
    except ValueError as exc:
        raise _unauthorized(str(exc)) from None


def get_optional_user(request: Request, db: DBSession) -> User | None:
    token = _bearer_token(request)
    if token is None:
        return None

    claims = _resolve_claims(token)
    user = ensure_user_mirror(db, claims)
    structlog.contextvars.bind_contextvars(user_id=user.id)
    request.state.user_id = user.id
    return user


def get_current_user(request: Request, db: DBSession) -> User:
    user = get_optional_user(request, db)
    if user is None:
        raise _unauthorized("missing bearer token")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[User | None, Depends(get_optional_user)]


def require_role(*roles: UserRole):
    allowed = set(roles)

    def _dependency(user: CurrentUser) -> User:
        if user.role not in allowed:
            raise HTTPException(status_code=403, detail="insufficient role")
        return user

    return _dependency


OrganizerUser = Annotated[User, Depends(require_role(UserRole.ORGANIZER, UserRole.ADMIN))]
AdminUser = Annotated[User, Depends(require_role(UserRole.ADMIN))]
