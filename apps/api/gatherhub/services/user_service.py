from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gatherhub.auth.jwt import SessionClaims
from gatherhub.core.time import utcnow
from gatherhub.identity.base import IdentityProvider
from gatherhub.models import Event, User
from gatherhub.models.user import UserRole
from gatherhub.services.error_codes import ErrorCode
from gatherhub.services.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

logger = structlog.get_logger()

SELF_SERVICE_ROLES = {UserRole.USER, UserRole.ORGANIZER}


def _parse_role(value: Any) -> UserRole | None:
    if not isinstance(value, str):
        return None
    try:
        return UserRole(value.strip().lower())
    except ValueError:
        return None


def _display_name(first: str | None, last: str | None, username: str | None, email: str) -> str:
    if first and last:
        return f"{first} {last}"
    return first or username or email.split("@", 1)[0]


def ensure_user_mirror(db: Session, claims: SessionClaims) -> User:
    """Return the local mirror for a verified session, creating it on first sight.

    The stored role is authoritative once the row exists; the session's role
    claim only seeds a brand new mirror.
    """
    user = db.get(User, claims.user_id)
    if user is not None:
        return user

    email = claims.email or ""
    role = _parse_role(claims.role) or UserRole.USER
    user = User(
        id=claims.user_id,
        email=email,
        name=claims.name or email.split("@", 1)[0] or claims.user_id,
        image_url=claims.image_url,
        role=role,
        onboarding_complete=claims.onboarding_complete,
        became_organizer_at=utcnow() if role == UserRole.ORGANIZER else None,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent request created the same mirror first
        db.rollback()
        user = db.get(User, claims.user_id)
        if user is None:
            raise
        return user

    logger.info("user_mirror_created", user_id=user.id, role=user.role.value)
    return user


def become_organizer(
    db: Session,
    user: User,
    *,
    organizer_name: str,
    phone_number: str,
    organization_name: str | None,
    identity: IdentityProvider,
) -> User:
    if user.role in {UserRole.ORGANIZER, UserRole.ADMIN}:
        raise BadRequestError(ErrorCode.ALREADY_ORGANIZER.value, "user is already an organizer")

    organizer_name = organizer_name.strip()
    phone_number = phone_number.strip()
    if len(organizer_name) < 2:
        raise ValidationError(ErrorCode.ORGANIZER_PROFILE_INVALID.value, "organizer name must be at least 2 characters")
    if len(phone_number) < 8:
        raise ValidationError(ErrorCode.ORGANIZER_PROFILE_INVALID.value, "phone number must be at least 8 characters")

    identity.update_public_metadata(
        user.id, {"role": UserRole.ORGANIZER.value, "onboardingComplete": True}
    )

    user.role = UserRole.ORGANIZER
    user.onboarding_complete = True
    user.organizer_name = organizer_name
    user.phone_number = phone_number
    user.organization_name = (organization_name or "").strip() or None
    user.became_organizer_at = utcnow()
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("user_became_organizer", user_id=user.id)
    return user


def set_role(
    db: Session,
    user: User,
    role: UserRole,
    onboarding_complete: bool,
    identity: IdentityProvider,
) -> User:
    if role not in SELF_SERVICE_ROLES:
        raise ValidationError(ErrorCode.INVALID_ROLE.value, "role must be either 'user' or 'organizer'")
    if user.role == UserRole.ADMIN:
        raise BadRequestError(ErrorCode.CANNOT_CHANGE_OWN_ROLE.value, "admins cannot change their own role")

    identity.update_public_metadata(
        user.id, {"role": role.value, "onboardingComplete": onboarding_complete}
    )

    if role == UserRole.ORGANIZER and user.role != UserRole.ORGANIZER:
        user.became_organizer_at = utcnow()
    user.role = role
    user.onboarding_complete = onboarding_complete
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("user_role_set", user_id=user.id, role=role.value)
    return user


def list_users(
    db: Session, *, query: str | None = None, role: UserRole | None = None, limit: int = 50
) -> list[User]:
    stmt = select(User).order_by(User.created_at.desc()).limit(limit)
    if query:
        like = f"%{query.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(User.email).like(like),
                func.lower(User.name).like(like),
            )
        )
    if role is not None:
        stmt = stmt.where(User.role == role)
    return list(db.scalars(stmt).all())


def admin_update_user(
    db: Session,
    admin: User,
    user_id: str,
    role: UserRole,
    identity: IdentityProvider,
) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(ErrorCode.USER_NOT_FOUND.value, "user not found")
    if user.id == admin.id:
        raise BadRequestError(ErrorCode.CANNOT_CHANGE_OWN_ROLE.value, "cannot change own role")

    if user.role == role:
        return user

    identity.update_public_metadata(user.id, {"role": role.value})

    if role == UserRole.ORGANIZER and user.became_organizer_at is None:
        user.became_organizer_at = utcnow()
    user.role = role
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("user_role_changed", user_id=user.id, role=role.value, changed_by=admin.id)
    return user


def sync_identity_user(db: Session, data: dict[str, Any]) -> User:
    """Upsert the mirror from an identity provider ``user.created``/``user.updated`` payload."""
    user_id = data.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise BadRequestError(ErrorCode.WEBHOOK_PAYLOAD_INVALID.value, "webhook payload has no user id")

    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    email = ""
    for address in addresses:
        if not isinstance(address, dict):
            continue
        if not email or address.get("id") == primary_id:
            email = address.get("email_address") or email

    name = _display_name(data.get("first_name"), data.get("last_name"), data.get("username"), email)
    metadata = data.get("public_metadata") or {}
    role = _parse_role(metadata.get("role")) if isinstance(metadata, dict) else None

    user = db.get(User, user_id)
    created = user is None
    if user is None:
        user = User(id=user_id, role=role or UserRole.USER)
        db.add(user)

    user.email = email
    user.name = name
    user.image_url = data.get("image_url") or None
    if role is not None:
        if role == UserRole.ORGANIZER and user.became_organizer_at is None:
            user.became_organizer_at = utcnow()
        user.role = role
    if isinstance(metadata, dict) and "onboardingComplete" in metadata:
        user.onboarding_complete = bool(metadata["onboardingComplete"])

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(ErrorCode.USER_SYNC_CONFLICT.value, "user sync conflicted, retry") from exc

    db.refresh(user)
    logger.info("user_synced", user_id=user.id, created=created, role=user.role.value)
    return user


def sync_all_identity_users(
    db: Session, identity: IdentityProvider, page_size: int = 100
) -> dict[str, int]:
    """Walk the provider's user list page by page and upsert every user into the mirror.

    Used to backfill users created before webhooks were wired up, or missed
    while the endpoint was down. Records that cannot be applied are logged
    and skipped so one bad user does not stop the run.
    """
    synced = failed = 0
    offset = 0
    while True:
        page = identity.list_users(limit=page_size, offset=offset)
        for data in page:
            if not isinstance(data, dict):
                failed += 1
                continue
            try:
                sync_identity_user(db, data)
                synced += 1
            except (BadRequestError, ConflictError) as exc:
                failed += 1
                logger.warning("user_sync_skipped", user_id=data.get("id"), error=exc.message)
        if len(page) < page_size:
            break
        offset += page_size

    logger.info("identity_users_synced", synced=synced, failed=failed)
    return {"synced": synced, "failed": failed}


def delete_identity_user(db: Session, user_id: str) -> bool:
    user = db.get(User, user_id)
    if user is None:
        return False

    owns_events = db.scalar(select(func.count()).select_from(Event).where(Event.organizer_id == user.id))
    if owns_events:
        raise ConflictError(
            ErrorCode.USER_OWNS_EVENTS.value, "user organizes events; reassign or delete them first"
        )

    db.delete(user)
    db.commit()
    logger.info("user_deleted", user_id=user_id)
    return True
