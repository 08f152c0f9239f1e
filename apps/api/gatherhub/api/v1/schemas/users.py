from __future__ import annotations

from pydantic import Field

from gatherhub.api.v1.schemas.common import SchemaBase, UTCDateTime
from gatherhub.models.user import UserRole


class UserOut(SchemaBase):
    id: str
    email: str
    name: str
    image_url: str | None = None
    role: UserRole
    onboarding_complete: bool
    organizer_name: str | None = None
    phone_number: str | None = None
    organization_name: str | None = None
    became_organizer_at: UTCDateTime | None = None
    created_at: UTCDateTime


class BecomeOrganizerIn(SchemaBase):
    organizer_name: str = Field(min_length=2, max_length=200)
    phone_number: str = Field(min_length=8, max_length=40)
    organization_name: str | None = Field(default=None, max_length=200)


class SetRoleIn(SchemaBase):
    role: UserRole
    onboarding_complete: bool = True


class AdminUserUpdate(SchemaBase):
    role: UserRole


class UserSyncOut(SchemaBase):
    synced: int
    failed: int
