from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict

from gatherhub.core.time import as_utc


def _ensure_tzaware(value: datetime | None) -> datetime | None:
    if value is None:
        return value
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError("datetime must be timezone-aware")
    return value.astimezone(timezone.utc)


# Inputs must carry an offset; they are normalized to UTC.
AwareDateTime = Annotated[datetime, AfterValidator(_ensure_tzaware)]
# Outputs read back from the database are always rendered as UTC.
UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]


class SchemaBase(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")


class PageOut(SchemaBase):
    page: int
    page_size: int
    total: int
