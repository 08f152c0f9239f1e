from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from gatherhub.api.v1.schemas.common import SchemaBase, UTCDateTime
from gatherhub.models.registration import TicketType


class RecentRegistrationOut(SchemaBase):
    id: UUID
    event_name: str
    ticket_type: TicketType
    amount: Decimal
    date: UTCDateTime


class UpcomingEventStatOut(SchemaBase):
    id: UUID
    name: str
    start_date: UTCDateTime
    registration_count: int


class TicketDistributionOut(SchemaBase):
    ticket_type: TicketType
    count: int


class MonthlyRevenueOut(SchemaBase):
    month: str
    revenue: Decimal


class OrganizerStatsOut(SchemaBase):
    total_events: int
    published_events: int
    total_registrations: int
    total_revenue: Decimal
    recent_registrations: list[RecentRegistrationOut]
    upcoming_events: list[UpcomingEventStatOut]
    ticket_distribution: list[TicketDistributionOut]
    monthly_revenue: list[MonthlyRevenueOut]


class AdminStatsOut(SchemaBase):
    users_by_role: dict[str, int]
    events_by_status: dict[str, int]
    registrations_by_status: dict[str, int]
    total_revenue: Decimal
    tickets_issued: int
    tickets_checked_in: int
