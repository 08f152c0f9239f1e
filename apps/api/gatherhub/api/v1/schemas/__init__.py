from gatherhub.api.v1.schemas.events import (
    EventCreate,
    EventDetailOut,
    EventListOut,
    EventOut,
    EventStatusUpdate,
    EventSummaryOut,
    EventUpdate,
    FeaturedEventOut,
)
from gatherhub.api.v1.schemas.notifications import MarkedReadOut, NotificationListOut, NotificationOut
from gatherhub.api.v1.schemas.registrations import (
    AttendeeOut,
    CheckoutCreate,
    CheckoutOut,
    RegistrationCreate,
    RegistrationDetailOut,
    RegistrationOut,
    RegistrationStatusUpdate,
    VerifyPaymentIn,
    VerifyPaymentOut,
)
from gatherhub.api.v1.schemas.stats import AdminStatsOut, OrganizerStatsOut
from gatherhub.api.v1.schemas.tickets import CheckInIn, CheckInOut, TicketOut
from gatherhub.api.v1.schemas.users import AdminUserUpdate, BecomeOrganizerIn, SetRoleIn, UserOut

__all__ = [
    "EventCreate",
    "EventUpdate",
    "EventOut",
    "EventDetailOut",
    "EventListOut",
    "EventStatusUpdate",
    "EventSummaryOut",
    "FeaturedEventOut",
    "NotificationOut",
    "NotificationListOut",
    "MarkedReadOut",
    "RegistrationCreate",
    "CheckoutCreate",
    "CheckoutOut",
    "RegistrationOut",
    "RegistrationDetailOut",
    "RegistrationStatusUpdate",
    "AttendeeOut",
    "VerifyPaymentIn",
    "VerifyPaymentOut",
    "OrganizerStatsOut",
    "AdminStatsOut",
    "TicketOut",
    "CheckInIn",
    "CheckInOut",
    "UserOut",
    "BecomeOrganizerIn",
    "SetRoleIn",
    "AdminUserUpdate",
]
