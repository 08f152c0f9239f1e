from enum import Enum


class ErrorCode(str, Enum):
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    EVENT_NOT_PUBLISHED = "EVENT_NOT_PUBLISHED"
    EVENT_CANCELLED = "EVENT_CANCELLED"
    EVENT_ALREADY_STARTED = "EVENT_ALREADY_STARTED"
    EVENT_FULL = "EVENT_FULL"
    EVENT_HAS_REGISTRATIONS = "EVENT_HAS_REGISTRATIONS"
    EVENT_INVALID = "EVENT_INVALID"
    CAPACITY_BELOW_HELD = "CAPACITY_BELOW_HELD"
    NOT_EVENT_ORGANIZER = "NOT_EVENT_ORGANIZER"
    ORGANIZER_ROLE_REQUIRED = "ORGANIZER_ROLE_REQUIRED"

    REGISTRATION_NOT_FOUND = "REGISTRATION_NOT_FOUND"
    REGISTRATION_EXISTS = "REGISTRATION_EXISTS"
    REGISTRATION_NOT_CANCELLABLE = "REGISTRATION_NOT_CANCELLABLE"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    REGISTRATION_NOT_ACTIVE = "REGISTRATION_NOT_ACTIVE"

    SESSION_ID_REQUIRED = "SESSION_ID_REQUIRED"
    PAYMENT_NOT_COMPLETED = "PAYMENT_NOT_COMPLETED"
    PAYMENT_METADATA_MISSING = "PAYMENT_METADATA_MISSING"
    PAYMENT_PROVIDER_ERROR = "PAYMENT_PROVIDER_ERROR"
    REFUND_FAILED = "REFUND_FAILED"

    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    TICKET_ALREADY_USED = "TICKET_ALREADY_USED"
    TICKET_INVALID = "TICKET_INVALID"
    TICKET_NOT_ACTIVE = "TICKET_NOT_ACTIVE"

    USER_NOT_FOUND = "USER_NOT_FOUND"
    ALREADY_ORGANIZER = "ALREADY_ORGANIZER"
    INVALID_ROLE = "INVALID_ROLE"
    CANNOT_CHANGE_OWN_ROLE = "CANNOT_CHANGE_OWN_ROLE"
    USER_OWNS_EVENTS = "USER_OWNS_EVENTS"
    ORGANIZER_PROFILE_INVALID = "ORGANIZER_PROFILE_INVALID"
    USER_SYNC_CONFLICT = "USER_SYNC_CONFLICT"
    IDENTITY_PROVIDER_ERROR = "IDENTITY_PROVIDER_ERROR"

    NOTIFICATION_NOT_FOUND = "NOTIFICATION_NOT_FOUND"
    WEBHOOK_SIGNATURE_INVALID = "WEBHOOK_SIGNATURE_INVALID"
    WEBHOOK_NOT_CONFIGURED = "WEBHOOK_NOT_CONFIGURED"
    WEBHOOK_PAYLOAD_INVALID = "WEBHOOK_PAYLOAD_INVALID"
    EMAIL_DELIVERY_FAILED = "EMAIL_DELIVERY_FAILED"
