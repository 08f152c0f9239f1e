from gatherhub.services.exceptions import (
    BadRequestError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    ValidationError,
)

__all__ = [
    "ServiceError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "ValidationError",
    "BadRequestError",
    "ExternalServiceError",
]
