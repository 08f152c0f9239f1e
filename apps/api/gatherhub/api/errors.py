import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from gatherhub.services.exceptions import (
    BadRequestError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    ValidationError,
)

logger = structlog.get_logger()


def status_for_service_error(err: ServiceError) -> int:
    if isinstance(err, NotFoundError):
        return 404
    if isinstance(err, PermissionDeniedError):
        return 403
    if isinstance(err, ConflictError):
        return 409
    if isinstance(err, ValidationError):
        return 422
    if isinstance(err, BadRequestError):
        return 400
    if isinstance(err, ExternalServiceError):
        return 502
    return 500


async def service_error_handler(request: Request, err: ServiceError) -> JSONResponse:
    status = status_for_service_error(err)
    log = logger.warning if status < 500 else logger.error
    log(
        "service_error",
        code=err.code,
        message=err.message,
        status=status,
        method=request.method,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status,
        content={"detail": {"code": err.code, "message": err.message}},
    )
