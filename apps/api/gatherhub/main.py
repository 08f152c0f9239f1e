from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from gatherhub.api.errors import service_error_handler
from gatherhub.api.v1.router import router as v1_router
from gatherhub.core.config import settings
from gatherhub.core.logging import configure_logging
from gatherhub.core.redis import redis_available
from gatherhub.db import engine
from gatherhub.middleware.rate_limit import RateLimitMiddleware
from gatherhub.middleware.request_id import RequestIdMiddleware
from gatherhub.middleware.security_headers import SecurityHeadersMiddleware
from gatherhub.services.exceptions import ServiceError

configure_logging()

app = FastAPI(title="GatherHub API")

# Middleware ordering matters.
# Starlette runs the LAST added middleware FIRST (outermost).
# We want:
# - RequestId + SecurityHeaders to apply even to CORS preflight + rate limit responses
# - CORS to handle preflight properly
# - RateLimit to be closest to the app (innermost)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(ServiceError, service_error_handler)

Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)


@app.get("/")
def root():
    return {"name": "GatherHub API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/health/ready")
def ready():
    checks = {"database": True, "redis": redis_available()}
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        checks["database"] = False

    ok = all(checks.values())
    return JSONResponse(
        status_code=200 if ok else 503,
        content={"status": "ok" if ok else "degraded", "checks": checks},
    )


app.include_router(v1_router, prefix="/v1")
