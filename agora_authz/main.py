"""
Agora Authorization Service

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agora_authz.api.middleware.request_id import RequestIdMiddleware
from agora_authz.api.v1 import router as api_v1_router
from agora_authz.config import get_settings
from agora_authz.database import close_db, init_db
from agora_authz.kernel.errors import AuthorizationError, RateLimited
from agora_authz.kernel.models.base import as_utc, utcnow
from agora_authz.logging_config import configure_logging, get_logger
from agora_authz.schemas.common import ErrorResponse, HealthResponse

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Runs startup and shutdown tasks.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down...")
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    Authorization policy engine for a multi-tenant deliberation platform.

    ## Features

    - **Access codes**: issue, validate and consume bearer codes with brute-force protection
    - **Identity**: access-code, session-token and federated-token resolution
    - **Policy**: one Allow/Deny per principal, action and resource
    - **Audit**: append-only security event log

    ## Invariants

    1. Exactly one principal per request
    2. Private or inactive deliberations are visible to members and admins only
    3. Access codes are never consumed past max_uses
    4. At least one admin exists at all times
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# add_middleware stacks innermost-first; CORS added last is outermost
_cors_origins = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
]

app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _request_headers(request: Request) -> dict:
    req_id = getattr(request.state, "request_id", None)
    return {"X-Request-ID": req_id} if req_id else {}


@app.exception_handler(AuthorizationError)
async def authorization_exception_handler(request: Request, exc: AuthorizationError):
    """Map kernel errors to their HTTP status with a machine-readable reason."""
    headers = _request_headers(request)
    body = ErrorResponse(detail=exc.message, reason=exc.reason)

    if isinstance(exc, RateLimited):
        body.blocked_until = exc.blocked_until
        retry_after = int((as_utc(exc.blocked_until) - utcnow()).total_seconds())
        headers["Retry-After"] = str(max(retry_after, 0))

    if exc.status_code >= 500:
        logger.error("Authorization kernel error: %s", exc.reason, extra={"path": request.url.path})
        if not settings.debug:
            body.detail = "Internal server error"

    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers={**(exc.headers or {}), **_request_headers(request)},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
):
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation error", "errors": errors},
        headers=_request_headers(request),
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    req_id = getattr(request.state, "request_id", None)
    if settings.debug:
        content = {"detail": str(exc), "type": type(exc).__name__, "request_id": req_id}
    else:
        content = {"detail": "Internal server error", "request_id": req_id}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=_request_headers(request),
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check application health."""
    return HealthResponse(status="ok", version=settings.version)


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs" if settings.debug else "disabled",
        "api": {
            "v1": settings.api_v1_prefix,
        },
    }


app.include_router(
    api_v1_router,
    prefix=settings.api_v1_prefix,
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "agora_authz.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
