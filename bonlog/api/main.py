"""BON-LOG API — moderation and abuse-protection backend."""
from __future__ import annotations

import logging

from bonlog.logging_config import setup_logging
setup_logging()
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from bonlog.db.engine import engine, get_session
from bonlog.db.tables import Base
from bonlog.errors import BonLogError
from bonlog.services.scheduler import start_scheduler, stop_scheduler
from config.settings import settings

# ── Sentry Error Tracking ────────────────────────
if settings.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.WARNING, event_level=logging.ERROR),
        ],
        send_default_pii=False,
        before_send=lambda event, hint: (
            {**event, "request": {**event.get("request", {}), "cookies": None}}
            if "request" in event else event
        ),
    )

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate config, create tables, optionally start the publish scheduler."""
    from bonlog.startup_checks import validate_settings
    validate_settings()

    # Register every table with Base.metadata
    import bonlog.db.user_tables  # noqa: F401
    import bonlog.db.content_tables  # noqa: F401
    import bonlog.db.report_tables  # noqa: F401
    import bonlog.db.scheduled_post_tables  # noqa: F401
    import bonlog.db.login_attempt_tables  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")

    if settings.SCHEDULED_PUBLISH_INTERVAL_MINUTES > 0:
        start_scheduler(interval_minutes=settings.SCHEDULED_PUBLISH_INTERVAL_MINUTES)

    yield

    logger.info("Shutting down, draining connections...")
    stop_scheduler()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="BON-LOG API",
    version="0.1.0",
    description="Reporting, moderation, login protection and scheduled publishing for BON-LOG",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request ID tracing
from bonlog.middleware.request_id import RequestIDMiddleware
app.add_middleware(RequestIDMiddleware)

# Rate limiting
from bonlog.middleware.rate_limit import RateLimitMiddleware, get_client_ip
app.add_middleware(RateLimitMiddleware)


# ---- Auth routes ----
from bonlog.auth import (
    SignUpRequest, LoginRequest, LoginCheckRequest, RefreshRequest,
    create_tokens, hash_password, verify_password, verify_token, user_payload,
)
from bonlog.db.user_tables import UserRow
from bonlog.security_log import log_login_success, log_register_success, log_suspicious_activity
from bonlog.services.blacklist import is_email_blacklisted
from bonlog.services.login_tracker import (
    check_login_attempt, login_key, record_failed_login, reset_login_attempts,
)


def _locked_response(check) -> JSONResponse:
    return JSONResponse(status_code=429, content={
        "error": "too_many_attempts",
        "message": check.message,
        "locked_until": check.locked_until.isoformat() if check.locked_until else None,
    })


@app.post("/api/v1/auth/signup")
async def signup(req: SignUpRequest, request: Request, session: AsyncSession = Depends(get_session)):
    """Create a new user account."""
    email = req.email.strip().lower()
    ip = get_client_ip(request)
    if await is_email_blacklisted(session, email):
        log_suspicious_activity("Signup with blacklisted email", ip=ip)
        raise HTTPException(403, "This email address cannot be used")
    existing = await session.execute(select(UserRow).where(UserRow.email == email))
    if existing.scalar_one_or_none():
        raise HTTPException(409, "Email already registered")
    user = UserRow(
        email=email,
        password_hash=hash_password(req.password),
        display_name=req.display_name,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    log_register_success(user.id, ip=ip)
    return {"user": user_payload(user), **create_tokens(user.id)}


@app.post("/api/v1/auth/login")
async def login(req: LoginRequest, request: Request, session: AsyncSession = Depends(get_session)):
    """Log in with email + password. Repeated failures lock the (email, IP) pair out."""
    ip = get_client_ip(request)
    key = login_key(req.email, ip)

    check = await check_login_attempt(key)
    if not check.allowed:
        return _locked_response(check)

    result = await session.execute(select(UserRow).where(UserRow.email == key.identity))
    user = result.scalar_one_or_none()
    if not user or not verify_password(req.password, user.password_hash):
        failure = await record_failed_login(key)
        if not failure.allowed:
            return _locked_response(failure)
        return JSONResponse(status_code=401, content={
            "error": "invalid_credentials",
            "message": "Invalid email or password",
            "remaining_attempts": failure.remaining_attempts,
        })

    if user.is_suspended:
        raise HTTPException(403, "Account suspended")
    if await is_email_blacklisted(session, user.email):
        log_suspicious_activity("Login with blacklisted email", ip=ip, user_id=user.id)
        raise HTTPException(403, "This email address cannot be used")

    await reset_login_attempts(key)
    log_login_success(user.id, ip=ip, user_agent=request.headers.get("user-agent"))
    return {"user": user_payload(user), **create_tokens(user.id)}


@app.post("/api/v1/auth/login/check")
async def login_check(req: LoginCheckRequest, request: Request):
    """Whether a login attempt for this email from this IP is currently allowed."""
    check = await check_login_attempt(login_key(req.email, get_client_ip(request)))
    return check.to_dict()


@app.post("/api/v1/auth/refresh")
async def refresh_token(req: RefreshRequest, session: AsyncSession = Depends(get_session)):
    """Exchange a valid refresh token for new access + refresh tokens."""
    payload = verify_token(req.refresh_token, token_type="refresh")
    if not payload:
        raise HTTPException(401, "Invalid or expired refresh token")
    user = await session.get(UserRow, payload.get("sub"))
    if not user:
        raise HTTPException(401, "User not found")
    return {"user": user_payload(user), **create_tokens(user.id)}


# ---- Feature routers ----
from bonlog.api.password_reset import router as password_reset_router
from bonlog.api.reports import router as reports_router
from bonlog.api.admin import router as admin_router
from bonlog.api.scheduled_posts import router as scheduled_posts_router

app.include_router(password_reset_router)
app.include_router(reports_router)
app.include_router(admin_router)
app.include_router(scheduled_posts_router)


@app.get("/health")
async def health(session: AsyncSession = Depends(get_session)):
    """Deep health check — validates DB connectivity."""
    try:
        await session.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception:
        logger.warning("Health check: database unreachable", exc_info=True)
        db_status = "error"
    status = "ok" if db_status == "connected" else "degraded"
    return {"status": status, "db": db_status, "version": "0.1.0"}


# ---- Error handlers ----

@app.exception_handler(BonLogError)
async def domain_error_handler(request: Request, exc: BonLogError):
    """Map domain errors onto HTTP statuses; business-rule failures stay 200 + {error}."""
    if exc.status_code == 200:
        return JSONResponse(status_code=200, content={"error": exc.message})
    return JSONResponse(status_code=exc.status_code, content={
        "error": exc.code,
        "message": exc.message,
    })


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean, structured validation errors instead of raw Pydantic output."""
    errors = []
    for err in exc.errors():
        field = ".".join(str(loc) for loc in err["loc"]) if err.get("loc") else "unknown"
        errors.append({"field": field, "message": err["msg"]})
    return JSONResponse(status_code=422, content={
        "error": "validation_error",
        "message": "Invalid request data",
        "details": errors,
    })


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    """Consistent error envelope for all HTTP errors."""
    return JSONResponse(status_code=exc.status_code, content={
        "error": exc.detail if isinstance(exc.detail, str) else "error",
        "message": exc.detail,
    }, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Catch-all for unhandled exceptions — never leak stack traces."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={
        "error": "internal_error",
        "message": "Something went wrong. Please try again.",
    })
