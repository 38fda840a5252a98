"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from social_auth import __version__
from social_auth.api.admin import router as admin_router
from social_auth.api.auth import router as auth_router
from social_auth.api.devices import router as devices_router
from social_auth.api.middleware import CorrelationIdMiddleware
from social_auth.api.notifications import router as notifications_router
from social_auth.api.routes import router
from social_auth.config import get_settings
from social_auth.services.device_token_service import DeviceTokenService
from social_auth.services.email_service import EmailService
from social_auth.services.identity_service import IdentityResolver
from social_auth.services.logging_service import configure_logging, get_logger
from social_auth.services.notification_dispatcher import NotificationDispatcher
from social_auth.services.notification_service import NotificationService
from social_auth.services.oauth_providers import OAuthStateSigner
from social_auth.services.push_service import FcmPushProvider, PushService
from social_auth.services.task_runner import BackgroundTaskRunner
from social_auth.services.throttle import LoginEmailThrottle
from social_auth.services.token_service import TokenService
from social_auth.services.user_service import UserService


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    # A missing JWT secret is fatal: refuse to start rather than fail per request
    token_service = TokenService()

    # Initialize database connection pool and run migrations
    try:
        from social_auth.database import init_database, run_migrations

        await init_database()
        await run_migrations()
        logger.info("database_initialized")
    except Exception as e:
        logger.warning(
            "database_initialization_failed",
            error=str(e),
            note="Continuing without database - requests needing it will fail",
        )

    throttle = LoginEmailThrottle(
        window_seconds=settings.mail_throttle_window_seconds,
        max_per_window=settings.mail_throttle_max,
    )
    task_runner = BackgroundTaskRunner()
    push_provider = FcmPushProvider(settings)

    dispatcher = NotificationDispatcher(
        notification_service=NotificationService(),
        email_service=EmailService(throttle, settings=settings),
        push_service=PushService(push_provider, DeviceTokenService(), settings=settings),
        task_runner=task_runner,
    )

    app.state.token_service = token_service
    app.state.state_signer = OAuthStateSigner(token_service.secret)
    app.state.task_runner = task_runner
    app.state.dispatcher = dispatcher
    app.state.identity_resolver = IdentityResolver(
        user_service=UserService(),
        token_service=token_service,
        dispatcher=dispatcher,
    )

    if not settings.firebase_configured:
        logger.warning("push_not_configured", note="Push notifications will be skipped")
    if not settings.google_configured:
        logger.warning("google_oauth_not_configured")

    logger.info(
        "application_started",
        version=__version__,
        log_level=settings.log_level,
    )

    yield

    # Shutdown
    # Drain pending notification dispatches before closing connections
    await task_runner.drain(timeout=5.0)

    try:
        await push_provider.close()
    except Exception as e:
        logger.warning("push_client_close_failed", error=str(e))

    try:
        from social_auth.database import close_database

        await close_database()
    except Exception as e:
        logger.warning("database_close_failed", error=str(e))

    logger.info("application_shutdown")


app = FastAPI(
    title="Social Auth API",
    description="Email and Google authentication with admin notifications",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return validation errors as 400 with the first failing field."""
    correlation_id = getattr(request.state, "correlation_id", None) or str(uuid4())
    logger = structlog.get_logger()

    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = "Request validation failed"

    # Raw errors may echo the submitted password back; log the summary only
    logger.warning(
        "validation_error",
        correlation_id=correlation_id,
        detail=detail,
    )

    return JSONResponse(
        status_code=400,
        content={
            "error": "Validation error",
            "detail": detail,
            "correlation_id": correlation_id,
        },
        headers={"X-Correlation-Id": correlation_id},
    )


# CORS middleware for the browser frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Correlation ID middleware for request tracking and client metadata
app.add_middleware(CorrelationIdMiddleware)

app.include_router(router)
app.include_router(auth_router)
app.include_router(devices_router)
app.include_router(notifications_router)
app.include_router(admin_router)
