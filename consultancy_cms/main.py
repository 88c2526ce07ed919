"""Consultancy CMS API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from consultancy_cms.auth.adapter import IdentityAdapter
from consultancy_cms.auth.router import router as auth_router
from consultancy_cms.auth.session import SessionService
from consultancy_cms.auth.store import IdentityStore, InMemoryIdentityStore
from consultancy_cms.comments.router import admin_router as comments_admin_router
from consultancy_cms.comments.router import router as comments_router
from consultancy_cms.comments.service import ModerationService
from consultancy_cms.comments.store import (
    CommentStore,
    InMemoryCommentStore,
    InMemoryPostDirectory,
    PostDirectory,
)
from consultancy_cms.config import Settings, get_settings
from consultancy_cms.core.context import get_request_id
from consultancy_cms.core.exceptions import STATUS_MAP, AppError
from consultancy_cms.core.logging import configure_structlog, get_logger
from consultancy_cms.core.middleware import RequestContextMiddleware
from consultancy_cms.core.redis import init_redis, shutdown_redis
from consultancy_cms.email import GmailTransport, LoggingTransport, MailTransport
from consultancy_cms.health.router import router as health_router
from consultancy_cms.notifications.service import NotificationDispatcher
from consultancy_cms.users.router import router as users_admin_router
from consultancy_cms.users.service import UserAdminService


if TYPE_CHECKING:
    from redis.asyncio import Redis


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


@dataclass
class AppServices:
    """Everything the routers reach through ``request.app.state``."""

    identity_store: IdentityStore
    comment_store: CommentStore
    post_directory: PostDirectory
    dispatcher: NotificationDispatcher
    session_service: SessionService
    moderation_service: ModerationService
    user_admin_service: UserAdminService


def build_services(
    settings: Settings,
    identity_store: IdentityStore,
    comment_store: CommentStore,
    post_directory: PostDirectory,
    transport: MailTransport,
    redis: "Redis | None" = None,
) -> AppServices:
    """Wire stores, transport and services together."""
    dispatcher = NotificationDispatcher(
        transport,
        site_url=settings.site_url,
        max_retries=settings.email_max_retries,
        retry_backoff_seconds=settings.email_retry_backoff_seconds,
    )
    session_service = SessionService(
        IdentityAdapter(identity_store),
        admin_emails=settings.admin_emails,
        session_max_age=timedelta(days=settings.auth_session_max_age_days),
    )
    return AppServices(
        identity_store=identity_store,
        comment_store=comment_store,
        post_directory=post_directory,
        dispatcher=dispatcher,
        session_service=session_service,
        moderation_service=ModerationService(
            comment_store,
            post_directory,
            identity_store,
            settings,
            notifier=dispatcher,
            redis=redis,
        ),
        user_admin_service=UserAdminService(
            identity_store, admin_emails=settings.admin_emails
        ),
    )


def build_transport(settings: Settings) -> MailTransport:
    if settings.email_configured:
        logger.info("email_transport_gmail", sender=settings.email_sender_address)
        return GmailTransport(
            credentials_path=settings.email_credentials_path,
            sender_address=settings.email_sender_address,
            sender_name=settings.email_sender_name,
        )
    logger.info("email_transport_logging", message="Emails are logged, not sent")
    return LoggingTransport()


def install_services(app: FastAPI, services: AppServices) -> None:
    app.state.services = services
    app.state.session_service = services.session_service
    app.state.moderation_service = services.moderation_service
    app.state.user_admin_service = services.user_admin_service


async def _build_storage(
    settings: Settings,
) -> tuple[IdentityStore, CommentStore, PostDirectory]:
    if settings.storage_backend == "memory":
        logger.info("storage_backend_memory")
        return InMemoryIdentityStore(), InMemoryCommentStore(), InMemoryPostDirectory()

    from consultancy_cms.auth.cassandra_store import CassandraIdentityStore
    from consultancy_cms.comments.cassandra_store import (
        CassandraCommentStore,
        CassandraPostDirectory,
    )
    from consultancy_cms.core.database import init_async_cassandra

    session = await init_async_cassandra(settings)
    keyspace = settings.cassandra_keyspace
    logger.info("cassandra_initialized", keyspace=keyspace)
    return (
        CassandraIdentityStore(session, keyspace),
        CassandraCommentStore(session, keyspace),
        CassandraPostDirectory(session, keyspace),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        storage_backend=settings.storage_backend,
    )

    if getattr(app.state, "services", None) is None:
        # Initialize Redis (non-critical - app works without it)
        redis_client = None
        if settings.redis_enabled:
            try:
                redis_client = await init_redis(settings)
                logger.info("redis_initialized")
            except Exception as e:
                logger.warning(
                    "redis_init_skipped",
                    error=str(e),
                    message="Running without Redis - comment rate limits disabled",
                )

        identity_store, comment_store, post_directory = await _build_storage(settings)
        install_services(
            app,
            build_services(
                settings,
                identity_store,
                comment_store,
                post_directory,
                build_transport(settings),
                redis=redis_client,
            ),
        )
        logger.info("services_initialized")

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await app.state.services.dispatcher.drain()
    await shutdown_redis()
    if settings.storage_backend == "cassandra":
        from consultancy_cms.core.database import shutdown_async_cassandra

        await shutdown_async_cassandra()


def create_app(
    settings: Settings | None = None, services: AppServices | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``services`` skips the startup wiring, which tests use to inject
    in-memory stores and a recording transport.
    """
    settings = settings or get_settings()

    # Never let Starlette render stack traces; handlers below log details
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Consultancy CMS - comments, identities and user administration",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )
    app.state.settings = settings
    app.state.services = None
    if services is not None:
        install_services(app, services)

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    def _error_body(
        request: Request, status_code: int, detail: Any
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "error": True,
            "message": str(detail),
            "status_code": status_code,
            "request_id": _get_request_id_safe(request),
        }
        # Field errors carry the offending field name
        if isinstance(detail, dict):
            body["message"] = detail.get("message", "Invalid value")
            body["field"] = detail.get("field")
        if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            body["message"] = "Internal server error"
        return body

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.status_code, exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> ORJSONResponse:
        """Domain errors that escaped a router."""
        status_code = STATUS_MAP.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        logger.warning(
            "app_error",
            code=exc.code,
            detail=exc.message,
            path=request.url.path,
            method=request.method,
        )
        detail: Any = exc.message
        if hasattr(exc, "field"):
            detail = {"field": exc.field, "message": exc.message}
        return ORJSONResponse(
            status_code=status_code,
            content=_error_body(request, status_code, detail),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": 422,
                "request_id": _get_request_id_safe(request),
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        Details are logged, never returned.
        """
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": _get_request_id_safe(request),
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(comments_router)
    app.include_router(comments_admin_router)
    app.include_router(users_admin_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Consultancy CMS API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
