"""EduMaster LMS API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.ai.router import router as ai_router
from src.ai.service import TextGenerationService
from src.auth.router import router as auth_router
from src.auth.service import AuthService
from src.config import get_settings
from src.core.context import get_request_id
from src.core.database import (
    CassandraDatabase,
    init_async_cassandra,
    shutdown_async_cassandra,
)
from src.core.exceptions import AppError
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.courses.router import router as courses_router
from src.courses.service import CourseService
from src.health import router as health_router
from src.progress.router import enrollments_router
from src.progress.router import router as progress_router
from src.progress.service import EnrollmentService, ProgressService


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


# Application state for dependency injection
class AppState:
    """Application state container."""

    database: CassandraDatabase | None = None
    auth_service: AuthService | None = None
    course_service: CourseService | None = None
    progress_service: ProgressService | None = None
    enrollment_service: EnrollmentService | None = None


app_state = AppState()


def get_auth_service() -> AuthService:
    """Get AuthService instance from app state."""
    if app_state.auth_service is None:
        msg = "AuthService not initialized"
        raise RuntimeError(msg)
    return app_state.auth_service


def get_course_service() -> CourseService:
    """Get CourseService instance from app state."""
    if app_state.course_service is None:
        msg = "CourseService not initialized"
        raise RuntimeError(msg)
    return app_state.course_service


def init_services(app: FastAPI, session: Any, keyspace: str) -> None:
    """Build the domain services on an open session and wire them together.

    Course deletion cascades into progress records, and the profile endpoint
    reads enrolled course ids from the progress indexes.
    """
    auth_service = AuthService(session=session, keyspace=keyspace)
    course_service = CourseService(session=session, keyspace=keyspace)
    progress_service = ProgressService(
        session=session,
        keyspace=keyspace,
        course_service=course_service,
        auth_service=auth_service,
    )
    enrollment_service = EnrollmentService(
        progress_service=progress_service,
        course_service=course_service,
    )

    course_service.register_delete_cascade(progress_service.delete_course_progress)
    auth_service.set_enrolled_courses_reader(progress_service.list_enrolled_course_ids)

    app_state.auth_service = auth_service
    app_state.course_service = course_service
    app_state.progress_service = progress_service
    app_state.enrollment_service = enrollment_service

    # Also set on app.state for dependency injection via request.app.state
    app.state.progress_service = progress_service
    app.state.enrollment_service = enrollment_service
    logger.info("services_initialized", keyspace=keyspace)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # AI generation is independent of the database
    app.state.text_generation_service = TextGenerationService(settings)
    logger.info("text_generation_service_initialized", configured=settings.ai_configured)

    try:
        app_state.database = await init_async_cassandra(settings)
        app.state.database = app_state.database
        init_services(app, app_state.database.session, settings.cassandra_keyspace)
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await shutdown_async_cassandra(app_state.database)
    app_state.database = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # SECURITY: Always set debug=False so Starlette never renders stack traces.
    # The exception handlers below log details and return safe messages.
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="EduMaster LMS - course catalog, enrollment and progress API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> ORJSONResponse:
        """Map domain errors to the JSON error envelope."""
        logger.info(
            "app_error",
            error_type=type(exc).__name__,
            code=exc.code,
            status_code=exc.status_code,
            path=request.url.path,
            method=request.method,
        )
        headers = None
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "code": exc.code,
                "message": exc.message,
                "status_code": exc.status_code,
                "request_id": _get_request_id_safe(request),
            },
            headers=headers,
        )

    # Global exception handlers (security: never expose stack traces)
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
            content={
                "error": True,
                "code": "http_error",
                "message": str(exc.detail)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                else "Internal server error",
                "status_code": exc.status_code,
                "request_id": _get_request_id_safe(request),
            },
            headers=getattr(exc, "headers", None),
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
                "code": "validation_error",
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

        SECURITY: Never expose stack traces or internal error details to users.
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
                "code": "internal_error",
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": _get_request_id_safe(request),
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(enrollments_router)
    app.include_router(courses_router)
    app.include_router(progress_router)
    app.include_router(ai_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "EduMaster LMS API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


# Configure router dependencies before creating app
from src.auth.router import set_auth_service_getter  # noqa: E402
from src.courses.dependencies import set_course_service_getter  # noqa: E402


set_auth_service_getter(get_auth_service)
set_course_service_getter(get_course_service)


app = create_app()


def run() -> None:
    """Serve the app with uvicorn using the API server settings."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        reload=settings.api_reload and settings.is_development,
    )
