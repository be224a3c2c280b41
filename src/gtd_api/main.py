import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import DomainError, ValidationFailed
from .logging_setup import setup_logging
from .models import utcnow
from .repositories import Repository, get_repository
from .routers import auth as auth_router
from .routers import labels as labels_router
from .routers import projects as projects_router
from .routers import tasks as tasks_router
from .schemas import HealthOut
from .settings import Settings, get_settings
from .utils import error_envelope, field_errors

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "auth", "description": "Registration, login and the current user."},
    {
        "name": "tasks",
        "description": "Tasks in the GTD system lists with filtering, the Upcoming view and manual ordering.",
    },
    {"name": "projects", "description": "Projects with task completion statistics."},
    {"name": "labels", "description": "User labels and their task counts."},
]

_HTTP_ERROR_KINDS = {
    401: "Unauthorized",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
    409: "Conflict",
}


def _register_exception_handlers(app: FastAPI) -> None:
    # Global exception handlers for consistent JSON on every error
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """
        Return a consistent JSON structure for request validation errors.

        Response format:
            {
                "error": "ValidationError",
                "message": "Request validation failed",
                "errors": {"fieldName": ["message", ...]}
            }
        """
        return JSONResponse(
            status_code=400,
            content=error_envelope("ValidationError", "Request validation failed", field_errors(exc.errors())),
        )

    @app.exception_handler(DomainError)
    async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
        errors = exc.errors if isinstance(exc, ValidationFailed) else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(exc.kind, exc.message, errors),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        kind = _HTTP_ERROR_KINDS.get(exc.status_code, "HTTPError")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(kind, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_envelope("InternalServerError", "An unexpected error occurred."),
        )


# PUBLIC_INTERFACE
def create_app(repository: Optional[Repository] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        repository: storage to serve from. When omitted the repository is
            chosen by PERSISTENCE_BACKEND on first use.
    """
    settings = get_settings()

    app = FastAPI(
        title="GTD Backend",
        description="Backend API service for a GTD task manager: tasks, projects and labels per user.",
        version="0.1.0",
        openapi_tags=openapi_tags,
    )

    # Configure CORS based on settings (CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    if repository is not None:
        app.dependency_overrides[get_repository] = lambda: repository

    # PUBLIC_INTERFACE
    @app.get("/api/health", response_model=HealthOut, summary="Health Check", tags=["health"])
    def health_check(current: Settings = Depends(get_settings)) -> HealthOut:
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health and the storage backend.
        """
        return HealthOut(status="healthy", timestamp=utcnow(), backend=current.persistence_backend)

    # Include routers
    app.include_router(auth_router.router)
    app.include_router(tasks_router.router)
    app.include_router(projects_router.router)
    app.include_router(labels_router.router)

    logger.info("Application created (backend=%s)", settings.persistence_backend)
    return app


_settings = get_settings()
setup_logging(_settings.log_level, _settings.log_file)

app = create_app()
