"""FastAPI main application module."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.inspector_dispatch.domain.exceptions import (
    DomainRejection,
    InspectorNotFound,
    RetrievalFailure,
    ValidationRejection
)
from src.inspector_dispatch.infrastructure.logging import get_logger, setup_logging_from_env
from src.inspector_dispatch.infrastructure.services import initialize_services, shutdown_services
from src.inspector_dispatch.presentation.api.config import get_settings
from src.inspector_dispatch.presentation.api.middleware import RequestResponseLoggingMiddleware
from src.inspector_dispatch.presentation.api.routes import health, inspectors


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    setup_logging_from_env()
    logger.info("Starting Inspector Dispatch API")
    await initialize_services()

    yield

    # Shutdown
    logger.info("Shutting down Inspector Dispatch API")
    await shutdown_services()


def add_exception_handlers(app: FastAPI) -> None:
    """Add custom exception handlers to the FastAPI application."""

    @app.exception_handler(ValidationRejection)
    async def validation_rejection_handler(request: Request, exc: ValidationRejection):
        """Handle request validation failures raised by the services."""
        logger.warning(
            f"Validation error on {request.url.path}: {str(exc)}",
            extra={"errors": exc.errors}
        )
        return JSONResponse(
            status_code=400,
            content={
                "detail": str(exc),
                "type": "validation_error",
                "errors": exc.errors
            }
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        """Handle malformed request bodies and query parameters."""
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        ]
        logger.warning(f"Malformed request on {request.url.path}", extra={"errors": errors})
        return JSONResponse(
            status_code=400,
            content={
                "detail": "; ".join(errors),
                "type": "validation_error",
                "errors": errors
            }
        )

    @app.exception_handler(InspectorNotFound)
    async def not_found_handler(request: Request, exc: InspectorNotFound):
        """Handle lookups of unknown inspectors."""
        return JSONResponse(
            status_code=404,
            content={
                "detail": exc.message,
                "type": "not_found",
                "reason": exc.reason.value
            }
        )

    @app.exception_handler(DomainRejection)
    async def domain_rejection_handler(request: Request, exc: DomainRejection):
        """Handle business rule rejections."""
        logger.warning(
            f"Domain rejection on {request.url.path}: {exc.message}",
            extra={"reason": exc.reason.value}
        )
        return JSONResponse(
            status_code=409,
            content={
                "detail": exc.message,
                "type": "domain_rejection",
                "reason": exc.reason.value
            }
        )

    @app.exception_handler(RetrievalFailure)
    async def retrieval_failure_handler(request: Request, exc: RetrievalFailure):
        """Handle storage failures and timeouts during search."""
        logger.error(f"Retrieval failure on {request.url.path}: {str(exc)}")
        return JSONResponse(
            status_code=503,
            content={
                "detail": "Inspector search is temporarily unavailable",
                "type": "retrieval_failure"
            }
        )


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Inspector Dispatch Engine",
        description="API for geographic inspector search and audited mobilization",
        version="0.1.0",
        debug=settings.debug,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # Add custom exception handlers
    add_exception_handlers(app)

    app.add_middleware(RequestResponseLoggingMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=settings.allowed_methods,
        allow_headers=settings.allowed_headers,
    )

    # Include routers
    app.include_router(health.router, tags=["health"])
    app.include_router(
        inspectors.router,
        prefix=f"{settings.api_prefix}/inspectors",
        tags=["inspectors"]
    )

    return app


# Create app instance
app = create_app()
