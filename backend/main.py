import json
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Depends, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import create_db_and_tables, get_db
from core.errors import PayloadValidationError, ConstraintError, TransientStoreError
from core.migrations import run_migrations
from routers import ingest, projects
import utils.crud as crud


"""
FastAPI application with modular structure.
Separates app creation from runtime configuration.
"""


# Configure logging
def setup_logging():
    """Configure structured logging for the application."""
    log_level = logging.DEBUG if settings.DEBUG else logging.INFO

    # JSON formatter for structured logging
    class JSONFormatter(logging.Formatter):
        def format(self, record):
            log_entry = {
                'timestamp': self.formatTime(record, self.datefmt),
                'level': record.levelname,
                'logger': record.name,
                'message': record.getMessage(),
                'module': record.module,
                'function': record.funcName,
                'line': record.lineno
            }
            if record.exc_info:
                log_entry['exception'] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    # Setup root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove default handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Add our handler
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    return logging.getLogger(__name__)


# Initialize logger
logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Application startup...")
    if settings.FAST_TEST_MODE:
        logger.info("FAST_TEST_MODE enabled: skipping DB create/migrate.")
    else:
        logger.info("Creating database tables if they don't exist...")
        await create_db_and_tables()
        logger.info("Database tables checked/created.")

        # Bring older databases up to the current schema
        await run_migrations()
    logger.info("Application startup complete.")
    yield
    logger.info("Application shutdown...")
    logger.info("Application shutdown complete.")


def register_exception_handlers(app: FastAPI):
    """Translate ingestion failures to HTTP responses."""

    @app.exception_handler(PayloadValidationError)
    async def payload_validation_handler(request: Request, exc: PayloadValidationError):
        logger.warning(f"PayloadValidationError: {exc}", extra={
            'request_path': request.url.path,
            'request_method': request.method
        })
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.to_dict()},
        )

    @app.exception_handler(ConstraintError)
    async def constraint_handler(request: Request, exc: ConstraintError):
        logger.error(f"ConstraintError: {exc}")
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": exc.to_dict()},
        )

    @app.exception_handler(TransientStoreError)
    async def transient_store_handler(request: Request, exc: TransientStoreError):
        logger.error(f"TransientStoreError: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": exc.to_dict()},
            headers={"Retry-After": "5"},
        )

    # Global exception handler for Pydantic ValidationError
    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        logger.error(f"ValidationError: {str(exc)}", extra={
            'error_details': exc.errors(include_url=False),
            'request_path': request.url.path,
            'request_method': request.method
        })
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors(include_url=False, include_context=False, include_input=False)},
        )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    App factory pattern for clean separation of concerns.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    @app.get("/health")
    async def health(db: AsyncSession = Depends(get_db)):
        database_ok = await crud.check_database(db)
        return {
            "status": "healthy" if database_ok else "degraded",
            "service": settings.APP_NAME,
            "database": "ok" if database_ok else "unavailable",
        }

    app.include_router(ingest.router)
    app.include_router(projects.router)

    return app


# Create the app instance
app = create_app()
