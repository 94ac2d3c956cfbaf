"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payroll_ledger.api.routes import (
    components_router,
    health_router,
    ledgers_router,
    periods_router,
)
from payroll_ledger.config import configure_logging, get_settings
from payroll_ledger.database import create_schema, dispose_db, init_db
from payroll_ledger.directory import EmployeeDirectory, InMemoryEmployeeDirectory
from payroll_ledger.exceptions import (
    CalculationError,
    DuplicateLedgerError,
    InvalidStateTransition,
    NotFoundError,
    PayrollError,
    PeriodNotReadyError,
    ValidationError,
)
from payroll_ledger.services.payroll_service import PayrollService

logger = logging.getLogger(__name__)

# Domain error -> (HTTP status, error code)
ERROR_STATUS: list[tuple[type[PayrollError], int, str]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    (InvalidStateTransition, status.HTTP_409_CONFLICT, "INVALID_STATE_TRANSITION"),
    (DuplicateLedgerError, status.HTTP_409_CONFLICT, "DUPLICATE_LEDGER"),
    (PeriodNotReadyError, status.HTTP_409_CONFLICT, "PERIOD_NOT_READY"),
    (CalculationError, 422, "CALCULATION_ERROR"),
]


def status_for(exc: PayrollError) -> tuple[int, str]:
    for error_type, http_status, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return http_status, code
    return status.HTTP_400_BAD_REQUEST, "PAYROLL_ERROR"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(settings)
    owns_db = not hasattr(app.state, "payroll")
    if owns_db:
        engine, session_factory = init_db()
        await create_schema(engine)
        app.state.payroll = PayrollService(
            session_factory, app.state.directory, settings
        )
        logger.info("Payroll ledger API started (engine %s)", settings.engine_version)
    yield
    if owns_db:
        await dispose_db()


def create_app(
    service: PayrollService | None = None,
    directory: EmployeeDirectory | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``service`` binds an existing facade (tests, embedding); otherwise the
    lifespan handler builds one from settings.
    """
    app = FastAPI(
        title="Payroll Ledger API",
        description="Payroll periods, salary components and employee ledgers",
        version=get_settings().engine_version,
        lifespan=lifespan,
    )
    app.state.directory = directory or InMemoryEmployeeDirectory()
    if service is not None:
        app.state.payroll = service

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PayrollError)
    async def payroll_exception_handler(
        request: Request, exc: PayrollError
    ) -> JSONResponse:
        """Map domain errors to HTTP statuses."""
        http_status, code = status_for(exc)
        return JSONResponse(
            status_code=http_status,
            content={"detail": str(exc), "code": code},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(periods_router, prefix="/api/v1")
    app.include_router(components_router, prefix="/api/v1")
    app.include_router(ledgers_router, prefix="/api/v1")

    return app
