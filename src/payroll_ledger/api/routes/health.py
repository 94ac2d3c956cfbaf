"""Liveness, readiness and payroll store health."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from payroll_ledger.api.dependencies import DbSession, Payroll
from payroll_ledger.api.schemas import HealthResponse
from payroll_ledger.models import PayrollPeriod
from payroll_ledger.services.state_machine import PeriodStateMachine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

ACTIVE_PERIOD_STATUSES = [s.value for s in PeriodStateMachine.CALCULATION_ALLOWED]


@router.get("/health", response_model=HealthResponse)
async def health_check(payroll: Payroll, db: DbSession) -> HealthResponse:
    """Report store reachability and how many periods still accept calculation."""
    active_periods = None
    try:
        active_periods = await db.scalar(
            select(func.count())
            .select_from(PayrollPeriod)
            .where(PayrollPeriod.status.in_(ACTIVE_PERIOD_STATUSES))
        )
    except SQLAlchemyError:
        logger.warning("Payroll store unreachable during health check", exc_info=True)

    reachable = active_periods is not None
    return HealthResponse(
        status="healthy" if reachable else "degraded",
        timestamp=datetime.now(timezone.utc),
        database="healthy" if reachable else "unhealthy",
        engine_version=payroll.settings.engine_version,
        active_periods=active_periods,
    )


@router.get("/ready")
async def readiness_check(db: DbSession, response: Response) -> dict[str, str]:
    """Ready once the payroll tables answer a query."""
    try:
        await db.scalar(select(func.count()).select_from(PayrollPeriod))
    except SQLAlchemyError:
        logger.warning("Payroll store not ready", exc_info=True)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
