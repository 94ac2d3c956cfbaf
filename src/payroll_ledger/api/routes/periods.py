"""Payroll period API endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query, Response, status

from payroll_ledger.api.dependencies import ActorId, Payroll
from payroll_ledger.api.schemas import (
    BatchCalculationResponse,
    BatchFailure,
    BatchLedger,
    ErrorResponse,
    LedgerListResponse,
    LedgerResponse,
    PeriodCreate,
    PeriodResponse,
    PeriodSummaryResponse,
    PeriodUpdate,
)

router = APIRouter(prefix="/periods", tags=["periods"])


@router.post(
    "",
    response_model=PeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_period(payroll: Payroll, payload: PeriodCreate) -> PeriodResponse:
    """Create a new OPEN payroll period."""
    period = await payroll.create_period(
        payload.period_name,
        payload.start_date,
        payload.end_date,
        payload.period_type,
        payload.pay_date,
        payload.description,
    )
    return PeriodResponse.model_validate(period)


@router.get("", response_model=list[PeriodResponse])
async def list_periods(
    payroll: Payroll,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[PeriodResponse]:
    """List periods, newest first."""
    periods = await payroll.list_periods(status_filter)
    return [PeriodResponse.model_validate(p) for p in periods]


@router.get(
    "/current",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_current_period(
    payroll: Payroll,
    on_date: Annotated[date | None, Query()] = None,
) -> PeriodResponse:
    """Period whose date range contains today (or the given date)."""
    period = await payroll.get_current_period(on_date)
    if period is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No current payroll period",
        )
    return PeriodResponse.model_validate(period)


@router.get(
    "/summaries",
    response_model=list[PeriodSummaryResponse],
    responses={400: {"model": ErrorResponse}},
)
async def summarize_periods_between(
    payroll: Payroll,
    start_date: Annotated[date, Query()],
    end_date: Annotated[date, Query()],
) -> list[PeriodSummaryResponse]:
    """Summaries of every period overlapping the date range, oldest first."""
    summaries = await payroll.summarize_periods_between(start_date, end_date)
    return [PeriodSummaryResponse.model_validate(s) for s in summaries]


@router.get(
    "/{period_id}",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(payroll: Payroll, period_id: Annotated[int, Path()]) -> PeriodResponse:
    return PeriodResponse.model_validate(await payroll.get_period(period_id))


@router.patch(
    "/{period_id}",
    response_model=PeriodResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_period(
    payroll: Payroll,
    period_id: Annotated[int, Path()],
    payload: PeriodUpdate,
) -> PeriodResponse:
    """Edit an OPEN period; fields left out are unchanged."""
    changes = payload.model_dump(exclude_unset=True)
    return PeriodResponse.model_validate(await payroll.update_period(period_id, **changes))


@router.delete(
    "/{period_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_period(payroll: Payroll, period_id: Annotated[int, Path()]) -> Response:
    """Delete a period that no ledger references."""
    await payroll.delete_period(period_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{period_id}/processing",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def open_processing(payroll: Payroll, period_id: Annotated[int, Path()]) -> PeriodResponse:
    """Move an OPEN period to PROCESSING."""
    return PeriodResponse.model_validate(await payroll.open_processing(period_id))


@router.post(
    "/{period_id}/close",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def close_period(payroll: Payroll, period_id: Annotated[int, Path()]) -> PeriodResponse:
    """Close a PROCESSING period once every ledger is resolved."""
    return PeriodResponse.model_validate(await payroll.close_period(period_id))


@router.post(
    "/{period_id}/cancel",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cancel_period(payroll: Payroll, period_id: Annotated[int, Path()]) -> PeriodResponse:
    return PeriodResponse.model_validate(await payroll.cancel_period(period_id))


@router.get(
    "/{period_id}/summary",
    response_model=PeriodSummaryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def summarize_period(
    payroll: Payroll, period_id: Annotated[int, Path()]
) -> PeriodSummaryResponse:
    """Ledger counts per status and money totals."""
    return PeriodSummaryResponse.model_validate(await payroll.summarize_period(period_id))


@router.post(
    "/{period_id}/calculate",
    response_model=BatchCalculationResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def calculate_payroll(
    payroll: Payroll,
    actor_id: ActorId,
    period_id: Annotated[int, Path()],
) -> BatchCalculationResponse:
    """Calculate every active employee's ledger for the period."""
    result = await payroll.calculate_payroll(period_id, actor_id)
    return BatchCalculationResponse(
        period_id=result.period_id,
        successes=[BatchLedger.model_validate(r) for r in result.successes],
        failures=[
            BatchFailure(
                employee_id=employee_id,
                error=str(error),
                error_type=type(error).__name__,
            )
            for employee_id, error in result.failures
        ],
        total_gross=result.total_gross,
        total_net=result.total_net,
    )


@router.get(
    "/{period_id}/ledgers",
    response_model=LedgerListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_period_ledgers(
    payroll: Payroll,
    period_id: Annotated[int, Path()],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> LedgerListResponse:
    """List the ledgers of a period."""
    await payroll.get_period(period_id)
    ledgers = await payroll.list_ledgers(period_id, status_filter)
    return LedgerListResponse(
        items=[LedgerResponse.model_validate(ledger) for ledger in ledgers],
        total=len(ledgers),
    )
