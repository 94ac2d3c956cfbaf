"""Payroll ledger API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, Query, status

from payroll_ledger.api.dependencies import ActorId, Payroll
from payroll_ledger.api.schemas import (
    AuditEntryResponse,
    CalculateRequest,
    ErrorResponse,
    LedgerCreate,
    LedgerListResponse,
    LedgerResponse,
    NotesRequest,
    OverrideRequest,
    PaymentRequest,
    ReasonRequest,
)

router = APIRouter(tags=["ledgers"])


# ============================================================================
# Creation & calculation
# ============================================================================


@router.post(
    "/ledgers",
    response_model=LedgerResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_ledger(
    payroll: Payroll, actor_id: ActorId, payload: LedgerCreate
) -> LedgerResponse:
    """Create a PENDING ledger shell."""
    ledger = await payroll.create_ledger(
        payload.employee_id, payload.payroll_period_id, actor_id, payload.notes
    )
    return LedgerResponse.model_validate(ledger)


@router.post(
    "/ledgers/calculate",
    response_model=LedgerResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def calculate_ledger(
    payroll: Payroll, actor_id: ActorId, payload: CalculateRequest
) -> LedgerResponse:
    """Calculate (or recalculate) one employee's ledger."""
    ledger = await payroll.calculate_ledger(
        payload.employee_id, payload.payroll_period_id, actor_id
    )
    return LedgerResponse.model_validate(ledger)


@router.get(
    "/ledgers",
    response_model=LedgerListResponse,
    responses={400: {"model": ErrorResponse}},
)
async def list_ledgers(
    payroll: Payroll,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    period_id: Annotated[int | None, Query()] = None,
) -> LedgerListResponse:
    """Ledgers across periods, optionally narrowed by status or period."""
    ledgers = await payroll.list_ledgers(period_id, status_filter)
    return LedgerListResponse(
        items=[LedgerResponse.model_validate(ledger) for ledger in ledgers],
        total=len(ledgers),
    )


@router.get(
    "/ledgers/{ledger_id}",
    response_model=LedgerResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_ledger(payroll: Payroll, ledger_id: Annotated[int, Path()]) -> LedgerResponse:
    return LedgerResponse.model_validate(await payroll.get_ledger(ledger_id))


@router.get("/employees/{employee_id}/ledgers", response_model=LedgerListResponse)
async def list_employee_ledgers(
    payroll: Payroll, employee_id: Annotated[int, Path()]
) -> LedgerListResponse:
    """Payroll history of one employee."""
    ledgers = await payroll.list_employee_ledgers(employee_id)
    return LedgerListResponse(
        items=[LedgerResponse.model_validate(ledger) for ledger in ledgers],
        total=len(ledgers),
    )


# ============================================================================
# Workflow
# ============================================================================


@router.post(
    "/ledgers/{ledger_id}/approve",
    response_model=LedgerResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def approve_ledger(
    payroll: Payroll, actor_id: ActorId, ledger_id: Annotated[int, Path()]
) -> LedgerResponse:
    """CALCULATED → APPROVED."""
    return LedgerResponse.model_validate(await payroll.approve_ledger(ledger_id, actor_id))


@router.post(
    "/ledgers/{ledger_id}/pay",
    response_model=LedgerResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def mark_paid(
    payroll: Payroll,
    actor_id: ActorId,
    ledger_id: Annotated[int, Path()],
    payload: PaymentRequest,
) -> LedgerResponse:
    """APPROVED → PAID."""
    ledger = await payroll.mark_paid(
        ledger_id,
        payload.payment_method,
        payload.payment_reference,
        actor_id,
        payload.paid_at,
    )
    return LedgerResponse.model_validate(ledger)


@router.post(
    "/ledgers/{ledger_id}/reject",
    response_model=LedgerResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reject_ledger(
    payroll: Payroll,
    actor_id: ActorId,
    ledger_id: Annotated[int, Path()],
    payload: ReasonRequest,
) -> LedgerResponse:
    return LedgerResponse.model_validate(
        await payroll.reject_ledger(ledger_id, payload.reason, actor_id)
    )


@router.post(
    "/ledgers/{ledger_id}/cancel",
    response_model=LedgerResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cancel_ledger(
    payroll: Payroll,
    actor_id: ActorId,
    ledger_id: Annotated[int, Path()],
    payload: ReasonRequest,
) -> LedgerResponse:
    return LedgerResponse.model_validate(
        await payroll.cancel_ledger(ledger_id, payload.reason, actor_id)
    )


@router.post(
    "/ledgers/{ledger_id}/components/{component_id}/override",
    response_model=LedgerResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def override_component(
    payroll: Payroll,
    actor_id: ActorId,
    ledger_id: Annotated[int, Path()],
    component_id: Annotated[int, Path()],
    payload: OverrideRequest,
) -> LedgerResponse:
    """Replace one computed line with a justified manual amount."""
    ledger = await payroll.override_component(
        ledger_id, component_id, payload.amount, payload.reason, actor_id
    )
    return LedgerResponse.model_validate(ledger)


@router.patch(
    "/ledgers/{ledger_id}/notes",
    response_model=LedgerResponse,
    responses={404: {"model": ErrorResponse}},
)
async def update_notes(
    payroll: Payroll,
    actor_id: ActorId,
    ledger_id: Annotated[int, Path()],
    payload: NotesRequest,
) -> LedgerResponse:
    return LedgerResponse.model_validate(
        await payroll.update_notes(ledger_id, payload.notes, actor_id)
    )


@router.get(
    "/ledgers/{ledger_id}/audit",
    response_model=list[AuditEntryResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_audit_history(
    payroll: Payroll, ledger_id: Annotated[int, Path()]
) -> list[AuditEntryResponse]:
    """Ordered, immutable history of a ledger."""
    entries = await payroll.get_audit_history(ledger_id)
    return [AuditEntryResponse.model_validate(e) for e in entries]
