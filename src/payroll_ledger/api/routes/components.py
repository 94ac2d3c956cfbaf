"""Salary component API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, Query, Response, status

from payroll_ledger.api.dependencies import Payroll
from payroll_ledger.api.schemas import (
    ComponentCreate,
    ComponentResponse,
    ComponentUpdate,
    ErrorResponse,
)

router = APIRouter(prefix="/components", tags=["components"])


@router.post(
    "",
    response_model=ComponentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def register_component(payroll: Payroll, payload: ComponentCreate) -> ComponentResponse:
    """Register a new salary component."""
    component = await payroll.register_component(
        payload.component_name,
        payload.component_type,
        amount=payload.amount,
        percentage=payload.percentage,
        is_taxable=payload.is_taxable,
        is_mandatory=payload.is_mandatory,
        calculation_order=payload.calculation_order,
        description=payload.description,
    )
    return ComponentResponse.model_validate(component)


@router.get("", response_model=list[ComponentResponse])
async def list_components(
    payroll: Payroll,
    component_type: Annotated[str | None, Query(alias="type")] = None,
    include_inactive: bool = True,
) -> list[ComponentResponse]:
    """List components in evaluation order."""
    components = await payroll.list_components(component_type, include_inactive)
    return [ComponentResponse.model_validate(c) for c in components]


@router.get(
    "/{component_id}",
    response_model=ComponentResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_component(
    payroll: Payroll, component_id: Annotated[int, Path()]
) -> ComponentResponse:
    return ComponentResponse.model_validate(await payroll.get_component(component_id))


@router.patch(
    "/{component_id}",
    response_model=ComponentResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_component(
    payroll: Payroll,
    component_id: Annotated[int, Path()],
    payload: ComponentUpdate,
) -> ComponentResponse:
    """Edit a component; fields left out are unchanged."""
    changes = payload.model_dump(exclude_unset=True)
    return ComponentResponse.model_validate(
        await payroll.update_component(component_id, **changes)
    )


@router.post(
    "/{component_id}/deactivate",
    response_model=ComponentResponse,
    responses={404: {"model": ErrorResponse}},
)
async def deactivate_component(
    payroll: Payroll, component_id: Annotated[int, Path()]
) -> ComponentResponse:
    return ComponentResponse.model_validate(await payroll.deactivate_component(component_id))


@router.post(
    "/{component_id}/activate",
    response_model=ComponentResponse,
    responses={404: {"model": ErrorResponse}},
)
async def activate_component(
    payroll: Payroll, component_id: Annotated[int, Path()]
) -> ComponentResponse:
    return ComponentResponse.model_validate(await payroll.activate_component(component_id))


@router.delete(
    "/{component_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_component(payroll: Payroll, component_id: Annotated[int, Path()]) -> Response:
    """Delete a component that no ledger references."""
    await payroll.delete_component(component_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
