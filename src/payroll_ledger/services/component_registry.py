"""Salary component registry."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.calculators.types import ComponentRule, ComponentType
from payroll_ledger.exceptions import NotFoundError, ValidationError
from payroll_ledger.models import PayrollLedgerComponent, SalaryComponent

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
MAX_PERCENTAGE = Decimal("100")

EDITABLE_FIELDS = {
    "component_name",
    "component_type",
    "amount",
    "percentage",
    "is_taxable",
    "is_mandatory",
    "calculation_order",
    "description",
}


def validate_basis(amount: Decimal | None, percentage: Decimal | None) -> None:
    """Exactly one of amount/percentage must be positive."""
    amount = amount or ZERO
    if amount < 0:
        raise ValidationError("Component amount cannot be negative")
    if percentage is not None and (percentage < 0 or percentage > MAX_PERCENTAGE):
        raise ValidationError("Component percentage must be between 0 and 100")

    has_amount = amount > 0
    has_percentage = percentage is not None and percentage > 0
    if has_amount == has_percentage:
        raise ValidationError(
            "Component needs exactly one of a positive amount or a positive percentage"
        )


def to_rule(component: SalaryComponent) -> ComponentRule:
    """Snapshot an ORM component for the engine."""
    return ComponentRule(
        component_id=component.id,
        name=component.component_name,
        component_type=ComponentType(component.component_type),
        amount=component.amount or ZERO,
        percentage=component.percentage,
        is_taxable=component.is_taxable,
        is_mandatory=component.is_mandatory,
        calculation_order=component.calculation_order,
    )


class ComponentRegistry:
    """Holds the reusable earning/deduction/tax rules.

    Deactivation is a soft toggle; ledger components keep their own
    snapshot values, so editing or deactivating a rule never changes a
    historical ledger.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def register(
        self,
        name: str,
        component_type: ComponentType | str,
        amount: Decimal | None = None,
        percentage: Decimal | None = None,
        is_taxable: bool = False,
        is_mandatory: bool = False,
        calculation_order: int = 0,
        description: str | None = None,
    ) -> SalaryComponent:
        """Register a new salary component."""
        if not name or not name.strip():
            raise ValidationError("Component name is required")
        component_type = self._parse_type(component_type)
        validate_basis(amount, percentage)
        await self._ensure_unique_name(name)

        component = SalaryComponent(
            component_name=name.strip(),
            component_type=component_type.value,
            amount=amount if amount and amount > 0 else ZERO,
            percentage=percentage if percentage and percentage > 0 else None,
            is_taxable=is_taxable,
            is_mandatory=is_mandatory,
            calculation_order=calculation_order,
            description=description,
            is_active=True,
        )
        self.session.add(component)
        await self.session.flush()

        logger.info(
            "Registered salary component %s (%s) id=%s order=%s",
            component.component_name,
            component.component_type,
            component.id,
            component.calculation_order,
        )
        return component

    async def get(self, component_id: int) -> SalaryComponent:
        component = await self.session.get(SalaryComponent, component_id)
        if component is None:
            raise NotFoundError("Salary component", component_id)
        return component

    async def list_active(self) -> list[SalaryComponent]:
        """Active components in evaluation order."""
        result = await self.session.execute(
            select(SalaryComponent)
            .where(SalaryComponent.is_active.is_(True))
            .order_by(SalaryComponent.calculation_order, SalaryComponent.id)
        )
        return list(result.scalars().all())

    async def list_components(
        self,
        component_type: ComponentType | str | None = None,
        include_inactive: bool = True,
    ) -> list[SalaryComponent]:
        query = select(SalaryComponent)
        if component_type is not None:
            query = query.where(
                SalaryComponent.component_type == self._parse_type(component_type).value
            )
        if not include_inactive:
            query = query.where(SalaryComponent.is_active.is_(True))
        result = await self.session.execute(
            query.order_by(SalaryComponent.calculation_order, SalaryComponent.id)
        )
        return list(result.scalars().all())

    async def active_rules(self) -> list[ComponentRule]:
        return [to_rule(c) for c in await self.list_active()]

    async def update(self, component_id: int, **changes: Any) -> SalaryComponent:
        """Edit a component's configuration."""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown component fields: {', '.join(sorted(unknown))}")

        component = await self.get(component_id)

        if "component_type" in changes:
            changes["component_type"] = self._parse_type(changes["component_type"]).value
        if "component_name" in changes:
            name = (changes["component_name"] or "").strip()
            if not name:
                raise ValidationError("Component name is required")
            if name != component.component_name:
                await self._ensure_unique_name(name)
            changes["component_name"] = name

        amount = changes.get("amount", component.amount)
        percentage = changes.get("percentage", component.percentage)
        if "amount" in changes or "percentage" in changes:
            # Switching basis: the other side is cleared
            if "amount" in changes and "percentage" not in changes and amount and amount > 0:
                percentage = None
            if "percentage" in changes and "amount" not in changes and percentage:
                amount = ZERO
        validate_basis(amount, percentage)
        changes["amount"] = amount if amount and amount > 0 else ZERO
        changes["percentage"] = percentage if percentage and percentage > 0 else None

        for key, value in changes.items():
            setattr(component, key, value)
        await self.session.flush()

        logger.info("Updated salary component id=%s", component_id)
        return component

    async def deactivate(self, component_id: int) -> SalaryComponent:
        component = await self.get(component_id)
        component.is_active = False
        await self.session.flush()
        logger.info("Deactivated salary component id=%s", component_id)
        return component

    async def activate(self, component_id: int) -> SalaryComponent:
        component = await self.get(component_id)
        component.is_active = True
        await self.session.flush()
        logger.info("Activated salary component id=%s", component_id)
        return component

    async def delete(self, component_id: int) -> None:
        """Delete a component that no ledger has ever used."""
        component = await self.get(component_id)
        references = await self.session.scalar(
            select(func.count())
            .select_from(PayrollLedgerComponent)
            .where(PayrollLedgerComponent.salary_component_id == component_id)
        )
        if references:
            raise ValidationError(
                f"Salary component {component_id} is referenced by {references} "
                "ledger component(s); deactivate it instead"
            )
        await self.session.delete(component)
        await self.session.flush()
        logger.info("Deleted salary component id=%s", component_id)

    async def _ensure_unique_name(self, name: str) -> None:
        existing = await self.session.scalar(
            select(SalaryComponent.id).where(SalaryComponent.component_name == name.strip())
        )
        if existing is not None:
            raise ValidationError(f"Salary component '{name.strip()}' already exists")

    @staticmethod
    def _parse_type(component_type: ComponentType | str) -> ComponentType:
        try:
            return ComponentType(component_type)
        except ValueError:
            raise ValidationError(f"Unknown component type: {component_type}") from None
