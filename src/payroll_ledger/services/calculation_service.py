"""Calculation service - runs the engine for one ledger and persists it."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.calculators.engine import PayrollEngine
from payroll_ledger.calculators.types import ComponentRule, PayBasis, PayType, PeriodType
from payroll_ledger.directory import EmployeeDirectory, PayInputs
from payroll_ledger.exceptions import (
    CalculationError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from payroll_ledger.models import PayrollLedger
from payroll_ledger.services.component_registry import ComponentRegistry
from payroll_ledger.services.ledger_service import LedgerService
from payroll_ledger.services.period_service import PeriodService
from payroll_ledger.services.state_machine import (
    LedgerStateMachine,
    LedgerStatus,
    PeriodStateMachine,
)

logger = logging.getLogger(__name__)


class CalculationService:
    """Computes and stores one employee's ledger for one period.

    All reads and writes happen in the caller's session, so the ledger row,
    its breakdown and its audit entries commit together or not at all.
    """

    def __init__(
        self,
        session: AsyncSession,
        directory: EmployeeDirectory,
        engine: PayrollEngine | None = None,
    ):
        self.session = session
        self.directory = directory
        self.engine = engine or PayrollEngine()
        self.periods = PeriodService(session)
        self.registry = ComponentRegistry(session)
        self.ledgers = LedgerService(session, self.engine)

    async def calculate_ledger(
        self,
        employee_id: int,
        period_id: int,
        actor_id: int,
        rules: list[ComponentRule] | None = None,
    ) -> PayrollLedger:
        """Calculate (or recalculate) the ledger for an employee and period.

        A missing ledger is created as a PENDING shell first. Recalculation
        replaces the breakdown and discards any overrides.
        """
        period = await self.periods.get_period(period_id)
        if not PeriodStateMachine.can_calculate(period.status):
            raise InvalidStateTransition(
                "ledger",
                None,
                LedgerStatus.CALCULATED.value,
                f"period {period_id} is {period.status}",
            )

        profile = await self.directory.get_employee(employee_id)
        if profile is None:
            raise NotFoundError("Employee", employee_id)
        if not profile.is_active:
            raise ValidationError(f"Employee {employee_id} is not active")

        ledger = await self.ledgers.find_ledger(employee_id, period_id)
        if ledger is not None and not LedgerStateMachine.can_calculate(ledger.status):
            raise InvalidStateTransition(
                "ledger",
                ledger.status,
                LedgerStatus.CALCULATED.value,
                "recalculation is only allowed while PENDING or CALCULATED",
            )

        inputs = await self.directory.get_pay_inputs(employee_id, period)
        if inputs is None:
            if profile.pay_type == PayType.HOURLY:
                raise CalculationError(
                    f"No hours recorded for hourly employee {employee_id} "
                    f"in period {period_id}"
                )
            inputs = PayInputs()
        basis = PayBasis(
            pay_type=profile.pay_type,
            period_type=PeriodType(period.period_type),
            period_start=period.start_date,
            period_end=period.end_date,
            base_salary=profile.base_salary,
            hourly_rate=profile.hourly_rate,
            regular_hours=inputs.regular_hours,
            overtime_hours=inputs.overtime_hours,
            bonus_amount=inputs.bonus_amount,
        )
        if rules is None:
            rules = await self.registry.active_rules()

        # Nothing is written if the engine rejects the inputs
        result = self.engine.calculate(basis, rules)

        if ledger is None:
            ledger = await self.ledgers.create_ledger(employee_id, period_id, actor_id)

        ledger = await self.ledgers.record_calculation(ledger, result, actor_id)
        logger.info(
            "Calculated ledger %s employee=%s period=%s gross=%s net=%s",
            ledger.id,
            employee_id,
            period_id,
            ledger.gross_pay,
            ledger.net_pay,
        )
        return ledger
