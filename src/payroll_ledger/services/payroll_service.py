"""Payroll facade - one transaction per operation, batch calculation.

Every public method opens its own session through ``session_factory.begin()``
and commits on success. The batch runner gives each employee an independent
transaction so one failure never blocks the rest of the period.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_ledger.calculators.engine import PayrollEngine
from payroll_ledger.calculators.types import ComponentLine, ComponentRule, ComponentType, PeriodType
from payroll_ledger.config import Settings, get_settings
from payroll_ledger.directory import EmployeeDirectory
from payroll_ledger.exceptions import InvalidStateTransition, PayrollError
from payroll_ledger.models import PayrollAudit, PayrollLedger, PayrollPeriod, SalaryComponent
from payroll_ledger.services.audit_service import AuditTrail
from payroll_ledger.services.calculation_service import CalculationService
from payroll_ledger.services.component_registry import ComponentRegistry
from payroll_ledger.services.ledger_service import LedgerService, line_from_row
from payroll_ledger.services.period_service import PeriodService, PeriodSummary
from payroll_ledger.services.state_machine import LedgerStatus, PaymentMethod, PeriodStatus

logger = logging.getLogger(__name__)

RETRY_BACKOFF_SECONDS = 0.05


@dataclass
class LedgerResult:
    """Detached view of a calculated ledger."""

    ledger_id: int
    employee_id: int
    period_id: int
    status: str
    base_salary: Decimal
    overtime_pay: Decimal
    bonus_amount: Decimal
    gross_pay: Decimal
    total_deductions: Decimal
    total_taxes: Decimal
    net_pay: Decimal
    lines: list[ComponentLine] = field(default_factory=list)

    @classmethod
    def from_ledger(cls, ledger: PayrollLedger) -> LedgerResult:
        return cls(
            ledger_id=ledger.id,
            employee_id=ledger.employee_id,
            period_id=ledger.payroll_period_id,
            status=ledger.status,
            base_salary=ledger.base_salary,
            overtime_pay=ledger.overtime_pay,
            bonus_amount=ledger.bonus_amount,
            gross_pay=ledger.gross_pay,
            total_deductions=ledger.total_deductions,
            total_taxes=ledger.total_taxes,
            net_pay=ledger.net_pay,
            lines=[line_from_row(row) for row in ledger.components],
        )


@dataclass
class BatchCalculationResult:
    """Outcome of a period-wide calculation run."""

    period_id: int
    successes: list[LedgerResult] = field(default_factory=list)
    failures: list[tuple[int, Exception]] = field(default_factory=list)

    @property
    def total_gross(self) -> Decimal:
        return sum((r.gross_pay for r in self.successes), Decimal("0"))

    @property
    def total_net(self) -> Decimal:
        return sum((r.net_pay for r in self.successes), Decimal("0"))

    @property
    def failed_employee_ids(self) -> list[int]:
        return [employee_id for employee_id, _ in self.failures]


class PayrollService:
    """Entry point for period, component and ledger operations."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: EmployeeDirectory,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.directory = directory
        self.settings = settings or get_settings()
        self.engine = PayrollEngine(self.settings)

    # === Periods ===

    async def create_period(
        self,
        name: str,
        start_date: date,
        end_date: date,
        period_type: PeriodType | str = PeriodType.MONTHLY,
        pay_date: date | None = None,
        description: str | None = None,
    ) -> PayrollPeriod:
        async with self.session_factory.begin() as session:
            return await PeriodService(session).create_period(
                name, start_date, end_date, period_type, pay_date, description
            )

    async def update_period(self, period_id: int, **changes: Any) -> PayrollPeriod:
        async with self.session_factory.begin() as session:
            return await PeriodService(session).update_period(period_id, **changes)

    async def delete_period(self, period_id: int) -> None:
        async with self.session_factory.begin() as session:
            await PeriodService(session).delete_period(period_id)

    async def get_period(self, period_id: int) -> PayrollPeriod:
        async with self.session_factory.begin() as session:
            return await PeriodService(session).get_period(period_id)

    async def list_periods(self, status: PeriodStatus | str | None = None) -> list[PayrollPeriod]:
        async with self.session_factory.begin() as session:
            return await PeriodService(session).list_periods(status)

    async def get_current_period(self, on_date: date | None = None) -> PayrollPeriod | None:
        async with self.session_factory.begin() as session:
            return await PeriodService(session).get_current_period(on_date)

    async def open_processing(self, period_id: int) -> PayrollPeriod:
        async with self.session_factory.begin() as session:
            return await PeriodService(session).open_processing(period_id)

    async def close_period(self, period_id: int) -> PayrollPeriod:
        async with self.session_factory.begin() as session:
            return await PeriodService(session).close(period_id)

    async def cancel_period(self, period_id: int) -> PayrollPeriod:
        async with self.session_factory.begin() as session:
            return await PeriodService(session).cancel(period_id)

    async def summarize_period(self, period_id: int) -> PeriodSummary:
        async with self.session_factory.begin() as session:
            return await PeriodService(session).summarize(period_id)

    async def summarize_periods_between(
        self, start_date: date, end_date: date
    ) -> list[PeriodSummary]:
        async with self.session_factory.begin() as session:
            return await PeriodService(session).summaries_between(start_date, end_date)

    # === Components ===

    async def register_component(
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
        async with self.session_factory.begin() as session:
            return await ComponentRegistry(session).register(
                name,
                component_type,
                amount=amount,
                percentage=percentage,
                is_taxable=is_taxable,
                is_mandatory=is_mandatory,
                calculation_order=calculation_order,
                description=description,
            )

    async def get_component(self, component_id: int) -> SalaryComponent:
        async with self.session_factory.begin() as session:
            return await ComponentRegistry(session).get(component_id)

    async def list_components(
        self,
        component_type: ComponentType | str | None = None,
        include_inactive: bool = True,
    ) -> list[SalaryComponent]:
        async with self.session_factory.begin() as session:
            return await ComponentRegistry(session).list_components(
                component_type, include_inactive
            )

    async def update_component(self, component_id: int, **changes: Any) -> SalaryComponent:
        async with self.session_factory.begin() as session:
            return await ComponentRegistry(session).update(component_id, **changes)

    async def deactivate_component(self, component_id: int) -> SalaryComponent:
        async with self.session_factory.begin() as session:
            return await ComponentRegistry(session).deactivate(component_id)

    async def activate_component(self, component_id: int) -> SalaryComponent:
        async with self.session_factory.begin() as session:
            return await ComponentRegistry(session).activate(component_id)

    async def delete_component(self, component_id: int) -> None:
        async with self.session_factory.begin() as session:
            await ComponentRegistry(session).delete(component_id)

    # === Ledgers ===

    async def create_ledger(
        self,
        employee_id: int,
        period_id: int,
        actor_id: int,
        notes: str | None = None,
    ) -> PayrollLedger:
        async with self.session_factory.begin() as session:
            return await self._ledgers(session).create_ledger(
                employee_id, period_id, actor_id, notes
            )

    async def calculate_ledger(
        self, employee_id: int, period_id: int, actor_id: int
    ) -> PayrollLedger:
        async with self.session_factory.begin() as session:
            return await self._calculator(session).calculate_ledger(
                employee_id, period_id, actor_id
            )

    async def get_ledger(self, ledger_id: int) -> PayrollLedger:
        async with self.session_factory.begin() as session:
            return await self._ledgers(session).get_ledger(ledger_id)

    async def list_ledgers(
        self,
        period_id: int | None = None,
        status: LedgerStatus | str | None = None,
    ) -> list[PayrollLedger]:
        async with self.session_factory.begin() as session:
            return await self._ledgers(session).list_ledgers(period_id, status)

    async def list_employee_ledgers(self, employee_id: int) -> list[PayrollLedger]:
        async with self.session_factory.begin() as session:
            return await self._ledgers(session).list_employee_ledgers(employee_id)

    async def approve_ledger(self, ledger_id: int, approver_id: int) -> PayrollLedger:
        async with self.session_factory.begin() as session:
            return await self._ledgers(session).approve(ledger_id, approver_id)

    async def mark_paid(
        self,
        ledger_id: int,
        payment_method: PaymentMethod | str,
        payment_reference: str,
        payer_id: int,
        paid_at: datetime | None = None,
    ) -> PayrollLedger:
        async with self.session_factory.begin() as session:
            return await self._ledgers(session).mark_paid(
                ledger_id, payment_method, payment_reference, payer_id, paid_at
            )

    async def reject_ledger(self, ledger_id: int, reason: str, actor_id: int) -> PayrollLedger:
        async with self.session_factory.begin() as session:
            return await self._ledgers(session).reject(ledger_id, reason, actor_id)

    async def cancel_ledger(self, ledger_id: int, reason: str, actor_id: int) -> PayrollLedger:
        async with self.session_factory.begin() as session:
            return await self._ledgers(session).cancel(ledger_id, reason, actor_id)

    async def override_component(
        self,
        ledger_id: int,
        salary_component_id: int,
        amount: Decimal,
        reason: str,
        actor_id: int,
    ) -> PayrollLedger:
        async with self.session_factory.begin() as session:
            return await self._ledgers(session).override_component(
                ledger_id, salary_component_id, amount, reason, actor_id
            )

    async def update_notes(
        self, ledger_id: int, notes: str | None, actor_id: int
    ) -> PayrollLedger:
        async with self.session_factory.begin() as session:
            return await self._ledgers(session).update_notes(ledger_id, notes, actor_id)

    async def get_audit_history(self, ledger_id: int) -> list[PayrollAudit]:
        async with self.session_factory.begin() as session:
            await self._ledgers(session).get_ledger(ledger_id)
            return await AuditTrail(session).history(ledger_id)

    # === Batch ===

    async def calculate_payroll(self, period_id: int, actor_id: int) -> BatchCalculationResult:
        """Calculate every active employee's ledger for a period.

        OPEN periods are moved to PROCESSING first; a PROCESSING period is
        resumed. Each employee is calculated in its own transaction, bounded
        by ``batch_max_workers`` concurrent units.
        """
        async with self.session_factory.begin() as session:
            periods = PeriodService(session)
            period = await periods.get_period(period_id)
            if period.status == PeriodStatus.OPEN.value:
                await periods.open_processing(period_id)
            elif period.status != PeriodStatus.PROCESSING.value:
                raise InvalidStateTransition(
                    "period",
                    period.status,
                    PeriodStatus.PROCESSING.value,
                    "payroll can only be calculated for OPEN or PROCESSING periods",
                )
            rules = await ComponentRegistry(session).active_rules()

        employees = await self.directory.list_active_employees()
        logger.info(
            "Starting payroll calculation period=%s employees=%s components=%s",
            period_id,
            len(employees),
            len(rules),
        )

        semaphore = asyncio.Semaphore(max(1, self.settings.batch_max_workers))

        async def run(employee_id: int) -> tuple[int, LedgerResult | Exception]:
            async with semaphore:
                return employee_id, await self._calculate_unit(
                    employee_id, period_id, actor_id, rules
                )

        outcomes = await asyncio.gather(*(run(e.employee_id) for e in employees))

        result = BatchCalculationResult(period_id=period_id)
        for employee_id, outcome in outcomes:
            if isinstance(outcome, LedgerResult):
                result.successes.append(outcome)
            else:
                result.failures.append((employee_id, outcome))

        logger.info(
            "Finished payroll calculation period=%s succeeded=%s failed=%s",
            period_id,
            len(result.successes),
            len(result.failures),
        )
        return result

    async def _calculate_unit(
        self,
        employee_id: int,
        period_id: int,
        actor_id: int,
        rules: list[ComponentRule],
    ) -> LedgerResult | Exception:
        """One employee, one transaction; transient storage errors are retried."""
        attempts = max(1, self.settings.batch_retry_attempts)
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.session_factory.begin() as session:
                    ledger = await self._calculator(session).calculate_ledger(
                        employee_id, period_id, actor_id, rules
                    )
                    return LedgerResult.from_ledger(ledger)
            except OperationalError as exc:
                if attempt >= attempts:
                    logger.error(
                        "Giving up on employee=%s period=%s after %s attempts: %s",
                        employee_id,
                        period_id,
                        attempts,
                        exc,
                    )
                    return exc
                logger.warning(
                    "Transient failure for employee=%s period=%s (attempt %s/%s): %s",
                    employee_id,
                    period_id,
                    attempt,
                    attempts,
                    exc,
                )
                await asyncio.sleep(RETRY_BACKOFF_SECONDS * attempt)
            except PayrollError as exc:
                logger.warning(
                    "Payroll calculation failed for employee=%s period=%s: %s",
                    employee_id,
                    period_id,
                    exc,
                )
                return exc
            except Exception as exc:
                logger.exception(
                    "Unexpected error calculating employee=%s period=%s",
                    employee_id,
                    period_id,
                )
                return exc

    def _ledgers(self, session: AsyncSession) -> LedgerService:
        return LedgerService(session, self.engine)

    def _calculator(self, session: AsyncSession) -> CalculationService:
        return CalculationService(session, self.directory, self.engine)
