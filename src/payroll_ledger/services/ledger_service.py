"""Ledger service - state transitions, overrides, and breakdown persistence."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payroll_ledger.calculators.engine import PayrollEngine
from payroll_ledger.calculators.line_builder import LineBuilder
from payroll_ledger.calculators.types import (
    BasePay,
    CalculationResult,
    ComponentLine,
    ComponentType,
    Computed,
    Overridden,
)
from payroll_ledger.exceptions import (
    DuplicateLedgerError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from payroll_ledger.models import (
    PayrollLedger,
    PayrollLedgerComponent,
    SalaryComponent,
    utcnow,
)
from payroll_ledger.services.audit_service import AuditTrail, diff_snapshots, snapshot_ledger
from payroll_ledger.services.period_service import PeriodService
from payroll_ledger.services.state_machine import (
    AuditAction,
    LedgerStateMachine,
    LedgerStatus,
    PaymentMethod,
    PeriodStateMachine,
    PeriodStatus,
)

logger = logging.getLogger(__name__)


def line_from_row(row: PayrollLedgerComponent) -> ComponentLine:
    """Rebuild the tagged line value from a persisted breakdown row."""
    if row.is_override:
        value: Computed | Overridden = Overridden(row.override_amount, row.override_reason)
    else:
        value = Computed(row.calculated_amount)
    return ComponentLine(
        component_id=row.salary_component_id,
        component_type=ComponentType(row.component_type),
        configured_amount=row.amount,
        percentage_applied=row.percentage_applied,
        calculated_amount=row.calculated_amount,
        value=value,
    )


def base_from_ledger(ledger: PayrollLedger) -> BasePay:
    return BasePay(
        base_salary=ledger.base_salary,
        overtime_hours=ledger.overtime_hours,
        overtime_pay=ledger.overtime_pay,
        bonus_amount=ledger.bonus_amount,
    )


def _require_text(value: str | None, label: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{label} is required")
    return value.strip()


class LedgerService:
    """Service for the ledger lifecycle.

    Every status change is one conditional UPDATE on the expected current
    status plus one audit insert in the same transaction. The caller owns
    the transaction boundary; if either statement fails, nothing commits.

    Operations:
    - create_ledger: PENDING shell (CREATED audit)
    - record_calculation: PENDING | CALCULATED → CALCULATED (engine only)
    - approve: CALCULATED → APPROVED
    - mark_paid: APPROVED → PAID
    - reject: CALCULATED | APPROVED → REJECTED
    - cancel: PENDING | CALCULATED | APPROVED → CANCELLED
    - override_component: human override on a CALCULATED ledger
    """

    def __init__(self, session: AsyncSession, engine: PayrollEngine | None = None):
        self.session = session
        self.audit = AuditTrail(session)
        self.periods = PeriodService(session)
        self.engine = engine or PayrollEngine()

    # === Queries ===

    async def get_ledger(self, ledger_id: int) -> PayrollLedger:
        """Load a ledger with its breakdown and period."""
        result = await self.session.execute(
            select(PayrollLedger)
            .where(PayrollLedger.id == ledger_id)
            .options(
                selectinload(PayrollLedger.components),
                selectinload(PayrollLedger.period),
            )
            .execution_options(populate_existing=True)
        )
        ledger = result.scalar_one_or_none()
        if ledger is None:
            raise NotFoundError("Payroll ledger", ledger_id)
        return ledger

    async def find_ledger(self, employee_id: int, period_id: int) -> PayrollLedger | None:
        ledger_id = await self.session.scalar(
            select(PayrollLedger.id).where(
                PayrollLedger.employee_id == employee_id,
                PayrollLedger.payroll_period_id == period_id,
            )
        )
        if ledger_id is None:
            return None
        return await self.get_ledger(ledger_id)

    async def list_ledgers(
        self,
        period_id: int | None = None,
        status: LedgerStatus | str | None = None,
    ) -> list[PayrollLedger]:
        """Ledgers of one period, or of every period when none is given."""
        query = select(PayrollLedger).options(selectinload(PayrollLedger.components))
        if period_id is not None:
            query = query.where(PayrollLedger.payroll_period_id == period_id)
        if status is not None:
            try:
                status = LedgerStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown ledger status: {status}") from None
            query = query.where(PayrollLedger.status == status.value)
        result = await self.session.execute(
            query.order_by(
                PayrollLedger.payroll_period_id, PayrollLedger.employee_id, PayrollLedger.id
            )
        )
        return list(result.scalars().all())

    async def list_employee_ledgers(self, employee_id: int) -> list[PayrollLedger]:
        result = await self.session.execute(
            select(PayrollLedger)
            .where(PayrollLedger.employee_id == employee_id)
            .options(selectinload(PayrollLedger.components))
            .order_by(PayrollLedger.payroll_period_id.desc())
        )
        return list(result.scalars().all())

    # === Creation & calculation ===

    async def create_ledger(
        self,
        employee_id: int,
        period_id: int,
        actor_id: int,
        notes: str | None = None,
    ) -> PayrollLedger:
        """Create a PENDING ledger shell for (employee, period)."""
        period = await self.periods.get_period(period_id)
        if not PeriodStateMachine.can_calculate(period.status):
            raise InvalidStateTransition(
                "ledger",
                None,
                LedgerStatus.PENDING.value,
                f"period {period_id} is {period.status}",
            )

        existing = await self.session.scalar(
            select(PayrollLedger.id).where(
                PayrollLedger.employee_id == employee_id,
                PayrollLedger.payroll_period_id == period_id,
            )
        )
        if existing is not None:
            raise DuplicateLedgerError(employee_id, period_id)

        ledger = PayrollLedger(
            employee_id=employee_id,
            payroll_period_id=period_id,
            status=LedgerStatus.PENDING.value,
            notes=notes,
            created_by=actor_id,
            updated_by=actor_id,
        )
        self.session.add(ledger)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent insert on the unique key
            raise DuplicateLedgerError(employee_id, period_id) from exc

        await self.audit.record(
            ledger_id=ledger.id,
            action=AuditAction.CREATED,
            old_status=None,
            new_status=LedgerStatus.PENDING,
            changes=diff_snapshots({}, snapshot_ledger(ledger)),
            actor_id=actor_id,
        )
        logger.info(
            "Created ledger id=%s employee=%s period=%s", ledger.id, employee_id, period_id
        )
        return await self.get_ledger(ledger.id)

    async def record_calculation(
        self,
        ledger: PayrollLedger,
        result: CalculationResult,
        actor_id: int,
    ) -> PayrollLedger:
        """Replace the breakdown and move the ledger to CALCULATED."""
        if not LedgerStateMachine.can_calculate(ledger.status):
            raise InvalidStateTransition(
                "ledger",
                ledger.status,
                LedgerStatus.CALCULATED.value,
                "recalculation is only allowed while PENDING or CALCULATED",
            )

        old_lines = [line_from_row(row).to_canonical_dict() for row in ledger.components]

        await self.session.execute(
            delete(PayrollLedgerComponent).where(
                PayrollLedgerComponent.payroll_ledger_id == ledger.id
            )
        )
        for line in result.lines:
            self.session.add(
                PayrollLedgerComponent(
                    payroll_ledger_id=ledger.id,
                    salary_component_id=line.component_id,
                    component_type=line.component_type.value,
                    amount=line.configured_amount,
                    calculated_amount=line.calculated_amount,
                    percentage_applied=line.percentage_applied,
                    is_override=False,
                )
            )
        await self.session.flush()

        new_lines = [line.to_canonical_dict() for line in result.lines]
        extra: dict[str, Any] = {"breakdown_hash": LineBuilder.compute_breakdown_hash(result.lines)}
        if old_lines != new_lines:
            extra["components"] = {"old": old_lines, "new": new_lines}

        return await self._transition(
            ledger,
            LedgerStatus.CALCULATED,
            AuditAction.CALCULATED,
            actor_id,
            values={
                "base_salary": result.base.base_salary,
                "overtime_hours": result.base.overtime_hours,
                "overtime_pay": result.base.overtime_pay,
                "bonus_amount": result.base.bonus_amount,
                "gross_pay": result.gross_pay,
                "total_deductions": result.total_deductions,
                "total_taxes": result.total_taxes,
                "net_pay": result.net_pay,
            },
            extra_changes=extra,
        )

    # === Human workflow ===

    async def approve(self, ledger_id: int, approver_id: int) -> PayrollLedger:
        """CALCULATED → APPROVED."""
        if approver_id is None:
            raise ValidationError("Approver is required")
        ledger = await self.get_ledger(ledger_id)
        return await self._transition(
            ledger,
            LedgerStatus.APPROVED,
            AuditAction.APPROVED,
            approver_id,
            values={"approved_by": approver_id, "approved_at": utcnow()},
        )

    async def mark_paid(
        self,
        ledger_id: int,
        payment_method: PaymentMethod | str,
        payment_reference: str,
        payer_id: int,
        paid_at: datetime | None = None,
    ) -> PayrollLedger:
        """APPROVED → PAID."""
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {payment_method}") from None
        reference = _require_text(payment_reference, "Payment reference")
        if payer_id is None:
            raise ValidationError("Payer is required")

        ledger = await self.get_ledger(ledger_id)
        paid_at = paid_at or utcnow()
        pay_date = ledger.period.pay_date or paid_at.date()
        return await self._transition(
            ledger,
            LedgerStatus.PAID,
            AuditAction.PAID,
            payer_id,
            values={
                "payment_method": method.value,
                "payment_reference": reference,
                "paid_by": payer_id,
                "paid_at": paid_at,
                "pay_date": pay_date,
            },
        )

    async def reject(self, ledger_id: int, reason: str, actor_id: int) -> PayrollLedger:
        """CALCULATED | APPROVED → REJECTED."""
        ledger = await self.get_ledger(ledger_id)
        LedgerStateMachine.validate_transition(ledger.status, LedgerStatus.REJECTED)
        reason = _require_text(reason, "Rejection reason")
        return await self._transition(
            ledger,
            LedgerStatus.REJECTED,
            AuditAction.REJECTED,
            actor_id,
            reason=reason,
        )

    async def cancel(self, ledger_id: int, reason: str, actor_id: int) -> PayrollLedger:
        """Any non-terminal status → CANCELLED, unless the period is closed."""
        ledger = await self.get_ledger(ledger_id)
        LedgerStateMachine.validate_transition(ledger.status, LedgerStatus.CANCELLED)
        reason = _require_text(reason, "Cancellation reason")
        if ledger.period.status == PeriodStatus.CLOSED.value:
            raise InvalidStateTransition(
                "ledger",
                ledger.status,
                LedgerStatus.CANCELLED.value,
                f"period {ledger.payroll_period_id} is CLOSED",
            )
        return await self._transition(
            ledger,
            LedgerStatus.CANCELLED,
            AuditAction.CANCELLED,
            actor_id,
            reason=reason,
        )

    async def update_notes(self, ledger_id: int, notes: str | None, actor_id: int) -> PayrollLedger:
        """Edit free-text notes; status is unchanged."""
        ledger = await self.get_ledger(ledger_id)
        before = snapshot_ledger(ledger)
        ledger.notes = notes
        ledger.updated_by = actor_id
        await self.session.flush()
        await self.audit.record(
            ledger_id=ledger.id,
            action=AuditAction.UPDATED,
            old_status=ledger.status,
            new_status=ledger.status,
            changes=diff_snapshots(before, snapshot_ledger(ledger)),
            actor_id=actor_id,
        )
        return await self.get_ledger(ledger.id)

    async def override_component(
        self,
        ledger_id: int,
        salary_component_id: int,
        amount: Decimal,
        reason: str,
        actor_id: int,
    ) -> PayrollLedger:
        """Replace one computed line with a human value and re-derive totals."""
        reason = _require_text(reason, "Override reason")
        if amount is None or amount < 0:
            raise ValidationError("Override amount must be zero or positive")

        ledger = await self.get_ledger(ledger_id)
        if ledger.status != LedgerStatus.CALCULATED.value:
            raise InvalidStateTransition(
                "ledger",
                ledger.status,
                LedgerStatus.CALCULATED.value,
                "overrides require a CALCULATED ledger",
            )

        row = next(
            (r for r in ledger.components if r.salary_component_id == salary_component_id),
            None,
        )
        if row is None:
            raise NotFoundError(
                f"Component {salary_component_id} on ledger", ledger_id
            )
        component = await self.session.get(SalaryComponent, salary_component_id)
        if component is not None and component.is_mandatory and amount == 0:
            raise ValidationError(
                f"Mandatory component {component.component_name} cannot be zeroed"
            )

        amount = LineBuilder.round_to_cents(amount)
        lines = [line_from_row(r) for r in ledger.components]
        lines = [
            LineBuilder.override_line(line, amount, reason)
            if line.component_id == salary_component_id
            else line
            for line in lines
        ]
        totals = self.engine.rederive_totals(base_from_ledger(ledger), lines)

        previous = line_from_row(row).to_canonical_dict()
        row.is_override = True
        row.override_amount = amount
        row.override_reason = reason
        await self.session.flush()

        return await self._transition(
            ledger,
            LedgerStatus.CALCULATED,
            AuditAction.UPDATED,
            actor_id,
            values={
                "gross_pay": totals.gross_pay,
                "total_deductions": totals.total_deductions,
                "total_taxes": totals.total_taxes,
                "net_pay": totals.net_pay,
            },
            reason=reason,
            extra_changes={
                "component_override": {
                    "old": previous,
                    "new": line_from_row(row).to_canonical_dict(),
                }
            },
        )

    # === Internals ===

    async def _transition(
        self,
        ledger: PayrollLedger,
        to_status: LedgerStatus,
        action: AuditAction,
        actor_id: int,
        values: dict[str, Any] | None = None,
        reason: str | None = None,
        extra_changes: dict[str, Any] | None = None,
    ) -> PayrollLedger:
        """Conditional status update plus audit row."""
        from_status = ledger.status
        LedgerStateMachine.validate_transition(from_status, to_status)
        before = snapshot_ledger(ledger)

        values = dict(values or {})
        values["status"] = to_status.value
        values["updated_by"] = actor_id
        if LedgerStateMachine.records_approval(from_status) and not (
            LedgerStateMachine.records_approval(to_status)
        ):
            values.update(approved_by=None, approved_at=None)

        result = await self.session.execute(
            update(PayrollLedger)
            .where(
                PayrollLedger.id == ledger.id,
                PayrollLedger.status == from_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await self.session.scalar(
                select(PayrollLedger.status).where(PayrollLedger.id == ledger.id)
            )
            raise InvalidStateTransition(
                "ledger", current, to_status.value, "ledger changed concurrently"
            )

        ledger = await self.get_ledger(ledger.id)
        changes = diff_snapshots(before, snapshot_ledger(ledger))
        if extra_changes:
            changes.update(extra_changes)

        await self.audit.record(
            ledger_id=ledger.id,
            action=action,
            old_status=from_status,
            new_status=to_status,
            changes=changes,
            actor_id=actor_id,
            reason=reason,
        )
        logger.info(
            "Ledger %s: %s -> %s by user=%s", ledger.id, from_status, to_status.value, actor_id
        )
        return ledger
