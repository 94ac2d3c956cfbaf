"""Payroll period lifecycle management."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.calculators.types import PeriodType
from payroll_ledger.exceptions import (
    InvalidStateTransition,
    NotFoundError,
    PeriodNotReadyError,
    ValidationError,
)
from payroll_ledger.models import PayrollLedger, PayrollPeriod
from payroll_ledger.services.state_machine import (
    LedgerStateMachine,
    LedgerStatus,
    PeriodStateMachine,
    PeriodStatus,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

EDITABLE_FIELDS = {
    "period_name",
    "start_date",
    "end_date",
    "period_type",
    "pay_date",
    "description",
}


def validate_dates(start_date: date, end_date: date, pay_date: date | None) -> None:
    if end_date < start_date:
        raise ValidationError(
            f"Period end date {end_date} is before start date {start_date}"
        )
    if pay_date is not None and pay_date < end_date:
        raise ValidationError(
            f"Pay date {pay_date} is before period end date {end_date}"
        )


def parse_period_type(period_type: PeriodType | str) -> PeriodType:
    try:
        return PeriodType(period_type)
    except ValueError:
        raise ValidationError(f"Unknown period type: {period_type}") from None


@dataclass
class PeriodSummary:
    """Ledger counts and money totals for one period."""

    period_id: int
    status: str
    ledger_counts: dict[str, int] = field(default_factory=dict)
    total_gross: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_taxes: Decimal = ZERO
    total_net: Decimal = ZERO
    period_name: str | None = None
    start_date: date | None = None
    end_date: date | None = None

    @property
    def ledger_total(self) -> int:
        return sum(self.ledger_counts.values())


class PeriodService:
    """Service for managing payroll period lifecycle.

    Operations:
    - create_period: new OPEN period
    - update_period: edit name, dates and description while OPEN
    - delete_period: remove a period no ledger references
    - open_processing: OPEN → PROCESSING with a conditional update so that
      only one batch run can start
    - close: PROCESSING → CLOSED once every ledger is resolved
    - cancel: OPEN | PROCESSING → CANCELLED, ledgers are kept
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_period(
        self,
        name: str,
        start_date: date,
        end_date: date,
        period_type: PeriodType | str = PeriodType.MONTHLY,
        pay_date: date | None = None,
        description: str | None = None,
    ) -> PayrollPeriod:
        """Create a new OPEN period."""
        if not name or not name.strip():
            raise ValidationError("Period name is required")
        validate_dates(start_date, end_date, pay_date)
        period_type = parse_period_type(period_type)

        period = PayrollPeriod(
            period_name=name.strip(),
            start_date=start_date,
            end_date=end_date,
            period_type=period_type.value,
            status=PeriodStatus.OPEN.value,
            pay_date=pay_date,
            description=description,
            is_active=True,
        )
        self.session.add(period)
        await self.session.flush()

        logger.info(
            "Created payroll period %s id=%s (%s..%s)",
            period.period_name,
            period.id,
            start_date,
            end_date,
        )
        return period

    async def update_period(self, period_id: int, **changes: object) -> PayrollPeriod:
        """Edit an OPEN period. Dates are frozen once ledgers exist."""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown period fields: {', '.join(sorted(unknown))}")

        period = await self.get_period(period_id, for_update=True)
        if period.status != PeriodStatus.OPEN.value:
            raise InvalidStateTransition(
                "period",
                period.status,
                PeriodStatus.OPEN.value,
                "only OPEN periods can be edited",
            )

        if "period_name" in changes:
            name = (changes["period_name"] or "").strip()
            if not name:
                raise ValidationError("Period name is required")
            changes["period_name"] = name
        if "period_type" in changes:
            changes["period_type"] = parse_period_type(changes["period_type"]).value

        start_date = changes.get("start_date", period.start_date)
        end_date = changes.get("end_date", period.end_date)
        if start_date is None or end_date is None:
            raise ValidationError("Period start and end dates are required")
        validate_dates(start_date, end_date, changes.get("pay_date", period.pay_date))

        moved = (start_date, end_date) != (period.start_date, period.end_date)
        if moved and await self.ledger_counts(period_id):
            raise ValidationError(
                f"Period {period_id} already has ledgers; its dates cannot change"
            )

        for key, value in changes.items():
            setattr(period, key, value)
        await self.session.flush()

        logger.info("Updated payroll period id=%s fields=%s", period_id, sorted(changes))
        return period

    async def delete_period(self, period_id: int) -> None:
        """Physically remove a period that no ledger references."""
        await self.get_period(period_id)
        references = await self.session.scalar(
            select(func.count())
            .select_from(PayrollLedger)
            .where(PayrollLedger.payroll_period_id == period_id)
        )
        if references:
            raise ValidationError(
                f"Payroll period {period_id} is referenced by {references} "
                "ledger(s); cancel it instead"
            )
        await self.session.execute(delete(PayrollPeriod).where(PayrollPeriod.id == period_id))
        logger.info("Deleted payroll period id=%s", period_id)

    async def get_period(self, period_id: int, for_update: bool = False) -> PayrollPeriod:
        """Load a period, refreshing any stale identity-map copy."""
        query = (
            select(PayrollPeriod)
            .where(PayrollPeriod.id == period_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        period = (await self.session.execute(query)).scalar_one_or_none()
        if period is None:
            raise NotFoundError("Payroll period", period_id)
        return period

    async def list_periods(self, status: PeriodStatus | str | None = None) -> list[PayrollPeriod]:
        query = select(PayrollPeriod)
        if status is not None:
            try:
                status = PeriodStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown period status: {status}") from None
            query = query.where(PayrollPeriod.status == status.value)
        result = await self.session.execute(
            query.order_by(PayrollPeriod.start_date.desc(), PayrollPeriod.id.desc())
        )
        return list(result.scalars().all())

    async def get_current_period(self, on_date: date | None = None) -> PayrollPeriod | None:
        """Active, non-cancelled period whose range contains the date."""
        on_date = on_date or date.today()
        result = await self.session.execute(
            select(PayrollPeriod)
            .where(
                PayrollPeriod.is_active.is_(True),
                PayrollPeriod.status != PeriodStatus.CANCELLED.value,
                PayrollPeriod.start_date <= on_date,
                PayrollPeriod.end_date >= on_date,
            )
            .order_by(PayrollPeriod.start_date.desc(), PayrollPeriod.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def open_processing(self, period_id: int) -> PayrollPeriod:
        """Atomically move an OPEN period to PROCESSING."""
        await self._compare_and_set(period_id, PeriodStatus.OPEN, PeriodStatus.PROCESSING)
        return await self.get_period(period_id)

    async def close(self, period_id: int) -> PayrollPeriod:
        """Close a PROCESSING period whose ledgers are all resolved."""
        period = await self.get_period(period_id, for_update=True)
        PeriodStateMachine.validate_transition(period.status, PeriodStatus.CLOSED)

        counts = await self.ledger_counts(period_id)
        unresolved = {
            status: count
            for status, count in counts.items()
            if not LedgerStateMachine.is_resolved(status)
        }
        if unresolved:
            raise PeriodNotReadyError(period_id, unresolved)

        await self._compare_and_set(period_id, PeriodStatus.PROCESSING, PeriodStatus.CLOSED)
        return await self.get_period(period_id)

    async def cancel(self, period_id: int) -> PayrollPeriod:
        """Cancel an OPEN or PROCESSING period; its ledgers stay for audit."""
        period = await self.get_period(period_id)
        PeriodStateMachine.validate_transition(period.status, PeriodStatus.CANCELLED)
        await self._compare_and_set(period_id, PeriodStatus(period.status), PeriodStatus.CANCELLED)
        return await self.get_period(period_id)

    async def ledger_counts(self, period_id: int) -> dict[str, int]:
        """Number of ledgers per status in a period."""
        result = await self.session.execute(
            select(PayrollLedger.status, func.count())
            .where(PayrollLedger.payroll_period_id == period_id)
            .group_by(PayrollLedger.status)
        )
        return {status: count for status, count in result.all()}

    async def summarize(self, period_id: int) -> PeriodSummary:
        """Counts per status and totals over ledgers with final amounts."""
        period = await self.get_period(period_id)
        counts = await self.ledger_counts(period_id)

        final_statuses = [s.value for s in LedgerStateMachine.AMOUNTS_FINAL]
        row = (
            await self.session.execute(
                select(
                    func.coalesce(func.sum(PayrollLedger.gross_pay), 0),
                    func.coalesce(func.sum(PayrollLedger.total_deductions), 0),
                    func.coalesce(func.sum(PayrollLedger.total_taxes), 0),
                    func.coalesce(func.sum(PayrollLedger.net_pay), 0),
                ).where(
                    PayrollLedger.payroll_period_id == period_id,
                    PayrollLedger.status.in_(final_statuses),
                )
            )
        ).one()

        return PeriodSummary(
            period_id=period.id,
            status=period.status,
            ledger_counts=counts,
            total_gross=_money(row[0]),
            total_deductions=_money(row[1]),
            total_taxes=_money(row[2]),
            total_net=_money(row[3]),
            period_name=period.period_name,
            start_date=period.start_date,
            end_date=period.end_date,
        )

    async def summaries_between(self, start_date: date, end_date: date) -> list[PeriodSummary]:
        """Summaries of every period overlapping the range, oldest first."""
        if end_date < start_date:
            raise ValidationError(f"Range end {end_date} is before range start {start_date}")
        period_ids = (
            await self.session.scalars(
                select(PayrollPeriod.id)
                .where(
                    PayrollPeriod.start_date <= end_date,
                    PayrollPeriod.end_date >= start_date,
                )
                .order_by(PayrollPeriod.start_date, PayrollPeriod.id)
            )
        ).all()
        return [await self.summarize(period_id) for period_id in period_ids]

    async def _compare_and_set(
        self,
        period_id: int,
        expected: PeriodStatus,
        new_status: PeriodStatus,
    ) -> None:
        """Single conditional update; raises if the period moved underneath us."""
        PeriodStateMachine.validate_transition(expected, new_status)
        result = await self.session.execute(
            update(PayrollPeriod)
            .where(
                PayrollPeriod.id == period_id,
                PayrollPeriod.status == expected.value,
            )
            .values(status=new_status.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await self.session.scalar(
                select(PayrollPeriod.status).where(PayrollPeriod.id == period_id)
            )
            if current is None:
                raise NotFoundError("Payroll period", period_id)
            raise InvalidStateTransition("period", current, new_status.value)

        logger.info(
            "Payroll period %s: %s -> %s", period_id, expected.value, new_status.value
        )


def _money(value: object) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))
