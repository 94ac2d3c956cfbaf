"""Tests for payroll period lifecycle."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from payroll_ledger.exceptions import (
    InvalidStateTransition,
    NotFoundError,
    PeriodNotReadyError,
    ValidationError,
)
from payroll_ledger.models import PayrollLedger
from payroll_ledger.services.period_service import PeriodService

pytestmark = pytest.mark.asyncio


@pytest.fixture
def periods(session) -> PeriodService:
    return PeriodService(session)


async def make_period(periods: PeriodService, name: str = "March 2024", **kwargs):
    return await periods.create_period(
        name,
        kwargs.pop("start_date", date(2024, 3, 1)),
        kwargs.pop("end_date", date(2024, 3, 31)),
        **kwargs,
    )


async def add_ledger(session, period_id: int, employee_id: int, status: str, **amounts):
    ledger = PayrollLedger(
        employee_id=employee_id,
        payroll_period_id=period_id,
        status=status,
        **amounts,
    )
    if status in ("APPROVED", "PAID"):
        ledger.approved_by = 2
        ledger.approved_at = datetime(2024, 4, 1, tzinfo=timezone.utc)
    if status == "PAID":
        ledger.paid_by = 3
        ledger.paid_at = datetime(2024, 4, 2, tzinfo=timezone.utc)
        ledger.payment_reference = "TX-1"
    session.add(ledger)
    await session.flush()
    return ledger


class TestCreatePeriod:
    """Test period creation rules."""

    async def test_new_period_is_open(self, periods):
        period = await make_period(periods, pay_date=date(2024, 4, 1))

        assert period.id is not None
        assert period.status == "OPEN"
        assert period.period_type == "MONTHLY"
        assert period.is_active is True

    async def test_end_before_start_rejected(self, periods):
        with pytest.raises(ValidationError):
            await make_period(periods, start_date=date(2024, 3, 31), end_date=date(2024, 3, 1))

    async def test_pay_date_before_end_rejected(self, periods):
        with pytest.raises(ValidationError):
            await make_period(periods, pay_date=date(2024, 3, 15))

    async def test_unknown_period_type_rejected(self, periods):
        with pytest.raises(ValidationError):
            await make_period(periods, period_type="QUARTERLY")

    async def test_single_day_period_allowed(self, periods):
        period = await make_period(
            periods, start_date=date(2024, 3, 1), end_date=date(2024, 3, 1), period_type="CUSTOM"
        )
        assert period.start_date == period.end_date


class TestLifecycle:
    """Test OPEN → PROCESSING → CLOSED/CANCELLED."""

    async def test_open_processing(self, periods):
        period = await make_period(periods)

        processing = await periods.open_processing(period.id)

        assert processing.status == "PROCESSING"

    async def test_open_processing_twice_fails_with_current_state(self, periods):
        period = await make_period(periods)
        await periods.open_processing(period.id)

        with pytest.raises(InvalidStateTransition) as exc_info:
            await periods.open_processing(period.id)

        assert exc_info.value.current == "PROCESSING"
        assert exc_info.value.attempted == "PROCESSING"

    async def test_open_processing_missing_period(self, periods):
        with pytest.raises(NotFoundError):
            await periods.open_processing(424242)

    async def test_close_requires_processing(self, periods):
        period = await make_period(periods)

        with pytest.raises(InvalidStateTransition):
            await periods.close(period.id)

    async def test_close_empty_processing_period(self, periods):
        period = await make_period(periods)
        await periods.open_processing(period.id)

        closed = await periods.close(period.id)

        assert closed.status == "CLOSED"

    async def test_close_blocked_by_unresolved_ledgers(self, periods, session):
        period = await make_period(periods)
        await periods.open_processing(period.id)
        await add_ledger(session, period.id, 1, "PENDING")
        await add_ledger(session, period.id, 2, "CALCULATED")
        await add_ledger(session, period.id, 3, "CALCULATED")
        await add_ledger(session, period.id, 4, "CANCELLED")

        with pytest.raises(PeriodNotReadyError) as exc_info:
            await periods.close(period.id)

        assert exc_info.value.unresolved == {"PENDING": 1, "CALCULATED": 2}
        assert (await periods.get_period(period.id)).status == "PROCESSING"

    async def test_close_with_resolved_ledgers(self, periods, session):
        period = await make_period(periods)
        await periods.open_processing(period.id)
        for employee_id, status in enumerate(["APPROVED", "PAID", "REJECTED", "CANCELLED"]):
            await add_ledger(session, period.id, employee_id, status)

        closed = await periods.close(period.id)

        assert closed.status == "CLOSED"

    @pytest.mark.parametrize("processing", [False, True])
    async def test_cancel_keeps_ledgers(self, periods, session, processing):
        period = await make_period(periods)
        if processing:
            await periods.open_processing(period.id)
        await add_ledger(session, period.id, 1, "CALCULATED")

        cancelled = await periods.cancel(period.id)

        assert cancelled.status == "CANCELLED"
        assert await periods.ledger_counts(period.id) == {"CALCULATED": 1}

    async def test_cancel_closed_period_refused(self, periods):
        period = await make_period(periods)
        await periods.open_processing(period.id)
        await periods.close(period.id)

        with pytest.raises(InvalidStateTransition):
            await periods.cancel(period.id)


class TestQueries:
    """Test listing, current period and summary."""

    async def test_list_periods_filters_by_status(self, periods):
        march = await make_period(periods)
        april = await make_period(
            periods, "April 2024", start_date=date(2024, 4, 1), end_date=date(2024, 4, 30)
        )
        await periods.open_processing(april.id)

        assert [p.id for p in await periods.list_periods()] == [april.id, march.id]
        assert [p.id for p in await periods.list_periods("OPEN")] == [march.id]

    async def test_list_periods_unknown_status(self, periods):
        with pytest.raises(ValidationError):
            await periods.list_periods("ARCHIVED")

    async def test_current_period(self, periods):
        march = await make_period(periods)
        cancelled = await make_period(
            periods, "April 2024", start_date=date(2024, 4, 1), end_date=date(2024, 4, 30)
        )
        await periods.cancel(cancelled.id)

        assert (await periods.get_current_period(date(2024, 3, 15))).id == march.id
        assert await periods.get_current_period(date(2024, 4, 15)) is None

    async def test_summary_totals_only_final_ledgers(self, periods, session):
        period = await make_period(periods)
        money = {
            "gross_pay": Decimal("1000.00"),
            "total_deductions": Decimal("100.00"),
            "total_taxes": Decimal("150.00"),
            "net_pay": Decimal("750.00"),
        }
        await add_ledger(session, period.id, 1, "CALCULATED", **money)
        await add_ledger(session, period.id, 2, "APPROVED", **money)
        await add_ledger(session, period.id, 3, "REJECTED", **money)
        await add_ledger(session, period.id, 4, "PENDING")

        summary = await periods.summarize(period.id)

        assert summary.ledger_counts == {"CALCULATED": 1, "APPROVED": 1, "REJECTED": 1, "PENDING": 1}
        assert summary.ledger_total == 4
        assert summary.total_gross == Decimal("2000.00")
        assert summary.total_deductions == Decimal("200.00")
        assert summary.total_taxes == Decimal("300.00")
        assert summary.total_net == Decimal("1500.00")

    async def test_summaries_between_returns_overlapping_periods(self, periods, session):
        february = await make_period(
            periods, "February 2024", start_date=date(2024, 2, 1), end_date=date(2024, 2, 29)
        )
        march = await make_period(periods)
        await make_period(
            periods, "May 2024", start_date=date(2024, 5, 1), end_date=date(2024, 5, 31)
        )
        await add_ledger(
            session,
            march.id,
            1,
            "CALCULATED",
            gross_pay=Decimal("500.00"),
            net_pay=Decimal("500.00"),
        )

        summaries = await periods.summaries_between(date(2024, 2, 15), date(2024, 4, 30))

        assert [s.period_id for s in summaries] == [february.id, march.id]
        assert summaries[0].ledger_total == 0
        assert summaries[1].period_name == "March 2024"
        assert summaries[1].total_net == Decimal("500.00")

    async def test_summaries_between_rejects_inverted_range(self, periods):
        with pytest.raises(ValidationError):
            await periods.summaries_between(date(2024, 4, 1), date(2024, 3, 1))


class TestUpdatePeriod:
    """Editing an OPEN period."""

    async def test_rename_and_move_pay_date(self, periods):
        period = await make_period(periods)

        updated = await periods.update_period(
            period.id, period_name="  March 2024 (revised) ", pay_date=date(2024, 4, 5)
        )

        assert updated.period_name == "March 2024 (revised)"
        assert updated.pay_date == date(2024, 4, 5)
        assert updated.start_date == date(2024, 3, 1)

    async def test_dates_validated_like_create(self, periods):
        period = await make_period(periods)

        with pytest.raises(ValidationError, match="before start date"):
            await periods.update_period(period.id, end_date=date(2024, 2, 1))
        with pytest.raises(ValidationError, match="Pay date"):
            await periods.update_period(period.id, pay_date=date(2024, 3, 30))
        with pytest.raises(ValidationError, match="Unknown period type"):
            await periods.update_period(period.id, period_type="DAILY")

    async def test_unknown_field_rejected(self, periods):
        period = await make_period(periods)

        with pytest.raises(ValidationError, match="status"):
            await periods.update_period(period.id, status="CLOSED")

    async def test_only_open_periods_editable(self, periods):
        period = await make_period(periods)
        await periods.open_processing(period.id)

        with pytest.raises(InvalidStateTransition) as exc_info:
            await periods.update_period(period.id, description="late edit")
        assert exc_info.value.current == "PROCESSING"

    async def test_dates_frozen_once_ledgers_exist(self, periods, session):
        period = await make_period(periods)
        await add_ledger(session, period.id, 1, "PENDING")

        with pytest.raises(ValidationError, match="already has ledgers"):
            await periods.update_period(period.id, end_date=date(2024, 3, 30))

        updated = await periods.update_period(period.id, description="Spring payroll")
        assert updated.description == "Spring payroll"
        assert updated.end_date == date(2024, 3, 31)


class TestDeletePeriod:
    """Physical deletion of unused periods."""

    async def test_delete_unused_period(self, periods):
        period = await make_period(periods)

        await periods.delete_period(period.id)

        with pytest.raises(NotFoundError):
            await periods.get_period(period.id)

    async def test_delete_refused_when_ledgers_reference_it(self, periods, session):
        period = await make_period(periods)
        await add_ledger(session, period.id, 1, "CANCELLED")

        with pytest.raises(ValidationError, match="referenced by 1 ledger"):
            await periods.delete_period(period.id)

        assert (await periods.get_period(period.id)).id == period.id

    async def test_delete_missing_period(self, periods):
        with pytest.raises(NotFoundError):
            await periods.delete_period(4242)
