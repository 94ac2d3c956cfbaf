"""Pytest fixtures for payroll ledger tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_ledger.calculators.types import ComponentType, PayType
from payroll_ledger.config import Settings
from payroll_ledger.database import create_schema, create_session_factory, get_engine
from payroll_ledger.directory import EmployeePayProfile, InMemoryEmployeeDirectory, PayInputs
from payroll_ledger.models import PayrollPeriod, SalaryComponent
from payroll_ledger.services.payroll_service import PayrollService

SALARIED_ID = 101
HOURLY_ID = 102
INACTIVE_ID = 103
ACTOR_ID = 1
APPROVER_ID = 2


@pytest.fixture
def settings() -> Settings:
    """Settings for tests; one batch worker keeps SQLite writers serialized."""
    return Settings(
        database_url="sqlite+aiosqlite://",
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="DEBUG",
        overtime_multiplier=Decimal("1.5"),
        standard_monthly_hours=Decimal("160"),
        batch_max_workers=1,
        batch_retry_attempts=2,
    )


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite database, one per test."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def directory() -> InMemoryEmployeeDirectory:
    """A salaried, an hourly and an inactive employee."""
    directory = InMemoryEmployeeDirectory()
    directory.add(
        EmployeePayProfile(
            employee_id=SALARIED_ID,
            pay_type=PayType.SALARIED,
            base_salary=Decimal("5000.00"),
        )
    )
    directory.add(
        EmployeePayProfile(
            employee_id=HOURLY_ID,
            pay_type=PayType.HOURLY,
            hourly_rate=Decimal("20.00"),
        )
    )
    directory.add(
        EmployeePayProfile(
            employee_id=INACTIVE_ID,
            pay_type=PayType.SALARIED,
            base_salary=Decimal("4000.00"),
            is_active=False,
        )
    )
    return directory


@pytest.fixture
def payroll(session_factory, directory, settings) -> PayrollService:
    return PayrollService(session_factory, directory, settings)


@pytest_asyncio.fixture
async def period(payroll: PayrollService, directory: InMemoryEmployeeDirectory) -> PayrollPeriod:
    """An OPEN monthly period with hours recorded for the hourly employee."""
    period = await payroll.create_period(
        "January 2024",
        date(2024, 1, 1),
        date(2024, 1, 31),
        pay_date=date(2024, 2, 1),
    )
    directory.set_inputs(
        HOURLY_ID,
        period.id,
        PayInputs(regular_hours=Decimal("160"), overtime_hours=Decimal("10")),
    )
    return period


@pytest_asyncio.fixture
async def standard_components(payroll: PayrollService) -> list[SalaryComponent]:
    """HRA 10% (taxable earning), Income Tax 15%, Health Insurance 50.00."""
    return [
        await payroll.register_component(
            "HRA",
            ComponentType.EARNING,
            percentage=Decimal("10"),
            is_taxable=True,
            calculation_order=1,
        ),
        await payroll.register_component(
            "Income Tax",
            ComponentType.TAX,
            percentage=Decimal("15"),
            is_mandatory=True,
            calculation_order=2,
        ),
        await payroll.register_component(
            "Health Insurance",
            ComponentType.DEDUCTION,
            amount=Decimal("50.00"),
            calculation_order=3,
        ),
    ]
