"""Employee collaborator interface.

Employee records are owned by the HR module. The payroll core only needs the
pay profile of an employee and the per-period inputs (hours, bonus).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol, runtime_checkable

from payroll_ledger.calculators.types import ZERO, PayType
from payroll_ledger.models import PayrollPeriod


@dataclass(frozen=True)
class EmployeePayProfile:
    """What payroll reads from an employee record."""

    employee_id: int
    pay_type: PayType
    is_active: bool = True
    base_salary: Decimal | None = None  # monthly
    hourly_rate: Decimal | None = None
    department_id: int | None = None
    manager_id: int | None = None


@dataclass(frozen=True)
class PayInputs:
    """Per-period inputs for one employee."""

    regular_hours: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    bonus_amount: Decimal = ZERO


@runtime_checkable
class EmployeeDirectory(Protocol):
    """Read-only view of the employee module."""

    async def get_employee(self, employee_id: int) -> EmployeePayProfile | None:
        ...

    async def list_active_employees(self) -> list[EmployeePayProfile]:
        ...

    async def get_pay_inputs(
        self, employee_id: int, period: PayrollPeriod
    ) -> PayInputs | None:
        """Inputs recorded for the period, or None when nothing was recorded."""
        ...


@dataclass
class InMemoryEmployeeDirectory:
    """Directory backed by dictionaries, for tests and local runs."""

    employees: dict[int, EmployeePayProfile] = field(default_factory=dict)
    inputs: dict[tuple[int, int], PayInputs] = field(default_factory=dict)

    def add(self, profile: EmployeePayProfile) -> EmployeePayProfile:
        self.employees[profile.employee_id] = profile
        return profile

    def set_inputs(self, employee_id: int, period_id: int, inputs: PayInputs) -> None:
        self.inputs[(employee_id, period_id)] = inputs

    async def get_employee(self, employee_id: int) -> EmployeePayProfile | None:
        return self.employees.get(employee_id)

    async def list_active_employees(self) -> list[EmployeePayProfile]:
        return sorted(
            (e for e in self.employees.values() if e.is_active),
            key=lambda e: e.employee_id,
        )

    async def get_pay_inputs(
        self, employee_id: int, period: PayrollPeriod
    ) -> PayInputs | None:
        return self.inputs.get((employee_id, period.id))
