"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Union


class ComponentType(str, Enum):
    """Salary component line types."""

    EARNING = "EARNING"
    DEDUCTION = "DEDUCTION"
    TAX = "TAX"


class PayType(str, Enum):
    """How an employee's base pay is determined."""

    SALARIED = "SALARIED"
    HOURLY = "HOURLY"


class PeriodType(str, Enum):
    """Pay period cadence."""

    MONTHLY = "MONTHLY"
    BI_WEEKLY = "BI_WEEKLY"
    WEEKLY = "WEEKLY"
    CUSTOM = "CUSTOM"


ZERO = Decimal("0")


@dataclass(frozen=True)
class Computed:
    """Line value produced by the engine."""

    amount: Decimal


@dataclass(frozen=True)
class Overridden:
    """Line value set by a human, with the mandatory justification."""

    amount: Decimal
    reason: str


LineValue = Union[Computed, Overridden]


@dataclass(frozen=True)
class ComponentRule:
    """Snapshot of a salary component as seen by the engine."""

    component_id: int
    name: str
    component_type: ComponentType
    amount: Decimal = ZERO
    percentage: Decimal | None = None
    is_taxable: bool = False
    is_mandatory: bool = False
    calculation_order: int = 0

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.calculation_order, self.component_id)


@dataclass(frozen=True)
class PayBasis:
    """Inputs that determine base pay for one employee and one period."""

    pay_type: PayType
    period_type: PeriodType
    period_start: date
    period_end: date
    base_salary: Decimal | None = None  # monthly, SALARIED only
    hourly_rate: Decimal | None = None  # HOURLY only
    regular_hours: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    bonus_amount: Decimal = ZERO


@dataclass(frozen=True)
class BasePay:
    """Resolved base pay figures."""

    base_salary: Decimal
    overtime_hours: Decimal
    overtime_pay: Decimal
    bonus_amount: Decimal

    @property
    def total(self) -> Decimal:
        """Base pay including overtime, excluding bonus."""
        return self.base_salary + self.overtime_pay


@dataclass
class ComponentLine:
    """One evaluated component on a ledger."""

    component_id: int
    component_type: ComponentType
    configured_amount: Decimal
    percentage_applied: Decimal | None
    calculated_amount: Decimal
    value: LineValue
    is_mandatory: bool = False
    basis: Decimal | None = None

    @property
    def effective_amount(self) -> Decimal:
        return self.value.amount

    @property
    def is_override(self) -> bool:
        return isinstance(self.value, Overridden)

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for snapshots (deterministic ordering)."""
        data: dict[str, Any] = {
            "component_id": self.component_id,
            "component_type": self.component_type.value,
            "configured_amount": str(self.configured_amount),
            "percentage_applied": str(self.percentage_applied)
            if self.percentage_applied is not None
            else None,
            "calculated_amount": str(self.calculated_amount),
            "effective_amount": str(self.effective_amount),
        }
        if isinstance(self.value, Overridden):
            data["override_reason"] = self.value.reason
        return data


@dataclass
class LedgerTotals:
    """Ledger money totals."""

    gross_pay: Decimal
    total_deductions: Decimal
    total_taxes: Decimal

    @property
    def net_pay(self) -> Decimal:
        return self.gross_pay - self.total_deductions - self.total_taxes


@dataclass
class CalculationResult:
    """Result of calculating pay for one employee in one period."""

    base: BasePay
    totals: LedgerTotals
    lines: list[ComponentLine] = field(default_factory=list)

    @property
    def gross_pay(self) -> Decimal:
        return self.totals.gross_pay

    @property
    def total_deductions(self) -> Decimal:
        return self.totals.total_deductions

    @property
    def total_taxes(self) -> Decimal:
        return self.totals.total_taxes

    @property
    def net_pay(self) -> Decimal:
        return self.totals.net_pay
