"""Payroll calculation engine."""

from payroll_ledger.calculators.engine import PayrollEngine
from payroll_ledger.calculators.line_builder import LineBuilder
from payroll_ledger.calculators.types import (
    BasePay,
    CalculationResult,
    ComponentLine,
    ComponentRule,
    ComponentType,
    Computed,
    LedgerTotals,
    Overridden,
    PayBasis,
    PayType,
    PeriodType,
)

__all__ = [
    "BasePay",
    "CalculationResult",
    "ComponentLine",
    "ComponentRule",
    "ComponentType",
    "Computed",
    "LedgerTotals",
    "LineBuilder",
    "Overridden",
    "PayBasis",
    "PayType",
    "PayrollEngine",
    "PeriodType",
]
