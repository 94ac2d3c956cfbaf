"""Payroll calculation engine.

The engine is pure: it takes a pay basis and a list of component rules and
produces totals plus a per-component breakdown. Persistence lives in
``payroll_ledger.services.calculation_service``.
"""

from __future__ import annotations

from decimal import Decimal

from payroll_ledger.calculators.line_builder import LineBuilder
from payroll_ledger.calculators.types import (
    ZERO,
    BasePay,
    CalculationResult,
    ComponentLine,
    ComponentRule,
    ComponentType,
    LedgerTotals,
    PayBasis,
    PayType,
    PeriodType,
)
from payroll_ledger.config import Settings, get_settings
from payroll_ledger.exceptions import CalculationError, ValidationError

# Monthly salary -> period salary
PRORATION_FACTORS: dict[PeriodType, Decimal] = {
    PeriodType.MONTHLY: Decimal("1"),
    PeriodType.BI_WEEKLY: Decimal("12") / Decimal("26"),
    PeriodType.WEEKLY: Decimal("12") / Decimal("52"),
}
DAYS_PER_YEAR = Decimal("365")
MONTHS_PER_YEAR = Decimal("12")


class PayrollEngine:
    """Main payroll calculation engine.

    Calculation pipeline (stable order per employee):
    1) Determine base pay (prorated salary or hours x rate, plus overtime)
    2) gross = base pay + bonus; taxable subtotal starts equal to gross
    3) Evaluate components in (calculation_order, id) order; percentage
       rules see the running gross (earnings, deductions) or the running
       taxable subtotal (taxes)
    4) net = gross - deductions - taxes; reject negative net
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def calculate(
        self, basis: PayBasis, rules: list[ComponentRule]
    ) -> CalculationResult:
        """Calculate totals and breakdown for one employee."""
        base = self.determine_base_pay(basis)

        gross = base.total + base.bonus_amount
        taxable = gross
        total_deductions = ZERO
        total_taxes = ZERO
        lines: list[ComponentLine] = []

        for rule in self.order_rules(rules):
            if rule.component_type == ComponentType.TAX:
                line = LineBuilder.create_line(rule, taxable)
                total_taxes += line.effective_amount
            elif rule.component_type == ComponentType.DEDUCTION:
                line = LineBuilder.create_line(rule, gross)
                total_deductions += line.effective_amount
            else:
                line = LineBuilder.create_line(rule, gross)
                gross += line.effective_amount
                if rule.is_taxable:
                    taxable += line.effective_amount
            lines.append(line)

        totals = LedgerTotals(
            gross_pay=gross,
            total_deductions=total_deductions,
            total_taxes=total_taxes,
        )
        self.validate_totals(totals)
        return CalculationResult(base=base, totals=totals, lines=lines)

    def rederive_totals(self, base: BasePay, lines: list[ComponentLine]) -> LedgerTotals:
        """Re-sum totals from a mixed set of computed and overridden lines.

        Used after a human override: the cascade is not re-run, each line's
        effective amount is taken as-is.
        """
        gross = base.total + base.bonus_amount
        total_deductions = ZERO
        total_taxes = ZERO
        for line in lines:
            if line.component_type == ComponentType.EARNING:
                gross += line.effective_amount
            elif line.component_type == ComponentType.DEDUCTION:
                total_deductions += line.effective_amount
            else:
                total_taxes += line.effective_amount

        totals = LedgerTotals(
            gross_pay=gross,
            total_deductions=total_deductions,
            total_taxes=total_taxes,
        )
        self.validate_totals(totals)
        return totals

    def determine_base_pay(self, basis: PayBasis) -> BasePay:
        """Resolve base salary and overtime pay for the period."""
        for label, value in (
            ("regular hours", basis.regular_hours),
            ("overtime hours", basis.overtime_hours),
            ("bonus amount", basis.bonus_amount),
        ):
            if value < 0:
                raise ValidationError(f"{label.capitalize()} cannot be negative")

        multiplier = self.settings.overtime_multiplier

        if basis.pay_type == PayType.HOURLY:
            if basis.hourly_rate is None:
                raise CalculationError("Hourly employee has no hourly rate")
            if basis.hourly_rate < 0:
                raise ValidationError("Hourly rate cannot be negative")
            base_salary = LineBuilder.round_to_cents(basis.hourly_rate * basis.regular_hours)
            overtime_pay = LineBuilder.round_to_cents(
                basis.hourly_rate * multiplier * basis.overtime_hours
            )
        else:
            if basis.base_salary is None:
                raise CalculationError("Salaried employee has no base salary")
            if basis.base_salary < 0:
                raise ValidationError("Base salary cannot be negative")
            base_salary = LineBuilder.round_to_cents(
                basis.base_salary * self.proration_factor(basis)
            )
            overtime_pay = ZERO
            if basis.overtime_hours > 0:
                hourly_rate = LineBuilder.round_to_cents(
                    basis.base_salary / self.settings.standard_monthly_hours
                )
                overtime_pay = LineBuilder.round_to_cents(
                    basis.overtime_hours * hourly_rate * multiplier
                )

        return BasePay(
            base_salary=base_salary,
            overtime_hours=basis.overtime_hours,
            overtime_pay=overtime_pay,
            bonus_amount=LineBuilder.round_to_cents(basis.bonus_amount),
        )

    @staticmethod
    def proration_factor(basis: PayBasis) -> Decimal:
        """Fraction of a monthly salary earned in the period."""
        if basis.period_type in PRORATION_FACTORS:
            return PRORATION_FACTORS[basis.period_type]
        days = Decimal((basis.period_end - basis.period_start).days + 1)
        return MONTHS_PER_YEAR * days / DAYS_PER_YEAR

    @staticmethod
    def order_rules(rules: list[ComponentRule]) -> list[ComponentRule]:
        """Ascending calculation order, ties broken by component id."""
        return sorted(rules, key=lambda r: r.sort_key)

    @staticmethod
    def validate_totals(totals: LedgerTotals) -> None:
        if totals.net_pay < 0:
            raise CalculationError(
                f"Negative net pay: {totals.net_pay} "
                f"(gross {totals.gross_pay}, deductions {totals.total_deductions}, "
                f"taxes {totals.total_taxes})"
            )
