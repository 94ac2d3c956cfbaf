"""Unit tests for PayrollEngine.

The engine is pure, so these tests need no database.
"""

from datetime import date
from decimal import Decimal

import pytest

from payroll_ledger.calculators.engine import PayrollEngine
from payroll_ledger.calculators.line_builder import LineBuilder
from payroll_ledger.calculators.types import (
    ComponentRule,
    ComponentType,
    Computed,
    Overridden,
    PayBasis,
    PayType,
    PeriodType,
)
from payroll_ledger.exceptions import CalculationError, ValidationError


def salaried(
    salary: str = "5000.00",
    period_type: PeriodType = PeriodType.MONTHLY,
    start: date = date(2024, 1, 1),
    end: date = date(2024, 1, 31),
    overtime_hours: str = "0",
    bonus: str = "0",
) -> PayBasis:
    return PayBasis(
        pay_type=PayType.SALARIED,
        period_type=period_type,
        period_start=start,
        period_end=end,
        base_salary=Decimal(salary),
        overtime_hours=Decimal(overtime_hours),
        bonus_amount=Decimal(bonus),
    )


def hourly(rate: str = "20.00", regular: str = "160", overtime: str = "10") -> PayBasis:
    return PayBasis(
        pay_type=PayType.HOURLY,
        period_type=PeriodType.MONTHLY,
        period_start=date(2024, 1, 1),
        period_end=date(2024, 1, 31),
        hourly_rate=Decimal(rate),
        regular_hours=Decimal(regular),
        overtime_hours=Decimal(overtime),
    )


def standard_rules() -> list[ComponentRule]:
    return [
        ComponentRule(
            component_id=1,
            name="HRA",
            component_type=ComponentType.EARNING,
            percentage=Decimal("10"),
            is_taxable=True,
            calculation_order=1,
        ),
        ComponentRule(
            component_id=2,
            name="Income Tax",
            component_type=ComponentType.TAX,
            percentage=Decimal("15"),
            calculation_order=2,
        ),
        ComponentRule(
            component_id=3,
            name="Health Insurance",
            component_type=ComponentType.DEDUCTION,
            amount=Decimal("50.00"),
            calculation_order=3,
        ),
    ]


@pytest.fixture
def engine(settings) -> PayrollEngine:
    return PayrollEngine(settings)


class TestEndToEndFigures:
    """Worked examples from the payroll rules."""

    def test_salaried_with_standard_components(self, engine):
        result = engine.calculate(salaried(), standard_rules())

        assert result.base.base_salary == Decimal("5000.00")
        assert result.gross_pay == Decimal("5500.00")
        assert result.total_taxes == Decimal("825.00")
        assert result.total_deductions == Decimal("50.00")
        assert result.net_pay == Decimal("4625.00")
        assert [line.effective_amount for line in result.lines] == [
            Decimal("500.00"),
            Decimal("825.00"),
            Decimal("50.00"),
        ]

    def test_hourly_with_overtime_and_no_components(self, engine):
        result = engine.calculate(hourly(), [])

        assert result.base.base_salary == Decimal("3200.00")
        assert result.base.overtime_pay == Decimal("300.00")
        assert result.gross_pay == Decimal("3500.00")
        assert result.net_pay == Decimal("3500.00")
        assert result.lines == []


class TestBasePay:
    """Test base pay and proration."""

    @pytest.mark.parametrize(
        "period_type,start,end,expected",
        [
            (PeriodType.MONTHLY, date(2024, 1, 1), date(2024, 1, 31), "5000.00"),
            (PeriodType.BI_WEEKLY, date(2024, 1, 1), date(2024, 1, 14), "2307.69"),
            (PeriodType.WEEKLY, date(2024, 1, 1), date(2024, 1, 7), "1153.85"),
            (PeriodType.CUSTOM, date(2024, 1, 1), date(2024, 1, 15), "2465.75"),
        ],
    )
    def test_salary_proration(self, engine, period_type, start, end, expected):
        base = engine.determine_base_pay(salaried(period_type=period_type, start=start, end=end))
        assert base.base_salary == Decimal(expected)

    def test_salaried_overtime_uses_standard_hours(self, engine):
        # 5000 / 160 = 31.25 per hour, x 1.5 x 10 hours
        base = engine.determine_base_pay(salaried(overtime_hours="10"))
        assert base.overtime_pay == Decimal("468.75")
        assert base.total == Decimal("5468.75")

    def test_bonus_is_added_to_gross(self, engine):
        result = engine.calculate(salaried(bonus="250.00"), [])
        assert result.base.bonus_amount == Decimal("250.00")
        assert result.gross_pay == Decimal("5250.00")

    def test_missing_hourly_rate_is_calculation_error(self, engine):
        basis = PayBasis(
            pay_type=PayType.HOURLY,
            period_type=PeriodType.MONTHLY,
            period_start=date(2024, 1, 1),
            period_end=date(2024, 1, 31),
            regular_hours=Decimal("160"),
        )
        with pytest.raises(CalculationError):
            engine.calculate(basis, [])

    def test_missing_salary_is_calculation_error(self, engine):
        basis = PayBasis(
            pay_type=PayType.SALARIED,
            period_type=PeriodType.MONTHLY,
            period_start=date(2024, 1, 1),
            period_end=date(2024, 1, 31),
        )
        with pytest.raises(CalculationError):
            engine.calculate(basis, [])

    def test_negative_hours_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.calculate(hourly(regular="-1"), [])


class TestComponentEvaluation:
    """Test ordering and basis selection."""

    def test_ties_broken_by_component_id(self, engine):
        rules = [
            ComponentRule(
                component_id=5,
                name="Allowance",
                component_type=ComponentType.EARNING,
                amount=Decimal("100.00"),
                calculation_order=1,
            ),
            ComponentRule(
                component_id=3,
                name="Pension",
                component_type=ComponentType.DEDUCTION,
                percentage=Decimal("10"),
                calculation_order=1,
            ),
        ]
        result = engine.calculate(salaried(salary="1000.00"), rules)

        assert [line.component_id for line in result.lines] == [3, 5]
        # Pension sees gross before the allowance
        assert result.total_deductions == Decimal("100.00")
        assert result.gross_pay == Decimal("1100.00")

    def test_later_components_see_earlier_earnings(self, engine):
        rules = [
            ComponentRule(
                component_id=1,
                name="Tax",
                component_type=ComponentType.TAX,
                percentage=Decimal("10"),
                calculation_order=1,
            ),
            ComponentRule(
                component_id=2,
                name="Allowance",
                component_type=ComponentType.EARNING,
                amount=Decimal("1000.00"),
                is_taxable=True,
                calculation_order=2,
            ),
        ]
        result = engine.calculate(salaried(), rules)

        assert result.total_taxes == Decimal("500.00")
        assert result.gross_pay == Decimal("6000.00")

    def test_non_taxable_earning_excluded_from_tax_basis(self, engine):
        rules = [
            ComponentRule(
                component_id=1,
                name="Meal Allowance",
                component_type=ComponentType.EARNING,
                amount=Decimal("1000.00"),
                is_taxable=False,
                calculation_order=1,
            ),
            ComponentRule(
                component_id=2,
                name="Tax",
                component_type=ComponentType.TAX,
                percentage=Decimal("10"),
                calculation_order=2,
            ),
        ]
        result = engine.calculate(salaried(), rules)

        assert result.gross_pay == Decimal("6000.00")
        assert result.total_taxes == Decimal("500.00")
        assert result.lines[1].basis == Decimal("5000.00")

    def test_percentage_rounds_half_up(self, engine):
        rules = [
            ComponentRule(
                component_id=1,
                name="Levy",
                component_type=ComponentType.DEDUCTION,
                percentage=Decimal("0.5"),
            )
        ]
        # 0.5% of 1000.01 = 5.00005
        result = engine.calculate(salaried(salary="1000.01"), rules)
        assert result.total_deductions == Decimal("5.00")

        result = engine.calculate(salaried(salary="1001.00"), rules)
        # 0.5% of 1001.00 = 5.005
        assert result.total_deductions == Decimal("5.01")

    def test_negative_net_rejected(self, engine):
        rules = [
            ComponentRule(
                component_id=1,
                name="Loan Repayment",
                component_type=ComponentType.DEDUCTION,
                amount=Decimal("6000.00"),
            )
        ]
        with pytest.raises(CalculationError, match="Negative net pay"):
            engine.calculate(salaried(), rules)

    def test_repeated_runs_are_identical(self, engine):
        first = engine.calculate(salaried(), standard_rules())
        second = engine.calculate(salaried(), list(reversed(standard_rules())))

        assert first.totals == second.totals
        assert LineBuilder.compute_breakdown_hash(first.lines) == LineBuilder.compute_breakdown_hash(
            second.lines
        )


class TestRederiveTotals:
    """Test totals after a human override."""

    def test_override_replaces_line_without_cascade(self, engine):
        result = engine.calculate(salaried(), standard_rules())
        lines = [
            LineBuilder.override_line(line, Decimal("800.00"), "Treaty relief")
            if line.component_type == ComponentType.TAX
            else line
            for line in result.lines
        ]

        totals = engine.rederive_totals(result.base, lines)

        assert totals.gross_pay == Decimal("5500.00")
        assert totals.total_taxes == Decimal("800.00")
        assert totals.net_pay == Decimal("4650.00")

    def test_overriding_earning_does_not_recompute_percentages(self, engine):
        result = engine.calculate(salaried(), standard_rules())
        lines = [
            LineBuilder.override_line(line, Decimal("0.00"), "Not eligible")
            if line.component_id == 1
            else line
            for line in result.lines
        ]

        totals = engine.rederive_totals(result.base, lines)

        assert totals.gross_pay == Decimal("5000.00")
        # Tax line keeps its computed value
        assert totals.total_taxes == Decimal("825.00")
        assert totals.net_pay == Decimal("4125.00")

    def test_override_leading_to_negative_net_rejected(self, engine):
        result = engine.calculate(salaried(), standard_rules())
        lines = [
            LineBuilder.override_line(line, Decimal("9000.00"), "Garnishment")
            if line.component_type == ComponentType.DEDUCTION
            else line
            for line in result.lines
        ]
        with pytest.raises(CalculationError):
            engine.rederive_totals(result.base, lines)


class TestLineValues:
    """Test the computed/overridden line variant."""

    def test_computed_line(self):
        rule = standard_rules()[2]
        line = LineBuilder.create_line(rule, Decimal("5500.00"))

        assert line.value == Computed(Decimal("50.00"))
        assert line.is_override is False
        assert line.configured_amount == Decimal("50.00")
        assert line.percentage_applied is None

    def test_overridden_line_keeps_calculated_amount(self):
        rule = standard_rules()[1]
        line = LineBuilder.create_line(rule, Decimal("5500.00"))
        overridden = LineBuilder.override_line(line, Decimal("700"), "Correction")

        assert overridden.value == Overridden(Decimal("700.00"), "Correction")
        assert overridden.is_override is True
        assert overridden.calculated_amount == Decimal("825.00")
        assert overridden.effective_amount == Decimal("700.00")
        assert overridden.to_canonical_dict()["override_reason"] == "Correction"
