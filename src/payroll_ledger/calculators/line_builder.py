"""Component line builder with deterministic hashing."""

from __future__ import annotations

import hashlib
import json
from decimal import ROUND_HALF_UP, Decimal

from payroll_ledger.calculators.types import (
    ZERO,
    ComponentLine,
    ComponentRule,
    Computed,
    Overridden,
)


class LineBuilder:
    """Builds component lines for a ledger.

    Amounts are always non-negative; the component type decides whether a
    line adds to gross, deductions or taxes.

    Rounding:
    - USD to 2 decimals, half-up, per line
    - Totals are sums of rounded lines, so net = gross - deductions - taxes
      holds exactly
    """

    OUTPUT_PRECISION = Decimal("0.01")
    HUNDRED = Decimal("100")

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return amount.quantize(LineBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def resolve_amount(rule: ComponentRule, basis: Decimal) -> Decimal:
        """Resolve a rule to an amount against the given basis."""
        if rule.percentage is not None:
            return LineBuilder.round_to_cents(rule.percentage * basis / LineBuilder.HUNDRED)
        return LineBuilder.round_to_cents(rule.amount)

    @staticmethod
    def create_line(rule: ComponentRule, basis: Decimal) -> ComponentLine:
        """Evaluate a rule against the running basis."""
        amount = LineBuilder.resolve_amount(rule, basis)
        is_percentage = rule.percentage is not None
        return ComponentLine(
            component_id=rule.component_id,
            component_type=rule.component_type,
            configured_amount=LineBuilder.round_to_cents(ZERO if is_percentage else rule.amount),
            percentage_applied=rule.percentage if is_percentage else None,
            calculated_amount=amount,
            value=Computed(amount),
            is_mandatory=rule.is_mandatory,
            basis=basis if is_percentage else None,
        )

    @staticmethod
    def override_line(line: ComponentLine, amount: Decimal, reason: str) -> ComponentLine:
        """Return a copy of the line carrying a human override."""
        return ComponentLine(
            component_id=line.component_id,
            component_type=line.component_type,
            configured_amount=line.configured_amount,
            percentage_applied=line.percentage_applied,
            calculated_amount=line.calculated_amount,
            value=Overridden(LineBuilder.round_to_cents(amount), reason),
            is_mandatory=line.is_mandatory,
            basis=line.basis,
        )

    @staticmethod
    def compute_breakdown_hash(lines: list[ComponentLine]) -> str:
        """Compute a deterministic fingerprint of a component breakdown."""
        canonical = [line.to_canonical_dict() for line in lines]
        json_str = json.dumps(canonical, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]
