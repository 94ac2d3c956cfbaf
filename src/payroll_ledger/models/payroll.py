"""Payroll period, salary component, ledger, and audit models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_ledger.models.base import BigIntId, Base, TimestampMixin, UpdatedAtMixin

Money = Numeric(15, 2)
Percent = Numeric(5, 2)


# ===== Pay Periods =====


class PayrollPeriod(Base, TimestampMixin, UpdatedAtMixin):
    """Administrative pay cycle that batches many ledgers."""

    __tablename__ = "payroll_periods"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    period_name: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    period_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="OPEN")
    pay_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "period_type IN ('MONTHLY', 'BI_WEEKLY', 'WEEKLY', 'CUSTOM')",
            name="chk_payroll_period_type",
        ),
        CheckConstraint(
            "status IN ('OPEN', 'PROCESSING', 'CLOSED', 'CANCELLED')",
            name="chk_payroll_period_status",
        ),
        CheckConstraint("end_date >= start_date", name="chk_payroll_period_dates"),
        CheckConstraint(
            "pay_date IS NULL OR pay_date >= end_date",
            name="chk_payroll_period_pay_date",
        ),
        Index("idx_payroll_periods_status", "status"),
        Index("idx_payroll_periods_dates", "start_date", "end_date"),
    )

    # Relationships
    ledgers: Mapped[list[PayrollLedger]] = relationship(back_populates="period")


# ===== Salary Components =====


class SalaryComponent(Base, TimestampMixin, UpdatedAtMixin):
    """Reusable earning/deduction/tax rule."""

    __tablename__ = "salary_components"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    component_name: Mapped[str] = mapped_column(String(100), nullable=False)
    component_type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    percentage: Mapped[Decimal | None] = mapped_column(Percent, nullable=True)
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_mandatory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    calculation_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("component_name", name="uk_salary_component_name"),
        CheckConstraint(
            "component_type IN ('EARNING', 'DEDUCTION', 'TAX')",
            name="chk_salary_component_type",
        ),
        CheckConstraint("amount >= 0", name="chk_salary_component_amount"),
        CheckConstraint(
            "percentage IS NULL OR (percentage >= 0 AND percentage <= 100)",
            name="chk_salary_component_percentage",
        ),
        CheckConstraint(
            "(amount > 0 AND percentage IS NULL) OR "
            "(amount = 0 AND percentage IS NOT NULL AND percentage > 0)",
            name="chk_salary_component_amount_or_percentage",
        ),
        Index("idx_salary_components_type", "component_type"),
        Index("idx_salary_components_active", "is_active"),
        Index("idx_salary_components_order", "calculation_order"),
    )

    @property
    def is_percentage(self) -> bool:
        return self.percentage is not None


# ===== Ledgers =====


class PayrollLedger(Base, TimestampMixin, UpdatedAtMixin):
    """One employee's payroll record for one period."""

    __tablename__ = "payroll_ledgers"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payroll_period_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("payroll_periods.id", ondelete="CASCADE"),
        nullable=False,
    )
    base_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    gross_pay: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    total_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    total_taxes: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    net_pay: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    overtime_hours: Mapped[Decimal] = mapped_column(
        Numeric(8, 2), nullable=False, default=Decimal("0.00")
    )
    overtime_pay: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    bonus_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    pay_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    approved_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    updated_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "employee_id", "payroll_period_id", name="uk_payroll_ledger_employee_period"
        ),
        CheckConstraint(
            "status IN ('PENDING', 'CALCULATED', 'APPROVED', 'PAID', 'REJECTED', 'CANCELLED')",
            name="chk_payroll_ledger_status",
        ),
        CheckConstraint(
            "payment_method IS NULL OR payment_method IN ('BANK_TRANSFER', 'CHECK', 'CASH', 'OTHER')",
            name="chk_payroll_ledger_payment_method",
        ),
        CheckConstraint(
            "base_salary >= 0 AND gross_pay >= 0 AND total_deductions >= 0 "
            "AND total_taxes >= 0 AND net_pay >= 0 AND overtime_hours >= 0 "
            "AND overtime_pay >= 0 AND bonus_amount >= 0",
            name="chk_payroll_ledger_non_negative",
        ),
        # SQLite evaluates this in floating point; exact NUMERIC only.
        CheckConstraint(
            "net_pay = gross_pay - total_deductions - total_taxes",
            name="chk_payroll_ledger_net_pay",
        ).ddl_if(dialect="postgresql"),
        CheckConstraint(
            "(status NOT IN ('APPROVED', 'PAID') AND approved_by IS NULL AND approved_at IS NULL) OR "
            "(status IN ('APPROVED', 'PAID') AND approved_by IS NOT NULL AND approved_at IS NOT NULL)",
            name="chk_payroll_ledger_approval",
        ),
        CheckConstraint(
            "(status != 'PAID' AND paid_by IS NULL AND paid_at IS NULL AND payment_reference IS NULL) OR "
            "(status = 'PAID' AND paid_by IS NOT NULL AND paid_at IS NOT NULL "
            "AND payment_reference IS NOT NULL)",
            name="chk_payroll_ledger_payment",
        ),
        Index("idx_payroll_ledger_employee_id", "employee_id"),
        Index("idx_payroll_ledger_period_id", "payroll_period_id"),
        Index("idx_payroll_ledger_status", "status"),
    )

    # Relationships
    period: Mapped[PayrollPeriod] = relationship(back_populates="ledgers")
    components: Mapped[list[PayrollLedgerComponent]] = relationship(
        back_populates="ledger",
        order_by="PayrollLedgerComponent.id",
    )


class PayrollLedgerComponent(Base, TimestampMixin):
    """Per-component breakdown line of a ledger.

    ``amount`` is the configured fixed amount at calculation time (0 for
    percentage rules), ``calculated_amount`` is what the engine produced.
    A human override sets ``is_override`` together with ``override_amount``
    and ``override_reason``; the engine value is kept for provenance.
    """

    __tablename__ = "payroll_ledger_components"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    payroll_ledger_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("payroll_ledgers.id", ondelete="CASCADE"),
        nullable=False,
    )
    salary_component_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("salary_components.id"),
        nullable=False,
    )
    component_type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    calculated_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    percentage_applied: Mapped[Decimal | None] = mapped_column(Percent, nullable=True)
    is_override: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    override_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    override_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "payroll_ledger_id",
            "salary_component_id",
            name="uk_payroll_component_ledger_salary",
        ),
        CheckConstraint(
            "amount >= 0 AND calculated_amount >= 0",
            name="chk_payroll_component_amounts",
        ),
        CheckConstraint(
            "percentage_applied IS NULL OR (percentage_applied >= 0 AND percentage_applied <= 100)",
            name="chk_payroll_component_percentage",
        ),
        CheckConstraint(
            "(NOT is_override AND override_amount IS NULL AND override_reason IS NULL) OR "
            "(is_override AND override_amount IS NOT NULL AND override_amount >= 0 "
            "AND override_reason IS NOT NULL)",
            name="chk_payroll_component_override",
        ),
        Index("idx_payroll_component_ledger_id", "payroll_ledger_id"),
        Index("idx_payroll_component_salary_id", "salary_component_id"),
    )

    # Relationships
    ledger: Mapped[PayrollLedger] = relationship(back_populates="components")
    salary_component: Mapped[SalaryComponent] = relationship()

    @property
    def effective_amount(self) -> Decimal:
        """Amount that counts toward the ledger totals."""
        if self.is_override and self.override_amount is not None:
            return self.override_amount
        return self.calculated_amount


# ===== Audit =====


class PayrollAudit(Base, TimestampMixin):
    """Append-only audit row for a ledger mutation."""

    __tablename__ = "payroll_audits"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    payroll_ledger_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("payroll_ledgers.id", ondelete="CASCADE"),
        nullable=False,
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    changes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    performed_by: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "action IN ('CREATED', 'CALCULATED', 'APPROVED', 'PAID', 'REJECTED', 'CANCELLED', 'UPDATED')",
            name="chk_payroll_audit_action",
        ),
        Index("idx_payroll_audit_ledger_id", "payroll_ledger_id"),
        Index("idx_payroll_audit_action", "action"),
        Index("idx_payroll_audit_created_at", "created_at"),
        Index("idx_payroll_audit_performed_by", "performed_by"),
    )


class AuditImmutableError(RuntimeError):
    """Raised when code tries to modify or delete an audit row."""


@event.listens_for(PayrollAudit, "before_update")
def _refuse_audit_update(mapper, connection, target: PayrollAudit) -> None:
    raise AuditImmutableError(f"payroll_audits row {target.id} is append-only")


@event.listens_for(PayrollAudit, "before_delete")
def _refuse_audit_delete(mapper, connection, target: PayrollAudit) -> None:
    raise AuditImmutableError(f"payroll_audits row {target.id} is append-only")
