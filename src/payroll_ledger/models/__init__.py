"""ORM models for the payroll ledger."""

from payroll_ledger.models.base import Base, TimestampMixin, UpdatedAtMixin, utcnow
from payroll_ledger.models.payroll import (
    AuditImmutableError,
    PayrollAudit,
    PayrollLedger,
    PayrollLedgerComponent,
    PayrollPeriod,
    SalaryComponent,
)

__all__ = [
    "AuditImmutableError",
    "Base",
    "PayrollAudit",
    "PayrollLedger",
    "PayrollLedgerComponent",
    "PayrollPeriod",
    "SalaryComponent",
    "TimestampMixin",
    "UpdatedAtMixin",
    "utcnow",
]
