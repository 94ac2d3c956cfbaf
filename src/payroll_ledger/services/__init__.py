"""Payroll services."""

from payroll_ledger.services.audit_service import AuditTrail
from payroll_ledger.services.calculation_service import CalculationService
from payroll_ledger.services.component_registry import ComponentRegistry
from payroll_ledger.services.ledger_service import LedgerService
from payroll_ledger.services.payroll_service import (
    BatchCalculationResult,
    LedgerResult,
    PayrollService,
)
from payroll_ledger.services.period_service import PeriodService, PeriodSummary
from payroll_ledger.services.state_machine import (
    AuditAction,
    LedgerStateMachine,
    LedgerStatus,
    PaymentMethod,
    PeriodStateMachine,
    PeriodStatus,
)

__all__ = [
    "AuditAction",
    "AuditTrail",
    "BatchCalculationResult",
    "CalculationService",
    "ComponentRegistry",
    "LedgerResult",
    "LedgerService",
    "LedgerStateMachine",
    "LedgerStatus",
    "PaymentMethod",
    "PayrollService",
    "PeriodService",
    "PeriodStateMachine",
    "PeriodStatus",
    "PeriodSummary",
]
