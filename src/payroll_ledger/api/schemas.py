"""Pydantic schemas for API request/response models."""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Period schemas
# ============================================================================


class PeriodCreate(BaseModel):
    """Schema for creating a payroll period."""

    period_name: str = Field(min_length=1, max_length=100)
    start_date: date
    end_date: date
    period_type: str = "MONTHLY"
    pay_date: date | None = None
    description: str | None = None


class PeriodUpdate(BaseModel):
    """Partial update of an OPEN payroll period."""

    period_name: str | None = Field(default=None, min_length=1, max_length=100)
    start_date: date | None = None
    end_date: date | None = None
    period_type: str | None = None
    pay_date: date | None = None
    description: str | None = None


class PeriodResponse(BaseModel):
    """Schema for payroll period response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    period_name: str
    start_date: date
    end_date: date
    period_type: str
    status: str
    pay_date: date | None = None
    description: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime | None = None


class PeriodSummaryResponse(BaseModel):
    """Ledger counts and totals for a period."""

    model_config = ConfigDict(from_attributes=True)

    period_id: int
    status: str
    ledger_counts: dict[str, int]
    ledger_total: int
    total_gross: Decimal
    total_deductions: Decimal
    total_taxes: Decimal
    total_net: Decimal
    period_name: str | None = None
    start_date: date | None = None
    end_date: date | None = None


# ============================================================================
# Salary component schemas
# ============================================================================


class ComponentCreate(BaseModel):
    """Schema for registering a salary component."""

    component_name: str = Field(min_length=1, max_length=100)
    component_type: str
    amount: Decimal | None = None
    percentage: Decimal | None = None
    is_taxable: bool = False
    is_mandatory: bool = False
    calculation_order: int = 0
    description: str | None = None


class ComponentUpdate(BaseModel):
    """Partial update of a salary component."""

    component_name: str | None = None
    component_type: str | None = None
    amount: Decimal | None = None
    percentage: Decimal | None = None
    is_taxable: bool | None = None
    is_mandatory: bool | None = None
    calculation_order: int | None = None
    description: str | None = None


class ComponentResponse(BaseModel):
    """Schema for salary component response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    component_name: str
    component_type: str
    amount: Decimal
    percentage: Decimal | None = None
    is_taxable: bool
    is_mandatory: bool
    calculation_order: int
    description: str | None = None
    is_active: bool
    is_percentage: bool


# ============================================================================
# Ledger schemas
# ============================================================================


class LedgerCreate(BaseModel):
    """Schema for creating a PENDING ledger shell."""

    employee_id: int
    payroll_period_id: int
    notes: str | None = None


class CalculateRequest(BaseModel):
    """Calculate one employee's ledger."""

    employee_id: int
    payroll_period_id: int


class LedgerComponentResponse(BaseModel):
    """One breakdown line on a ledger."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    salary_component_id: int
    component_type: str
    amount: Decimal
    calculated_amount: Decimal
    percentage_applied: Decimal | None = None
    is_override: bool
    override_amount: Decimal | None = None
    override_reason: str | None = None
    effective_amount: Decimal


class LedgerResponse(BaseModel):
    """Schema for payroll ledger response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    payroll_period_id: int
    status: str
    base_salary: Decimal
    overtime_hours: Decimal
    overtime_pay: Decimal
    bonus_amount: Decimal
    gross_pay: Decimal
    total_deductions: Decimal
    total_taxes: Decimal
    net_pay: Decimal
    payment_method: str | None = None
    pay_date: date | None = None
    payment_reference: str | None = None
    notes: str | None = None
    approved_by: int | None = None
    approved_at: datetime | None = None
    paid_by: int | None = None
    paid_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None
    components: list[LedgerComponentResponse] = []


class LedgerListResponse(BaseModel):
    """Schema for listing ledgers."""

    items: list[LedgerResponse]
    total: int


class PaymentRequest(BaseModel):
    """Mark an approved ledger as paid."""

    payment_method: str
    payment_reference: str = Field(min_length=1, max_length=100)
    paid_at: datetime | None = None


class ReasonRequest(BaseModel):
    """Reject or cancel a ledger."""

    reason: str = Field(min_length=1, max_length=500)


class OverrideRequest(BaseModel):
    """Override one computed component line."""

    amount: Decimal = Field(ge=0)
    reason: str = Field(min_length=1, max_length=500)


class NotesRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=1000)


class AuditEntryResponse(BaseModel):
    """One immutable audit row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    payroll_ledger_id: int
    action: str
    old_status: str | None = None
    new_status: str | None = None
    changes: dict[str, Any] = {}
    reason: str | None = None
    performed_by: int
    created_at: datetime

    @field_validator("changes", mode="before")
    @classmethod
    def decode_changes(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value)
        return value or {}


# ============================================================================
# Batch schemas
# ============================================================================


class BatchFailure(BaseModel):
    employee_id: int
    error: str
    error_type: str


class BatchLedger(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ledger_id: int
    employee_id: int
    status: str
    gross_pay: Decimal
    total_deductions: Decimal
    total_taxes: Decimal
    net_pay: Decimal


class BatchCalculationResponse(BaseModel):
    """Outcome of a period-wide calculation run."""

    period_id: int
    successes: list[BatchLedger]
    failures: list[BatchFailure]
    total_gross: Decimal
    total_net: Decimal


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: str


# ============================================================================
# Health schemas
# ============================================================================


class HealthResponse(BaseModel):
    """Payroll store health."""

    status: str
    timestamp: datetime
    database: str
    engine_version: str
    active_periods: int | None = None
