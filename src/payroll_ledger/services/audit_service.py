"""Append-only audit trail for ledger mutations."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.exceptions import ValidationError
from payroll_ledger.models import PayrollAudit, PayrollLedger
from payroll_ledger.services.state_machine import AuditAction

logger = logging.getLogger(__name__)

# Ledger columns captured in change snapshots
SNAPSHOT_FIELDS = (
    "status",
    "base_salary",
    "gross_pay",
    "total_deductions",
    "total_taxes",
    "net_pay",
    "overtime_hours",
    "overtime_pay",
    "bonus_amount",
    "payment_method",
    "pay_date",
    "payment_reference",
    "notes",
    "approved_by",
    "approved_at",
    "paid_by",
    "paid_at",
)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def snapshot_ledger(ledger: PayrollLedger) -> dict[str, Any]:
    """Capture the audited fields of a ledger."""
    return {name: _jsonable(getattr(ledger, name)) for name in SNAPSHOT_FIELDS}


def diff_snapshots(before: dict[str, Any], after: dict[str, Any]) -> dict[str, Any]:
    """Return {field: {"old": x, "new": y}} for fields that changed."""
    changes: dict[str, Any] = {}
    for key in sorted(set(before) | set(after)):
        old, new = before.get(key), after.get(key)
        if old != new:
            changes[key] = {"old": old, "new": new}
    return changes


class AuditTrail:
    """Records and reads the immutable ledger audit log.

    Rows are added to the caller's session and flushed immediately, so a
    failing audit insert aborts the transaction that carries the ledger
    change. There is no update or delete path.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        ledger_id: int,
        action: AuditAction,
        old_status: str | None,
        new_status: str | None,
        changes: dict[str, Any] | None,
        actor_id: int,
        reason: str | None = None,
    ) -> PayrollAudit:
        """Append one audit row for a ledger mutation."""
        if actor_id is None:
            raise ValidationError("Audit records require the acting user")

        entry = PayrollAudit(
            payroll_ledger_id=ledger_id,
            action=_jsonable(action),
            old_status=_jsonable(old_status),
            new_status=_jsonable(new_status),
            changes=json.dumps(changes, sort_keys=True, default=str) if changes else None,
            reason=reason,
            performed_by=actor_id,
        )
        self.session.add(entry)
        await self.session.flush()

        logger.info(
            "Audit %s ledger=%s %s->%s by user=%s",
            entry.action,
            ledger_id,
            entry.old_status,
            entry.new_status,
            actor_id,
        )
        return entry

    async def history(self, ledger_id: int) -> list[PayrollAudit]:
        """Return the ordered append log for a ledger."""
        result = await self.session.execute(
            select(PayrollAudit)
            .where(PayrollAudit.payroll_ledger_id == ledger_id)
            .order_by(PayrollAudit.created_at, PayrollAudit.id)
        )
        return list(result.scalars().all())

    @staticmethod
    def decode_changes(entry: PayrollAudit) -> dict[str, Any]:
        """Parse the serialized change snapshot of an audit row."""
        return json.loads(entry.changes) if entry.changes else {}
