"""Tests for the append-only audit trail."""

import json
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio

from payroll_ledger.exceptions import ValidationError
from payroll_ledger.models import AuditImmutableError
from payroll_ledger.services.audit_service import AuditTrail, diff_snapshots, snapshot_ledger
from payroll_ledger.services.ledger_service import LedgerService
from payroll_ledger.services.period_service import PeriodService
from payroll_ledger.services.state_machine import AuditAction
from tests.conftest import ACTOR_ID, APPROVER_ID, SALARIED_ID

pytestmark = pytest.mark.asyncio


@pytest.fixture
def audit(session) -> AuditTrail:
    return AuditTrail(session)


@pytest_asyncio.fixture
async def ledger(session):
    period = await PeriodService(session).create_period(
        "May 2024", date(2024, 5, 1), date(2024, 5, 31)
    )
    return await LedgerService(session).create_ledger(7, period.id, actor_id=1)


class TestRecord:
    """Test appending audit rows."""

    async def test_create_ledger_writes_created_row(self, audit, ledger):
        history = await audit.history(ledger.id)

        assert [entry.action for entry in history] == ["CREATED"]
        assert history[0].old_status is None
        assert history[0].new_status == "PENDING"
        assert history[0].performed_by == 1
        assert AuditTrail.decode_changes(history[0])["status"] == {"old": None, "new": "PENDING"}

    async def test_history_keeps_append_order(self, audit, ledger):
        await audit.record(ledger.id, AuditAction.UPDATED, "PENDING", "PENDING", None, 4)
        await audit.record(
            ledger.id, AuditAction.CANCELLED, "PENDING", "CANCELLED", None, 5, reason="dup"
        )

        history = await audit.history(ledger.id)

        assert [entry.action for entry in history] == ["CREATED", "UPDATED", "CANCELLED"]
        assert [entry.performed_by for entry in history] == [1, 4, 5]
        assert history[-1].reason == "dup"

    async def test_actor_is_required(self, audit, ledger):
        with pytest.raises(ValidationError, match="acting user"):
            await audit.record(ledger.id, AuditAction.UPDATED, "PENDING", "PENDING", None, None)

    async def test_changes_serialized_with_sorted_keys(self, audit, ledger):
        entry = await audit.record(
            ledger.id,
            AuditAction.UPDATED,
            "PENDING",
            "PENDING",
            {"net_pay": {"old": Decimal("1.00"), "new": Decimal("2.50")}, "notes": "x"},
            3,
        )

        assert entry.changes == json.dumps(
            {"net_pay": {"old": "1.00", "new": "2.50"}, "notes": "x"}, sort_keys=True
        )
        assert list(json.loads(entry.changes)) == ["net_pay", "notes"]

    async def test_empty_changes_stored_as_null(self, audit, ledger):
        entry = await audit.record(ledger.id, AuditAction.UPDATED, "PENDING", "PENDING", {}, 3)

        assert entry.changes is None
        assert AuditTrail.decode_changes(entry) == {}


class TestImmutability:
    """Audit rows cannot be edited or removed."""

    async def test_update_refused(self, audit, ledger, session):
        entry = (await audit.history(ledger.id))[0]
        entry.reason = "rewritten"

        with pytest.raises(AuditImmutableError):
            await session.flush()

    async def test_delete_refused(self, audit, ledger, session):
        entry = (await audit.history(ledger.id))[0]
        await session.delete(entry)

        with pytest.raises(AuditImmutableError):
            await session.flush()


class TestSnapshots:
    """Test before/after snapshots."""

    async def test_snapshot_serializes_money_as_strings(self, ledger):
        snapshot = snapshot_ledger(ledger)

        assert snapshot["status"] == "PENDING"
        assert snapshot["gross_pay"] == "0.00"
        assert snapshot["approved_at"] is None

    async def test_diff_reports_only_changed_fields(self):
        before = {"status": "CALCULATED", "net_pay": "100.00", "notes": None}
        after = {"status": "APPROVED", "net_pay": "100.00", "notes": None}

        assert diff_snapshots(before, after) == {
            "status": {"old": "CALCULATED", "new": "APPROVED"}
        }


class TestAtomicity:
    """A failed audit insert takes the ledger change down with it."""

    async def test_failed_audit_keeps_ledger_unchanged(self, payroll, period, monkeypatch):
        ledger = await payroll.calculate_ledger(SALARIED_ID, period.id, ACTOR_ID)

        async def broken_record(self, *args, **kwargs):
            raise RuntimeError("audit table unavailable")

        monkeypatch.setattr(AuditTrail, "record", broken_record)
        with pytest.raises(RuntimeError, match="audit table unavailable"):
            await payroll.approve_ledger(ledger.id, APPROVER_ID)
        monkeypatch.undo()

        reloaded = await payroll.get_ledger(ledger.id)
        assert reloaded.status == "CALCULATED"
        assert reloaded.approved_by is None
        assert reloaded.approved_at is None
        history = await payroll.get_audit_history(ledger.id)
        assert [entry.action for entry in history] == ["CREATED", "CALCULATED"]

    async def test_failed_audit_leaves_no_ledger_on_create(self, payroll, period, monkeypatch):
        async def broken_record(self, *args, **kwargs):
            raise RuntimeError("audit table unavailable")

        monkeypatch.setattr(AuditTrail, "record", broken_record)
        with pytest.raises(RuntimeError):
            await payroll.create_ledger(SALARIED_ID, period.id, ACTOR_ID)
        monkeypatch.undo()

        assert await payroll.list_ledgers(period.id) == []
