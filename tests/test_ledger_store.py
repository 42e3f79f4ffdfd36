import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from duesledger.core.errors import Unavailable
from duesledger.models.ledger import (
    Adjustment,
    AuditEntry,
    Charge,
    ClosureRecord,
    GenerationMarker,
    PaymentRecord,
)
from duesledger.models.models import AuditLog
from duesledger.services.ledger_store import SqlLedgerStore

NOW = datetime(2025, 3, 1, 15, 0, tzinfo=timezone.utc)


def _charge(charge_id="c-1", member_id="A", period="2025-03"):
    return Charge.new(charge_id, member_id, period, Decimal("50"), NOW)


def test_charge_round_trip(sql_store):
    assert sql_store.create_charge(_charge()) is True

    stored = sql_store.get_charge("c-1")

    assert stored == _charge()
    assert stored.created_at.tzinfo is not None
    assert sql_store.find_charge("2025-03", "A") == stored
    assert sql_store.get_charge("missing") is None


def test_second_charge_for_same_member_and_period_is_refused(sql_store):
    assert sql_store.create_charge(_charge("c-1")) is True
    assert sql_store.create_charge(_charge("c-2")) is False

    assert [charge.id for charge in sql_store.snapshot_charges()] == ["c-1"]


def test_update_requires_the_expected_version(sql_store):
    original = _charge()
    sql_store.create_charge(original)
    surcharged = original.revise(
        updated_at=NOW,
        status="DELINQUENT",
        surcharges=(Adjustment("delinquency", Decimal("2.50")),),
    )

    assert sql_store.update_charge(surcharged, expected_version=1) is True
    assert sql_store.update_charge(surcharged.revise(updated_at=NOW, amount_paid=Decimal("10")), 1) is False

    stored = sql_store.get_charge(original.id)
    assert stored.version == 2
    assert stored.status == "DELINQUENT"
    assert stored.surcharges == (Adjustment("delinquency", Decimal("2.50")),)
    assert stored.total_amount == Decimal("52.50")
    assert stored.amount_paid == Decimal("0.00")


def test_snapshot_filters(sql_store):
    for index, period in enumerate(["2025-01", "2025-02", "2025-03"]):
        sql_store.create_charge(_charge(f"a-{index}", "A", period))
        sql_store.create_charge(_charge(f"b-{index}", "B", period))

    assert len(sql_store.snapshot_charges(period="2025-02")) == 2
    assert [charge.period for charge in sql_store.snapshot_charges(member_id="B", start_period="2025-02")] == [
        "2025-02",
        "2025-03",
    ]
    assert [charge.id for charge in sql_store.snapshot_charges(end_period="2025-01")] == ["a-0", "b-0"]


def test_closure_and_generation_are_written_once(sql_store):
    closure = ClosureRecord("2025-03", "treasurer", NOW, charges_surcharged=2)
    marker = GenerationMarker("2025-03", "scheduler", NOW, charges_created=3)

    assert sql_store.create_closure(closure) is True
    assert sql_store.create_closure(ClosureRecord("2025-03", "other", NOW)) is False
    assert sql_store.get_closure("2025-03") == closure
    assert sql_store.create_generation(marker) is True
    assert sql_store.create_generation(GenerationMarker("2025-03", "other", NOW)) is False
    assert sql_store.get_generation("2025-03") == marker
    assert sql_store.get_closure("2025-04") is None


def _receipt(payment_id="p-1", charge_id="c-1", applied="50.00"):
    return PaymentRecord(
        id=payment_id,
        charge_id=charge_id,
        member_id="A",
        period="2025-03",
        amount_tendered=Decimal("60.00"),
        amount_applied=Decimal(applied),
        received_at=NOW,
        method="cash",
    )


def test_payments_and_audit_entries_are_persisted(sql_store, db_session):
    original = _charge()
    sql_store.create_charge(original)
    paid = original.revise(updated_at=NOW, amount_paid=Decimal("50.00"), status="PAID")

    assert sql_store.apply_payment(paid, 1, _receipt()) is True
    sql_store.add_audit(AuditEntry("treasurer", "billing.payment.record", NOW, "Charge", "c-1", {"status": "PAID"}))

    (payment,) = sql_store.list_payments("c-1")
    assert payment.amount_tendered == Decimal("60.00")
    assert payment.method == "cash"
    assert payment.received_at == NOW
    assert sql_store.get_payment("p-1") == payment
    assert sql_store.get_payment("missing") is None
    assert sql_store.get_charge("c-1").status == "PAID"
    row = db_session.query(AuditLog).one()
    assert row.actor == "treasurer"
    assert json.loads(row.after) == {"status": "PAID"}


def test_stale_payment_writes_neither_charge_nor_receipt(sql_store):
    original = _charge()
    sql_store.create_charge(original)
    partial = original.revise(updated_at=NOW, amount_paid=Decimal("20.00"))

    assert sql_store.apply_payment(partial, 2, _receipt(applied="20.00")) is False

    assert sql_store.get_charge("c-1").amount_paid == Decimal("0.00")
    assert sql_store.list_payments("c-1") == []


def test_receipt_id_is_applied_only_once(sql_store):
    original = _charge()
    sql_store.create_charge(original)
    first = original.revise(updated_at=NOW, amount_paid=Decimal("20.00"))
    assert sql_store.apply_payment(first, 1, _receipt(applied="20.00")) is True

    second = first.revise(updated_at=NOW, amount_paid=Decimal("40.00"))
    assert sql_store.apply_payment(second, 2, _receipt(applied="20.00")) is False

    stored = sql_store.get_charge("c-1")
    assert stored.amount_paid == Decimal("20.00")
    assert stored.version == 2
    assert len(sql_store.list_payments("c-1")) == 1


def test_unreachable_database_raises_unavailable_after_retries():
    calls = []

    def _broken_session():
        calls.append(1)
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    store = SqlLedgerStore(_broken_session, max_attempts=3, retry_wait_seconds=0)

    with pytest.raises(Unavailable):
        store.get_charge("c-1")
    assert len(calls) == 3


def test_members_come_from_the_directory_table(sql_directory):
    members = sql_directory.list_members()

    assert [member.id for member in members] == ["A", "B", "C", "X"]
    assert [member.active for member in members] == [True, True, True, False]
    assert members[0].display_name == "Unit A"
