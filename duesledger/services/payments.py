from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Tuple

from ..constants import CHARGE_STATUS_PAID, CHARGE_STATUS_PENDING, EARLY_PAYMENT_DISCOUNT_KIND
from ..core.errors import AlreadyPaid, Conflict, InvalidAmount, NotFound
from ..models.ledger import ZERO, Adjustment, Charge, PaymentMetadata, PaymentRecord, percent_of, to_money
from .audit import audit_log
from .billing_config import BillingConfig, get_config
from .ledger_store import LedgerStore
from .periods import Clock, period_of
from .retries import StaleWrite, with_conditional_retry

logger = logging.getLogger(__name__)


def _parse_amount(amount: Any) -> Decimal:
    try:
        value = to_money(amount)
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmount(f"Invalid payment amount {amount!r}.") from exc
    if not value.is_finite() or value <= 0:
        raise InvalidAmount()
    return value


def _early_payment_discount(
    charge: Charge, config: BillingConfig, received_at: datetime, amount: Decimal
) -> Decimal:
    """Discount earned by settling an untouched pending charge inside the early window."""
    rule = config.early_payment_discount
    if not rule.enabled or rule.pct <= 0:
        return ZERO
    if charge.status != CHARGE_STATUS_PENDING or charge.amount_paid > 0:
        return ZERO
    if charge.has_discount(EARLY_PAYMENT_DISCOUNT_KIND):
        return ZERO
    if period_of(received_at) != charge.period or received_at.day not in rule.valid_days:
        return ZERO
    discount = percent_of(charge.base_amount, rule.pct)
    if amount < charge.remaining_balance - discount:
        return ZERO
    return discount


def _local_time(received_at: Optional[datetime], now: datetime) -> datetime:
    """Express the receipt time in the ledger's timezone so day checks use local dates."""
    if received_at is None:
        return now
    if received_at.tzinfo is None:
        return received_at.replace(tzinfo=now.tzinfo)
    return received_at.astimezone(now.tzinfo)


def record_payment(
    store: LedgerStore,
    charge_id: str,
    amount: Any,
    metadata: Optional[PaymentMetadata] = None,
    *,
    clock: Clock,
) -> Charge:
    """Apply a payment to a charge and return the updated charge.

    Payments accumulate: ``amount_paid`` grows by the amount applied, which is
    capped at the outstanding balance so the balance never goes negative. The
    charge becomes PAID once nothing is left to pay.

    The charge and its receipt are written in one conditional step. Resending a
    payment with the same ``payment_id`` returns the charge as it stands without
    applying the amount again.
    """
    tendered = _parse_amount(amount)
    metadata = metadata or PaymentMetadata()
    now = clock()
    received_at = _local_time(metadata.received_at, now)
    payment_id = metadata.payment_id or uuid.uuid4().hex
    config = get_config(store)

    def _apply() -> Tuple[Charge, Optional[PaymentRecord]]:
        existing = store.get_payment(payment_id)
        if existing is not None:
            if existing.charge_id != charge_id:
                raise Conflict(f"Payment {payment_id} was recorded against charge {existing.charge_id}.")
            return store.get_charge(charge_id), None

        charge = store.get_charge(charge_id)
        if charge is None:
            raise NotFound(f"Charge {charge_id} not found.")
        if charge.status == CHARGE_STATUS_PAID:
            raise AlreadyPaid(f"Charge {charge_id} is already paid.")

        discount = _early_payment_discount(charge, config, received_at, tendered)
        discounts = charge.discounts
        if discount > 0:
            discounts = discounts + (Adjustment(EARLY_PAYMENT_DISCOUNT_KIND, discount),)
        outstanding = charge.remaining_balance - discount
        applied = min(tendered, outstanding)
        updated = charge.revise(
            updated_at=now,
            amount_paid=charge.amount_paid + applied,
            discounts=discounts,
            status=CHARGE_STATUS_PAID if applied == outstanding else None,
        )
        record = PaymentRecord(
            id=payment_id,
            charge_id=updated.id,
            member_id=updated.member_id,
            period=updated.period,
            amount_tendered=tendered,
            amount_applied=applied,
            discount_applied=discount,
            method=metadata.method,
            reference=metadata.reference,
            notes=metadata.notes,
            recorded_by=metadata.recorded_by,
            received_at=received_at,
        )
        if not store.apply_payment(updated, charge.version, record):
            raise StaleWrite(charge_id)
        return updated, record

    updated, record = with_conditional_retry(_apply, f"charge {charge_id}")

    if record is None:
        logger.info("Payment %s already recorded on charge %s", payment_id, charge_id)
        return updated

    audit_log(
        store,
        metadata.recorded_by,
        "billing.payment.record",
        target_entity_type="Charge",
        target_entity_id=updated.id,
        after={
            "payment_id": record.id,
            "amount_applied": record.amount_applied,
            "discount_applied": record.discount_applied,
            "remaining_balance": updated.remaining_balance,
            "status": updated.status,
        },
        timestamp=now,
    )
    logger.info(
        "Recorded payment %s on charge %s: applied %s, remaining %s (%s)",
        record.id,
        updated.id,
        record.amount_applied,
        updated.remaining_balance,
        updated.status,
    )
    return updated


def list_payments(store: LedgerStore, charge_id: str) -> List[PaymentRecord]:
    if store.get_charge(charge_id) is None:
        raise NotFound(f"Charge {charge_id} not found.")
    return store.list_payments(charge_id)
