from __future__ import annotations

import logging
from typing import Optional

from ..constants import CHARGE_STATUS_DELINQUENT, CHARGE_STATUS_PENDING, DELINQUENCY_SURCHARGE_KIND
from ..core.errors import NotFound, PeriodNotDue
from ..models.ledger import Adjustment, Charge, ClosureRecord, percent_of
from .audit import audit_log
from .billing_config import BillingConfig, get_config
from .ledger_store import LedgerStore
from .periods import Clock, is_past_grace
from .retries import StaleWrite, with_conditional_retry

logger = logging.getLogger(__name__)


def _needs_surcharge(charge: Charge) -> bool:
    return charge.status == CHARGE_STATUS_PENDING and not charge.has_surcharge(DELINQUENCY_SURCHARGE_KIND)


def _apply_delinquency(store: LedgerStore, charge_id: str, config: BillingConfig, clock: Clock) -> bool:
    """Mark one charge delinquent with its surcharge. Returns False if another writer got there first."""
    rule = config.delinquency_surcharge

    def _apply() -> bool:
        charge = store.get_charge(charge_id)
        if charge is None or not _needs_surcharge(charge):
            return False
        surcharges = charge.surcharges
        if rule.enabled and rule.pct_per_month > 0:
            amount = percent_of(charge.base_amount, rule.pct_per_month)
            surcharges = surcharges + (Adjustment(DELINQUENCY_SURCHARGE_KIND, amount),)
        updated = charge.revise(updated_at=clock(), status=CHARGE_STATUS_DELINQUENT, surcharges=surcharges)
        if not store.update_charge(updated, expected_version=charge.version):
            raise StaleWrite(charge_id)
        return True

    return with_conditional_retry(_apply, f"charge {charge_id}")


def close_period(store: LedgerStore, period: str, actor: Optional[str], *, clock: Clock) -> ClosureRecord:
    """Close ``period``: surcharge its unpaid charges once, then record the closure.

    Closing an already-closed period returns the stored record untouched.
    Surcharges go first so an interrupted close can simply be run again.
    """
    existing = store.get_closure(period)
    if existing is not None:
        logger.info("Period %s already closed by %s", period, existing.closed_by)
        return existing

    config = get_config(store)
    now = clock()
    grace_day = config.delinquency_surcharge.grace_day_of_month
    if not is_past_grace(period, now.date(), grace_day):
        raise PeriodNotDue(f"Period {period} cannot be closed before day {grace_day} of the month.")

    surcharged = 0
    for charge in store.snapshot_charges(period=period):
        if not _needs_surcharge(charge):
            continue
        if _apply_delinquency(store, charge.id, config, clock):
            surcharged += 1

    record = ClosureRecord(period=period, closed_by=actor or "system", closed_at=now, charges_surcharged=surcharged)
    if not store.create_closure(record):
        stored = store.get_closure(period)
        logger.info("Period %s was closed concurrently; keeping the first closure", period)
        return stored or record

    audit_log(
        store,
        actor,
        "billing.period.close",
        target_entity_type="Period",
        target_entity_id=period,
        after={"charges_surcharged": surcharged, "grace_day_of_month": grace_day},
        timestamp=now,
    )
    logger.info("Closed period %s: %s charges marked delinquent", period, surcharged)
    return record


def get_closure(store: LedgerStore, period: str) -> ClosureRecord:
    record = store.get_closure(period)
    if record is None:
        raise NotFound(f"Period {period} has not been closed.")
    return record
