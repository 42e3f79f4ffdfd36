from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from ..config import settings
from ..models.ledger import Charge, GenerationMarker, Member
from .audit import audit_log
from .billing_config import get_config
from .ledger_store import LedgerStore, MemberDirectory
from .periods import Clock, current_period, iter_periods

logger = logging.getLogger(__name__)


def _new_charge_id() -> str:
    return uuid.uuid4().hex


def _active_members(directory: MemberDirectory) -> List[Member]:
    return [member for member in directory.list_members() if member.active]


def generate_for_period(
    store: LedgerStore,
    directory: MemberDirectory,
    period: str,
    *,
    clock: Clock,
    actor: Optional[str] = None,
    max_workers: Optional[int] = None,
) -> int:
    """Create the missing charges of ``period`` and return how many were created.

    The directory is read in full before anything is written, so an unreachable
    directory aborts the period with ``Unavailable`` and no partial charge set.
    Each create is conditional on ``(period, member_id)``; re-running the same
    period creates nothing.
    """
    config = get_config(store)
    members = _active_members(directory)
    now = clock()

    def _create(member: Member) -> bool:
        charge = Charge.new(_new_charge_id(), member.id, period, config.fee_amount, now)
        created = store.create_charge(charge)
        if not created:
            logger.debug("Charge for member %s in %s already exists", member.id, period)
        return created

    workers = max_workers or settings.generation_workers
    if workers > 1 and len(members) > 1:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="charge-gen") as pool:
            results = list(pool.map(_create, members))
    else:
        results = [_create(member) for member in members]

    created = sum(1 for result in results if result)
    marker = GenerationMarker(
        period=period,
        generated_by=actor or "system",
        generated_at=now,
        charges_created=created,
    )
    first_run = store.create_generation(marker)
    if created or first_run:
        audit_log(
            store,
            actor,
            "billing.period.generate",
            target_entity_type="Period",
            target_entity_id=period,
            after={"charges_created": created, "active_members": len(members), "fee_amount": config.fee_amount},
            timestamp=now,
        )
    logger.info("Generated %s charges for %s (%s active members)", created, period, len(members))
    return created


def generate_range(
    store: LedgerStore,
    directory: MemberDirectory,
    start_period: str,
    *,
    clock: Clock,
    actor: Optional[str] = None,
    max_workers: Optional[int] = None,
) -> int:
    """Backfill every period from ``start_period`` through the current one.

    Periods run one after another; if one fails the error propagates and the
    periods already finished stay valid.
    """
    end_period = current_period(clock)
    total = 0
    for period in iter_periods(start_period, end_period):
        total += generate_for_period(
            store, directory, period, clock=clock, actor=actor, max_workers=max_workers
        )
    logger.info("Backfill %s..%s created %s charges", start_period, end_period, total)
    return total
