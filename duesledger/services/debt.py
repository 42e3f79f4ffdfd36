from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Tuple

from ..constants import OPEN_CHARGE_STATUSES
from ..models.ledger import CENT, ZERO, Charge
from .billing_config import get_config
from .ledger_store import LedgerStore, MemberDirectory
from .periods import Clock, current_period, is_past_grace

HUNDRED = Decimal("100.00")


@dataclass(frozen=True)
class MemberSummary:
    member_id: str
    total: Decimal
    delinquent: bool
    items: Tuple[Charge, ...]


@dataclass(frozen=True)
class PortfolioOverview:
    collected: Decimal
    outstanding: Decimal
    delinquent_members: int
    collection_rate: Decimal
    active_members: int


def _open_charges(charges: Iterable[Charge]) -> List[Charge]:
    return [charge for charge in charges if charge.status in OPEN_CHARGE_STATUSES]


def _has_delinquent(charges: Iterable[Charge], clock: Clock, grace_day: int) -> bool:
    today = clock().date()
    return any(
        charge.remaining_balance > 0 and is_past_grace(charge.period, today, grace_day) for charge in charges
    )


def collection_rate(collected: Decimal, outstanding: Decimal) -> Decimal:
    """Share of billed money already collected, as a percentage with two decimals.

    The rate reads 100.00 only when nothing is outstanding and 0.00 only when
    nothing was collected; rounding never reaches either end on its own.
    """
    denominator = collected + outstanding
    if denominator <= 0:
        return ZERO
    if outstanding <= 0:
        return HUNDRED
    rate = (collected / denominator * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    if collected > 0:
        rate = max(rate, CENT)
    return min(rate, HUNDRED - CENT)


def member_summary(store: LedgerStore, member_id: str, start_period: str, *, clock: Clock) -> MemberSummary:
    """Outstanding debt of one member from ``start_period`` through the current period."""
    config = get_config(store)
    charges = store.snapshot_charges(
        member_id=member_id, start_period=start_period, end_period=current_period(clock)
    )
    open_items = _open_charges(charges)
    return MemberSummary(
        member_id=member_id,
        total=sum((charge.remaining_balance for charge in open_items), ZERO),
        delinquent=_has_delinquent(open_items, clock, config.delinquency_surcharge.grace_day_of_month),
        items=tuple(open_items),
    )


def portfolio_overview(
    store: LedgerStore, directory: MemberDirectory, start_period: str, *, clock: Clock
) -> PortfolioOverview:
    """Collection figures across every active member. Read-only snapshot."""
    config = get_config(store)
    grace_day = config.delinquency_surcharge.grace_day_of_month
    active_ids = [member.id for member in directory.list_members() if member.active]

    by_member: Dict[str, List[Charge]] = defaultdict(list)
    for charge in store.snapshot_charges(start_period=start_period, end_period=current_period(clock)):
        by_member[charge.member_id].append(charge)

    collected = ZERO
    outstanding = ZERO
    delinquent_members = 0
    for member_id in active_ids:
        charges = by_member.get(member_id, [])
        collected += sum((charge.total_amount - charge.remaining_balance for charge in charges), ZERO)
        open_items = _open_charges(charges)
        outstanding += sum((charge.remaining_balance for charge in open_items), ZERO)
        if _has_delinquent(open_items, clock, grace_day):
            delinquent_members += 1

    return PortfolioOverview(
        collected=collected,
        outstanding=outstanding,
        delinquent_members=delinquent_members,
        collection_rate=collection_rate(collected, outstanding),
        active_members=len(active_ids),
    )


def list_member_charges(store: LedgerStore, member_id: str) -> List[Charge]:
    return sorted(store.snapshot_charges(member_id=member_id), key=lambda charge: charge.period, reverse=True)
