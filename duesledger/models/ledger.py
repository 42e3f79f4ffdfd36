from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Tuple

from ..constants import CHARGE_STATUS_PENDING, CHARGE_TRANSITIONS

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, pct: Decimal) -> Decimal:
    return to_money(amount * pct / Decimal("100"))


@dataclass(frozen=True)
class Member:
    id: str
    active: bool = True
    display_name: Optional[str] = None


@dataclass(frozen=True)
class Adjustment:
    kind: str
    amount: Decimal

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "amount": str(self.amount)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Adjustment":
        return cls(kind=data["kind"], amount=to_money(data["amount"]))


@dataclass(frozen=True)
class Charge:
    id: str
    member_id: str
    period: str
    base_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    remaining_balance: Decimal
    status: str
    created_at: datetime
    updated_at: datetime
    discounts: Tuple[Adjustment, ...] = ()
    surcharges: Tuple[Adjustment, ...] = ()
    version: int = 1

    @property
    def key(self) -> tuple[str, str]:
        return (self.period, self.member_id)

    @property
    def path(self) -> str:
        return f"ledger/charges/{self.period}/{self.member_id}/{self.id}"

    def has_discount(self, kind: str) -> bool:
        return any(item.kind == kind for item in self.discounts)

    def has_surcharge(self, kind: str) -> bool:
        return any(item.kind == kind for item in self.surcharges)

    def revise(
        self,
        *,
        updated_at: datetime,
        status: Optional[str] = None,
        amount_paid: Optional[Decimal] = None,
        discounts: Optional[Tuple[Adjustment, ...]] = None,
        surcharges: Optional[Tuple[Adjustment, ...]] = None,
    ) -> "Charge":
        """Return the next version of this charge with every derived amount recomputed."""
        discounts = self.discounts if discounts is None else discounts
        surcharges = self.surcharges if surcharges is None else surcharges
        amount_paid = to_money(self.amount_paid if amount_paid is None else amount_paid)
        total = to_money(
            self.base_amount
            - sum((item.amount for item in discounts), ZERO)
            + sum((item.amount for item in surcharges), ZERO)
        )
        if amount_paid > total:
            raise ValueError(f"Charge {self.id} would be overpaid: {amount_paid} > {total}")
        new_status = status or self.status
        if new_status != self.status and new_status not in CHARGE_TRANSITIONS[self.status]:
            raise ValueError(f"Charge {self.id} cannot move from {self.status} to {new_status}")
        return replace(
            self,
            discounts=discounts,
            surcharges=surcharges,
            total_amount=total,
            amount_paid=amount_paid,
            remaining_balance=total - amount_paid,
            status=new_status,
            updated_at=updated_at,
            version=self.version + 1,
        )

    @classmethod
    def new(cls, charge_id: str, member_id: str, period: str, base_amount: Decimal, now: datetime) -> "Charge":
        base = to_money(base_amount)
        return cls(
            id=charge_id,
            member_id=member_id,
            period=period,
            base_amount=base,
            total_amount=base,
            amount_paid=ZERO,
            remaining_balance=base,
            status=CHARGE_STATUS_PENDING,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True)
class ClosureRecord:
    period: str
    closed_by: str
    closed_at: datetime
    charges_surcharged: int = 0

    @property
    def path(self) -> str:
        return f"ledger/closures/{self.period}"


@dataclass(frozen=True)
class GenerationMarker:
    period: str
    generated_by: str
    generated_at: datetime
    charges_created: int = 0

    @property
    def path(self) -> str:
        return f"ledger/periods/{self.period}"


@dataclass(frozen=True)
class PaymentMetadata:
    method: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    recorded_by: Optional[str] = None
    received_at: Optional[datetime] = None
    # Caller-chosen receipt id; resending the same id never applies the payment twice.
    payment_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentRecord:
    id: str
    charge_id: str
    member_id: str
    period: str
    amount_tendered: Decimal
    amount_applied: Decimal
    received_at: datetime
    discount_applied: Decimal = ZERO
    method: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    recorded_by: Optional[str] = None

    @property
    def path(self) -> str:
        return f"ledger/payments/{self.id}"


@dataclass
class AuditEntry:
    actor: str
    action: str
    timestamp: datetime
    target_entity_type: Optional[str] = None
    target_entity_id: Optional[str] = None
    after: dict[str, Any] = field(default_factory=dict)
