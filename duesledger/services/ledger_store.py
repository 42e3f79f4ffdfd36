"""Storage port for the dues ledger and its two adapters.

The ledger is laid out as a key tree::

    config/fee                                   -> configuration record
    ledger/charges/{period}/{member_id}/{id}     -> Charge
    ledger/closures/{period}                     -> ClosureRecord
    ledger/periods/{period}                      -> GenerationMarker
    ledger/payments/{payment_id}                 -> PaymentRecord

Every mutation is a conditional write on a single key: charges are created
only if ``(period, member_id)`` is free, updated only if the stored version
still matches, and closures/generation markers are written once. A payment
writes the charge and its receipt in one conditional step, so a receipt exists
exactly when its amount is on the charge. The services never lock; they rely
on these primitives.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import settings
from ..constants import CONFIG_KEY
from ..core.errors import Unavailable
from ..models.ledger import (
    Adjustment,
    AuditEntry,
    Charge,
    ClosureRecord,
    GenerationMarker,
    Member,
    PaymentRecord,
    to_money,
)
from ..models.models import (
    AuditLog,
    BillingSetting,
    LedgerCharge,
    LedgerPayment,
    Member as MemberRow,
    PeriodClosure,
    PeriodGeneration,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MemberDirectory(ABC):
    @abstractmethod
    def list_members(self) -> List[Member]:
        """Return every member, active or not. Raises ``Unavailable``."""


class LedgerStore(ABC):
    @abstractmethod
    def read_config(self) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def write_config(self, record: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def get_charge(self, charge_id: str) -> Optional[Charge]:
        ...

    @abstractmethod
    def find_charge(self, period: str, member_id: str) -> Optional[Charge]:
        ...

    @abstractmethod
    def create_charge(self, charge: Charge) -> bool:
        """Create ``charge`` unless its ``(period, member_id)`` key is taken."""

    @abstractmethod
    def update_charge(self, charge: Charge, expected_version: int) -> bool:
        """Replace the stored charge only if it is still at ``expected_version``."""

    @abstractmethod
    def snapshot_charges(
        self,
        *,
        period: Optional[str] = None,
        member_id: Optional[str] = None,
        start_period: Optional[str] = None,
        end_period: Optional[str] = None,
    ) -> List[Charge]:
        ...

    @abstractmethod
    def get_closure(self, period: str) -> Optional[ClosureRecord]:
        ...

    @abstractmethod
    def create_closure(self, record: ClosureRecord) -> bool:
        ...

    @abstractmethod
    def get_generation(self, period: str) -> Optional[GenerationMarker]:
        ...

    @abstractmethod
    def create_generation(self, marker: GenerationMarker) -> bool:
        ...

    @abstractmethod
    def apply_payment(self, charge: Charge, expected_version: int, record: PaymentRecord) -> bool:
        """Store the charge and its receipt together, or neither.

        Fails (returns False) when the charge moved past ``expected_version`` or a
        receipt with the same id already exists.
        """

    @abstractmethod
    def get_payment(self, payment_id: str) -> Optional[PaymentRecord]:
        ...

    @abstractmethod
    def list_payments(self, charge_id: str) -> List[PaymentRecord]:
        ...

    @abstractmethod
    def add_audit(self, entry: AuditEntry) -> None:
        ...


def _in_range(period: str, start_period: Optional[str], end_period: Optional[str]) -> bool:
    if start_period and period < start_period:
        return False
    if end_period and period > end_period:
        return False
    return True


def _sort_charges(charges: Iterable[Charge]) -> List[Charge]:
    return sorted(charges, key=lambda charge: (charge.period, charge.member_id))


# ---------------------------------------------------------------------------
# In-memory adapter
# ---------------------------------------------------------------------------


class InMemoryMemberDirectory(MemberDirectory):
    def __init__(self, members: Sequence[Member] = ()) -> None:
        self.members: List[Member] = list(members)

    def list_members(self) -> List[Member]:
        return list(self.members)


class InMemoryLedgerStore(LedgerStore):
    """Dictionary-backed store; each primitive holds a lock so it is atomic."""

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        self._lock = threading.Lock()
        self.tree: Dict[str, Any] = {}
        # (period, member_id) -> charge id, the uniqueness arena for creation
        self.charge_index: Dict[tuple[str, str], str] = {}
        self.charge_paths: Dict[str, str] = {}
        self.audit_entries: List[AuditEntry] = []
        if config is not None:
            self.tree[CONFIG_KEY] = copy.deepcopy(config)

    def read_config(self) -> Optional[Dict[str, Any]]:
        record = self.tree.get(CONFIG_KEY)
        return copy.deepcopy(record) if record is not None else None

    def write_config(self, record: Dict[str, Any]) -> None:
        with self._lock:
            self.tree[CONFIG_KEY] = copy.deepcopy(record)

    def get_charge(self, charge_id: str) -> Optional[Charge]:
        path = self.charge_paths.get(charge_id)
        return self.tree.get(path) if path else None

    def find_charge(self, period: str, member_id: str) -> Optional[Charge]:
        charge_id = self.charge_index.get((period, member_id))
        return self.get_charge(charge_id) if charge_id else None

    def create_charge(self, charge: Charge) -> bool:
        with self._lock:
            if charge.key in self.charge_index:
                return False
            self.charge_index[charge.key] = charge.id
            self.charge_paths[charge.id] = charge.path
            self.tree[charge.path] = charge
            return True

    def update_charge(self, charge: Charge, expected_version: int) -> bool:
        with self._lock:
            path = self.charge_paths.get(charge.id)
            current = self.tree.get(path) if path else None
            if current is None or current.version != expected_version:
                return False
            self.tree[path] = charge
            return True

    def snapshot_charges(
        self,
        *,
        period: Optional[str] = None,
        member_id: Optional[str] = None,
        start_period: Optional[str] = None,
        end_period: Optional[str] = None,
    ) -> List[Charge]:
        charges = [self.tree[path] for path in list(self.charge_paths.values())]
        return _sort_charges(
            charge
            for charge in charges
            if (period is None or charge.period == period)
            and (member_id is None or charge.member_id == member_id)
            and _in_range(charge.period, start_period, end_period)
        )

    def get_closure(self, period: str) -> Optional[ClosureRecord]:
        return self.tree.get(f"ledger/closures/{period}")

    def create_closure(self, record: ClosureRecord) -> bool:
        with self._lock:
            if record.path in self.tree:
                return False
            self.tree[record.path] = record
            return True

    def get_generation(self, period: str) -> Optional[GenerationMarker]:
        return self.tree.get(f"ledger/periods/{period}")

    def create_generation(self, marker: GenerationMarker) -> bool:
        with self._lock:
            if marker.path in self.tree:
                return False
            self.tree[marker.path] = marker
            return True

    def apply_payment(self, charge: Charge, expected_version: int, record: PaymentRecord) -> bool:
        with self._lock:
            path = self.charge_paths.get(charge.id)
            current = self.tree.get(path) if path else None
            if current is None or current.version != expected_version or record.path in self.tree:
                return False
            self.tree[path] = charge
            self.tree[record.path] = record
            return True

    def get_payment(self, payment_id: str) -> Optional[PaymentRecord]:
        return self.tree.get(f"ledger/payments/{payment_id}")

    def list_payments(self, charge_id: str) -> List[PaymentRecord]:
        payments = [
            value
            for path, value in list(self.tree.items())
            if path.startswith("ledger/payments/") and value.charge_id == charge_id
        ]
        return sorted(payments, key=lambda record: record.received_at)

    def add_audit(self, entry: AuditEntry) -> None:
        with self._lock:
            self.audit_entries.append(entry)


# ---------------------------------------------------------------------------
# SQLAlchemy adapter
# ---------------------------------------------------------------------------


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back; everything is stored in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _charge_from_row(row: LedgerCharge) -> Charge:
    return Charge(
        id=row.id,
        member_id=row.member_id,
        period=row.period,
        base_amount=to_money(row.base_amount),
        discounts=tuple(Adjustment.from_dict(item) for item in row.discounts or []),
        surcharges=tuple(Adjustment.from_dict(item) for item in row.surcharges or []),
        total_amount=to_money(row.total_amount),
        amount_paid=to_money(row.amount_paid),
        remaining_balance=to_money(row.remaining_balance),
        status=row.status,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        version=row.version,
    )


def _charge_values(charge: Charge) -> Dict[str, Any]:
    return {
        "id": charge.id,
        "member_id": charge.member_id,
        "period": charge.period,
        "base_amount": charge.base_amount,
        "discounts": [item.to_dict() for item in charge.discounts],
        "surcharges": [item.to_dict() for item in charge.surcharges],
        "total_amount": charge.total_amount,
        "amount_paid": charge.amount_paid,
        "remaining_balance": charge.remaining_balance,
        "status": charge.status,
        "version": charge.version,
        "created_at": _utc(charge.created_at),
        "updated_at": _utc(charge.updated_at),
    }


def _payment_from_row(row: LedgerPayment) -> PaymentRecord:
    return PaymentRecord(
        id=row.id,
        charge_id=row.charge_id,
        member_id=row.member_id,
        period=row.period,
        amount_tendered=to_money(row.amount_tendered),
        amount_applied=to_money(row.amount_applied),
        discount_applied=to_money(row.discount_applied),
        method=row.method,
        reference=row.reference,
        notes=row.notes,
        recorded_by=row.recorded_by,
        received_at=_aware(row.received_at),
    )


class _SqlAdapter:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        max_attempts: Optional[int] = None,
        retry_wait_seconds: Optional[float] = None,
    ) -> None:
        self.session_factory = session_factory
        self.max_attempts = max_attempts or settings.store_max_attempts
        self.retry_wait_seconds = (
            settings.store_retry_wait_seconds if retry_wait_seconds is None else retry_wait_seconds
        )

    def _run(self, operation: Callable[[Session], T]) -> T:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, max=5),
            retry=retry_if_exception_type(OperationalError),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    with self.session_factory() as session:
                        return operation(session)
        except OperationalError as exc:
            logger.warning("Ledger store unreachable after %s attempts: %s", self.max_attempts, exc)
            raise Unavailable() from exc


class SqlMemberDirectory(_SqlAdapter, MemberDirectory):
    def list_members(self) -> List[Member]:
        def _list(session: Session) -> List[Member]:
            rows = session.execute(select(MemberRow).order_by(MemberRow.id)).scalars().all()
            return [Member(id=row.id, active=bool(row.is_active), display_name=row.display_name) for row in rows]

        return self._run(_list)


class SqlLedgerStore(_SqlAdapter, LedgerStore):
    def read_config(self) -> Optional[Dict[str, Any]]:
        def _read(session: Session) -> Optional[Dict[str, Any]]:
            row = session.get(BillingSetting, CONFIG_KEY)
            return copy.deepcopy(row.value) if row and row.value is not None else None

        return self._run(_read)

    def write_config(self, record: Dict[str, Any]) -> None:
        payload = json.loads(json.dumps(record, default=str))

        def _write(session: Session) -> None:
            session.merge(BillingSetting(key=CONFIG_KEY, value=payload))
            session.commit()

        self._run(_write)

    def get_charge(self, charge_id: str) -> Optional[Charge]:
        def _get(session: Session) -> Optional[Charge]:
            row = session.get(LedgerCharge, charge_id)
            return _charge_from_row(row) if row else None

        return self._run(_get)

    def find_charge(self, period: str, member_id: str) -> Optional[Charge]:
        def _find(session: Session) -> Optional[Charge]:
            row = session.execute(
                select(LedgerCharge).where(LedgerCharge.period == period, LedgerCharge.member_id == member_id)
            ).scalar_one_or_none()
            return _charge_from_row(row) if row else None

        return self._run(_find)

    def create_charge(self, charge: Charge) -> bool:
        def _create(session: Session) -> bool:
            session.add(LedgerCharge(**_charge_values(charge)))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
            return True

        return self._run(_create)

    def update_charge(self, charge: Charge, expected_version: int) -> bool:
        values = _charge_values(charge)
        values.pop("id")
        values.pop("created_at")

        def _update(session: Session) -> bool:
            result = session.execute(
                update(LedgerCharge)
                .where(LedgerCharge.id == charge.id, LedgerCharge.version == expected_version)
                .values(**values)
            )
            session.commit()
            return result.rowcount == 1

        return self._run(_update)

    def snapshot_charges(
        self,
        *,
        period: Optional[str] = None,
        member_id: Optional[str] = None,
        start_period: Optional[str] = None,
        end_period: Optional[str] = None,
    ) -> List[Charge]:
        def _snapshot(session: Session) -> List[Charge]:
            query = select(LedgerCharge)
            if period is not None:
                query = query.where(LedgerCharge.period == period)
            if member_id is not None:
                query = query.where(LedgerCharge.member_id == member_id)
            if start_period is not None:
                query = query.where(LedgerCharge.period >= start_period)
            if end_period is not None:
                query = query.where(LedgerCharge.period <= end_period)
            query = query.order_by(LedgerCharge.period.asc(), LedgerCharge.member_id.asc())
            return [_charge_from_row(row) for row in session.execute(query).scalars().all()]

        return self._run(_snapshot)

    def get_closure(self, period: str) -> Optional[ClosureRecord]:
        def _get(session: Session) -> Optional[ClosureRecord]:
            row = session.get(PeriodClosure, period)
            if not row:
                return None
            return ClosureRecord(
                period=row.period,
                closed_by=row.closed_by,
                closed_at=_aware(row.closed_at),
                charges_surcharged=row.charges_surcharged,
            )

        return self._run(_get)

    def create_closure(self, record: ClosureRecord) -> bool:
        def _create(session: Session) -> bool:
            session.add(
                PeriodClosure(
                    period=record.period,
                    closed_by=record.closed_by,
                    closed_at=_utc(record.closed_at),
                    charges_surcharged=record.charges_surcharged,
                )
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
            return True

        return self._run(_create)

    def get_generation(self, period: str) -> Optional[GenerationMarker]:
        def _get(session: Session) -> Optional[GenerationMarker]:
            row = session.get(PeriodGeneration, period)
            if not row:
                return None
            return GenerationMarker(
                period=row.period,
                generated_by=row.generated_by,
                generated_at=_aware(row.generated_at),
                charges_created=row.charges_created,
            )

        return self._run(_get)

    def create_generation(self, marker: GenerationMarker) -> bool:
        def _create(session: Session) -> bool:
            session.add(
                PeriodGeneration(
                    period=marker.period,
                    generated_by=marker.generated_by,
                    generated_at=_utc(marker.generated_at),
                    charges_created=marker.charges_created,
                )
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
            return True

        return self._run(_create)

    def apply_payment(self, charge: Charge, expected_version: int, record: PaymentRecord) -> bool:
        values = _charge_values(charge)
        values.pop("id")
        values.pop("created_at")

        def _apply(session: Session) -> bool:
            result = session.execute(
                update(LedgerCharge)
                .where(LedgerCharge.id == charge.id, LedgerCharge.version == expected_version)
                .values(**values)
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.add(
                LedgerPayment(
                    id=record.id,
                    charge_id=record.charge_id,
                    member_id=record.member_id,
                    period=record.period,
                    amount_tendered=record.amount_tendered,
                    amount_applied=record.amount_applied,
                    discount_applied=record.discount_applied,
                    method=record.method,
                    reference=record.reference,
                    notes=record.notes,
                    recorded_by=record.recorded_by,
                    received_at=_utc(record.received_at),
                )
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
            return True

        return self._run(_apply)

    def get_payment(self, payment_id: str) -> Optional[PaymentRecord]:
        def _get(session: Session) -> Optional[PaymentRecord]:
            row = session.get(LedgerPayment, payment_id)
            return _payment_from_row(row) if row else None

        return self._run(_get)

    def list_payments(self, charge_id: str) -> List[PaymentRecord]:
        def _list(session: Session) -> List[PaymentRecord]:
            rows = (
                session.execute(
                    select(LedgerPayment)
                    .where(LedgerPayment.charge_id == charge_id)
                    .order_by(LedgerPayment.received_at.asc())
                )
                .scalars()
                .all()
            )
            return [_payment_from_row(row) for row in rows]

        return self._run(_list)

    def add_audit(self, entry: AuditEntry) -> None:
        def _add(session: Session) -> None:
            session.add(
                AuditLog(
                    timestamp=_utc(entry.timestamp),
                    actor=entry.actor,
                    action=entry.action,
                    target_entity_type=entry.target_entity_type,
                    target_entity_id=entry.target_entity_id,
                    after=json.dumps(entry.after, default=str) if entry.after else None,
                )
            )
            session.commit()

        self._run(_add)
