from datetime import datetime, timezone
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from ..config import Base


def utcnow():
    return datetime.now(timezone.utc)


class Member(Base):
    """Read-only mirror of the association's member directory."""

    __tablename__ = "members"

    id = Column(String, primary_key=True)
    display_name = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class BillingSetting(Base):
    __tablename__ = "billing_settings"

    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class LedgerCharge(Base):
    __tablename__ = "ledger_charges"
    __table_args__ = (UniqueConstraint("period", "member_id", name="uq_ledger_charges_period_member"),)

    id = Column(String, primary_key=True)
    member_id = Column(String, nullable=False, index=True)
    period = Column(String(7), nullable=False, index=True)
    base_amount = Column(Numeric(10, 2), nullable=False)
    discounts = Column(JSON, nullable=False, default=list)
    surcharges = Column(JSON, nullable=False, default=list)
    total_amount = Column(Numeric(10, 2), nullable=False)
    amount_paid = Column(Numeric(10, 2), nullable=False, default=0)
    remaining_balance = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default="PENDING")
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class LedgerPayment(Base):
    __tablename__ = "ledger_payments"

    id = Column(String, primary_key=True)
    charge_id = Column(String, ForeignKey("ledger_charges.id"), nullable=False, index=True)
    member_id = Column(String, nullable=False)
    period = Column(String(7), nullable=False)
    amount_tendered = Column(Numeric(10, 2), nullable=False)
    amount_applied = Column(Numeric(10, 2), nullable=False)
    discount_applied = Column(Numeric(10, 2), nullable=False, default=0)
    method = Column(String, nullable=True)
    reference = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    recorded_by = Column(String, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False)


class PeriodClosure(Base):
    __tablename__ = "period_closures"

    period = Column(String(7), primary_key=True)
    closed_by = Column(String, nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=False)
    charges_surcharged = Column(Integer, nullable=False, default=0)


class PeriodGeneration(Base):
    __tablename__ = "period_generations"

    period = Column(String(7), primary_key=True)
    generated_by = Column(String, nullable=False)
    generated_at = Column(DateTime(timezone=True), nullable=False)
    charges_created = Column(Integer, nullable=False, default=0)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow, index=True, nullable=False)
    actor = Column(String, nullable=False)
    action = Column(String, nullable=False)
    target_entity_type = Column(String, nullable=True)
    target_entity_id = Column(String, nullable=True)
    after = Column(Text, nullable=True)
