from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import PAYMENT_METHODS
from ..services.periods import parse_period


class AdjustmentRead(BaseModel):
    kind: str
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class ChargeRead(BaseModel):
    id: str
    member_id: str
    period: str
    base_amount: Decimal
    discounts: List[AdjustmentRead] = []
    surcharges: List[AdjustmentRead] = []
    total_amount: Decimal
    amount_paid: Decimal
    remaining_balance: Decimal
    status: Literal["PENDING", "PAID", "DELINQUENT"]
    created_at: datetime
    updated_at: datetime
    version: int

    model_config = ConfigDict(from_attributes=True)


class PaymentCreate(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    method: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    received_at: Optional[datetime] = None
    payment_id: Optional[str] = Field(default=None, min_length=1, max_length=64)

    @field_validator("method")
    @classmethod
    def ensure_known_method(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        method = value.strip().lower()
        if method not in PAYMENT_METHODS:
            raise ValueError(f"method must be one of: {', '.join(PAYMENT_METHODS)}")
        return method


class PaymentRead(BaseModel):
    id: str
    charge_id: str
    member_id: str
    period: str
    amount_tendered: Decimal
    amount_applied: Decimal
    discount_applied: Decimal
    method: Optional[str]
    reference: Optional[str]
    notes: Optional[str]
    recorded_by: Optional[str]
    received_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClosureRead(BaseModel):
    period: str
    closed_by: str
    closed_at: datetime
    charges_surcharged: int

    model_config = ConfigDict(from_attributes=True)


class GenerationResult(BaseModel):
    period: str
    charges_created: int


class RangeGenerationRequest(BaseModel):
    start_period: str

    @field_validator("start_period")
    @classmethod
    def ensure_valid_period(cls, value: str) -> str:
        return parse_period(value)


class RangeGenerationResult(BaseModel):
    start_period: str
    end_period: str
    charges_created: int


class MemberSummaryRead(BaseModel):
    member_id: str
    start_period: str
    total: Decimal
    delinquent: bool
    items: List[ChargeRead] = []


class PortfolioOverviewRead(BaseModel):
    start_period: str
    collected: Decimal
    outstanding: Decimal
    delinquent_members: int
    collection_rate: Decimal
    active_members: int


class EarlyPaymentDiscountSettings(BaseModel):
    enabled: bool
    pct: Decimal
    valid_days: List[int]

    model_config = ConfigDict(from_attributes=True)


class DelinquencySurchargeSettings(BaseModel):
    enabled: bool
    pct_per_month: Decimal
    grace_day_of_month: int

    model_config = ConfigDict(from_attributes=True)


class BillingConfigRead(BaseModel):
    fee_amount: Decimal
    early_payment_discount: EarlyPaymentDiscountSettings
    delinquency_surcharge: DelinquencySurchargeSettings

    model_config = ConfigDict(from_attributes=True)


class EarlyPaymentDiscountUpdate(BaseModel):
    enabled: Optional[bool] = None
    pct: Optional[Decimal] = Field(default=None, ge=0, le=100)
    valid_days: Optional[List[int]] = None

    @field_validator("valid_days")
    @classmethod
    def ensure_valid_days(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        if value is not None and any(day < 1 or day > 31 for day in value):
            raise ValueError("valid_days must be days of the month (1-31).")
        return value


class DelinquencySurchargeUpdate(BaseModel):
    enabled: Optional[bool] = None
    pct_per_month: Optional[Decimal] = Field(default=None, ge=0)
    grace_day_of_month: Optional[int] = Field(default=None, ge=1, le=31)


class BillingConfigUpdate(BaseModel):
    fee_amount: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    early_payment_discount: Optional[EarlyPaymentDiscountUpdate] = None
    delinquency_surcharge: Optional[DelinquencySurchargeUpdate] = None
