from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Tuple

from ..constants import DEFAULT_BILLING_CONFIG
from ..models.ledger import to_money
from .ledger_store import LedgerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EarlyPaymentDiscount:
    enabled: bool
    pct: Decimal
    valid_days: Tuple[int, ...]


@dataclass(frozen=True)
class DelinquencySurcharge:
    enabled: bool
    pct_per_month: Decimal
    grace_day_of_month: int


@dataclass(frozen=True)
class BillingConfig:
    fee_amount: Decimal
    early_payment_discount: EarlyPaymentDiscount
    delinquency_surcharge: DelinquencySurcharge

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["fee_amount"] = str(self.fee_amount)
        record["early_payment_discount"]["pct"] = str(self.early_payment_discount.pct)
        record["early_payment_discount"]["valid_days"] = list(self.early_payment_discount.valid_days)
        record["delinquency_surcharge"]["pct_per_month"] = str(self.delinquency_surcharge.pct_per_month)
        return record


# Records written by the legacy portal use camelCase keys.
_ALIASES = {
    "fee_amount": "feeAmount",
    "early_payment_discount": "earlyPaymentDiscount",
    "delinquency_surcharge": "delinquencySurcharge",
    "valid_days": "validDays",
    "pct_per_month": "pctPerMonth",
    "grace_day_of_month": "graceDayOfMonth",
}

_MISSING = object()
HUNDRED = Decimal("100")


def _pick(raw: Mapping[str, Any], name: str) -> Any:
    if name in raw:
        return raw[name]
    return raw.get(_ALIASES.get(name, name), _MISSING)


def _as_decimal(value: Any, default: Decimal, field: str, maximum: Optional[Decimal] = None) -> Decimal:
    if value is _MISSING or value is None:
        return default
    if isinstance(value, bool):
        logger.warning("Ignoring non-numeric billing setting %s=%r", field, value)
        return default
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        logger.warning("Ignoring non-numeric billing setting %s=%r", field, value)
        return default
    if not result.is_finite() or result < 0 or (maximum is not None and result > maximum):
        logger.warning("Ignoring out-of-range billing setting %s=%r", field, value)
        return default
    return result


def _as_bool(value: Any, default: bool) -> bool:
    if value is _MISSING or value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _as_day(value: Any, default: int, field: str) -> int:
    if value is _MISSING or value is None or isinstance(value, bool):
        return default
    try:
        day = int(str(value).strip())
    except ValueError:
        logger.warning("Ignoring invalid day-of-month %s=%r", field, value)
        return default
    if not 1 <= day <= 31:
        logger.warning("Ignoring invalid day-of-month %s=%r", field, value)
        return default
    return day


def _as_days(value: Any, default: Tuple[int, ...]) -> Tuple[int, ...]:
    if value is _MISSING or value is None:
        return default
    if isinstance(value, (int, str)):
        value = [value]
    try:
        days = sorted({_as_day(item, 0, "valid_days") for item in value} - {0})
    except TypeError:
        logger.warning("Ignoring invalid early-payment days %r", value)
        return default
    return tuple(days)


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = _pick(raw, name)
    return value if isinstance(value, Mapping) else {}


def build_config(raw: Optional[Mapping[str, Any]]) -> BillingConfig:
    """Merge a stored record over the defaults, field by field."""
    raw = raw if isinstance(raw, Mapping) else {}
    defaults = DEFAULT_BILLING_CONFIG
    discount_defaults = defaults["early_payment_discount"]
    surcharge_defaults = defaults["delinquency_surcharge"]
    discount_raw = _section(raw, "early_payment_discount")
    surcharge_raw = _section(raw, "delinquency_surcharge")

    return BillingConfig(
        fee_amount=to_money(_as_decimal(_pick(raw, "fee_amount"), defaults["fee_amount"], "fee_amount")),
        early_payment_discount=EarlyPaymentDiscount(
            enabled=_as_bool(_pick(discount_raw, "enabled"), discount_defaults["enabled"]),
            pct=_as_decimal(
                _pick(discount_raw, "pct"), discount_defaults["pct"], "early_payment_discount.pct", HUNDRED
            ),
            valid_days=_as_days(_pick(discount_raw, "valid_days"), tuple(discount_defaults["valid_days"])),
        ),
        delinquency_surcharge=DelinquencySurcharge(
            enabled=_as_bool(_pick(surcharge_raw, "enabled"), surcharge_defaults["enabled"]),
            pct_per_month=_as_decimal(
                _pick(surcharge_raw, "pct_per_month"),
                surcharge_defaults["pct_per_month"],
                "delinquency_surcharge.pct_per_month",
            ),
            grace_day_of_month=_as_day(
                _pick(surcharge_raw, "grace_day_of_month"),
                surcharge_defaults["grace_day_of_month"],
                "delinquency_surcharge.grace_day_of_month",
            ),
        ),
    )


def get_config(store: LedgerStore) -> BillingConfig:
    """Fresh, fully populated configuration snapshot. Never writes to the store."""
    return build_config(store.read_config())


def save_config(store: LedgerStore, changes: Mapping[str, Any]) -> BillingConfig:
    """Apply a partial update on top of the current configuration and persist it."""
    current = get_config(store).to_record()
    for key, value in changes.items():
        if isinstance(value, Mapping) and isinstance(current.get(key), dict):
            current[key] = {**current[key], **value}
        else:
            current[key] = value
    updated = build_config(current)
    store.write_config(updated.to_record())
    logger.info("Billing configuration updated: %s", sorted(changes))
    return updated
