from decimal import Decimal

CHARGE_STATUS_PENDING = "PENDING"
CHARGE_STATUS_PAID = "PAID"
CHARGE_STATUS_DELINQUENT = "DELINQUENT"

OPEN_CHARGE_STATUSES = (CHARGE_STATUS_PENDING, CHARGE_STATUS_DELINQUENT)

# Allowed status moves; PAID is terminal.
CHARGE_TRANSITIONS = {
    CHARGE_STATUS_PENDING: {CHARGE_STATUS_PAID, CHARGE_STATUS_DELINQUENT},
    CHARGE_STATUS_DELINQUENT: {CHARGE_STATUS_PAID},
    CHARGE_STATUS_PAID: set(),
}

DELINQUENCY_SURCHARGE_KIND = "delinquency"
EARLY_PAYMENT_DISCOUNT_KIND = "early_payment"

CONFIG_KEY = "config/fee"

DEFAULT_BILLING_CONFIG = {
    "fee_amount": Decimal("50.00"),
    "early_payment_discount": {
        "enabled": True,
        "pct": Decimal("10"),
        "valid_days": [1, 2, 3],
    },
    "delinquency_surcharge": {
        "enabled": True,
        "pct_per_month": Decimal("5"),
        "grace_day_of_month": 16,
    },
}

PAYMENT_METHODS = ("cash", "transfer", "yape", "plin", "card", "other")
