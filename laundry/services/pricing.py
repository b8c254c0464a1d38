"""
Pricing engine. Pure functions, integer cents throughout.

Per-pound orders are priced at the standard or member rate with a minimum
order floor. Bag orders are a fixed price per bag plus a fee for every
started 5 lb over the bag's weight limit.
"""

import math
from collections import namedtuple
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from dateutil.relativedelta import relativedelta

from laundry.errors import ValidationError

STANDARD_RATE_CENTS = 225
MEMBER_RATE_CENTS = 175
MINIMUM_ORDER_CENTS = 3500

BAG_PRICES = {
    "small": 3500,
    "medium": 5500,
    "large": 8500,
}

BAG_WEIGHT_LIMITS = {
    "small": 20,
    "medium": 35,
    "large": 50,
}

OVERWEIGHT_FEE_CENTS = 500
OVERWEIGHT_INCREMENT_LB = 5

MEMBERSHIP_PRICE_CENTS = 4999
MEMBERSHIP_DURATION_MONTHS = 6

PER_POUND = "per_lb"
PRICING_MODELS = ("per_lb", "bag_small", "bag_medium", "bag_large")

# Names the booking front end sends
FRONTEND_PRICING_MODELS = {
    "per_pound": "per_lb",
    "small_bag": "bag_small",
    "medium_bag": "bag_medium",
    "large_bag": "bag_large",
}

PerPoundPrice = namedtuple(
    "PerPoundPrice", ["rate_per_pound", "subtotal", "total", "minimum_applied", "savings"]
)
Overweight = namedtuple(
    "Overweight", ["overweight", "overage_lb", "fee", "weight_limit", "actual_weight"]
)
BagTotal = namedtuple("BagTotal", ["base_price", "overweight", "total"])


def _round_cents(value):
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_weight(weight, field="weight"):
    """Return ``weight`` as a float, or raise ValidationError."""
    if isinstance(weight, bool) or not isinstance(weight, (int, float, Decimal)):
        raise ValidationError("{} must be a number".format(field))
    weight = float(weight)
    if not math.isfinite(weight) or weight <= 0:
        raise ValidationError("{} must be a positive number".format(field))
    return weight


def normalize_pricing_model(value):
    """Accept either front-end names or stored names; return the stored name."""
    if not isinstance(value, str):
        raise ValidationError("pricing model is required")
    model = FRONTEND_PRICING_MODELS.get(value, value)
    if model not in PRICING_MODELS:
        raise ValidationError(
            "Unknown pricing model: {}".format(value),
            {"validPricingModels": list(FRONTEND_PRICING_MODELS)},
        )
    return model


def is_bag_model(pricing_model):
    return pricing_model in PRICING_MODELS and pricing_model != PER_POUND


def bag_size_for(pricing_model):
    """``bag_medium`` -> ``medium``."""
    if not is_bag_model(pricing_model):
        raise ValidationError("{} is not a bag pricing model".format(pricing_model))
    return pricing_model[len("bag_"):]


def _validate_bag_size(bag_size):
    if bag_size not in BAG_PRICES:
        raise ValidationError(
            "Unknown bag size: {}".format(bag_size), {"validBagSizes": list(BAG_PRICES)}
        )


def compute_per_pound_price(weight_lb, is_member=False):
    weight_lb = validate_weight(weight_lb, "weight_lb")
    rate = MEMBER_RATE_CENTS if is_member else STANDARD_RATE_CENTS
    subtotal = _round_cents(weight_lb * rate)
    total = max(subtotal, MINIMUM_ORDER_CENTS)
    savings = _round_cents(weight_lb * (STANDARD_RATE_CENTS - MEMBER_RATE_CENTS)) if is_member else 0
    return PerPoundPrice(
        rate_per_pound=rate,
        subtotal=subtotal,
        total=total,
        minimum_applied=total > subtotal,
        savings=savings,
    )


def compute_bag_price(bag_size):
    _validate_bag_size(bag_size)
    return BAG_PRICES[bag_size]


def compute_overweight(bag_size, actual_weight):
    _validate_bag_size(bag_size)
    actual_weight = validate_weight(actual_weight, "actual_weight")
    limit = BAG_WEIGHT_LIMITS[bag_size]

    if actual_weight <= limit:
        return Overweight(False, 0, 0, limit, actual_weight)

    overage = actual_weight - limit
    increments = math.ceil(overage / OVERWEIGHT_INCREMENT_LB)
    return Overweight(
        overweight=True,
        overage_lb=round(overage, 2),
        fee=increments * OVERWEIGHT_FEE_CENTS,
        weight_limit=limit,
        actual_weight=actual_weight,
    )


def compute_bag_total(bag_size, actual_weight=None):
    base_price = compute_bag_price(bag_size)
    if actual_weight is None:
        return BagTotal(base_price, None, base_price)
    overweight = compute_overweight(bag_size, actual_weight)
    return BagTotal(base_price, overweight, base_price + overweight.fee)


def membership_expiration(start):
    return start + relativedelta(months=MEMBERSHIP_DURATION_MONTHS)


def days_remaining(end, now):
    return max(0, math.ceil((end - now) / timedelta(days=1)))


def format_cents(cents):
    return "${:,.2f}".format(cents / 100)
