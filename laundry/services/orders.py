"""
Order lifecycle: placing an order, adjusting bag weight, capturing the
final per-pound payment, refunds and cancellations.

Money moves through the payment gateway with an idempotency key on every
call. Refunds are recorded in the append-only ``refunds`` ledger; the
order's ``refund_amount_cents`` mirrors the ledger sum and is written in
the same commit as each ledger row.
"""

import logging
import math
import time as _time
from collections import namedtuple
from datetime import datetime, time
from zoneinfo import ZoneInfo

from flask import current_app
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from laundry import notifications
from laundry.errors import (
    AuthorizationError, ExceedsRefundable, InvalidStateTransition, NotFoundError, PaymentProcessorError,
    PersistenceError, ValidationError,
)
from laundry.models import (
    Address, Customer, Order, PaymentAnomaly, Refund, TimeWindow, db, utcnow,
    MEASURED, NOT_MEASURED, OVERWEIGHT, REFUNDABLE_PAYMENT_STATUSES,
)
from laundry.services import membership, pricing, routing
from laundry.services.order_status import apply_transition, can_transition, valid_next_statuses
from laundry.services.payments import get_gateway, payment_status_for_intent
from laundry.validators import (
    is_cents, parse_iso_date, validate_email, validate_phone, validate_postal_code, validate_uuid,
)

logger = logging.getLogger(__name__)

DEFAULT_ESTIMATED_WEIGHT_LB = 15
ANOMALY_THRESHOLD_CENTS = 100
REFUND_DRIFT_TOLERANCE_CENTS = 100

FULL_REFUND_NOTICE_HOURS = 6
LATE_CANCELLATION_FEE_CENTS = 1000
IN_PROGRESS_STATUSES = ("picked_up", "processing")
CLOSED_STATUSES = ("completed", "canceled_by_customer", "canceled_by_ops")
CAPTURED_PAYMENT_STATUSES = ("paid", "partially_refunded", "refunded")

# Intent statuses where no money has been taken yet
RELEASABLE_INTENT_STATUSES = (
    "requires_payment_method", "requires_confirmation", "requires_action", "requires_capture", "processing",
)

OrderPlacement = namedtuple("OrderPlacement", ["order", "client_secret", "payment_intent_id", "laundromat"])
WeightAdjustmentResult = namedtuple(
    "WeightAdjustmentResult", ["order", "overweight", "fee_cents", "payment_intent_id", "new_total_cents"]
)
CaptureResult = namedtuple(
    "CaptureResult", ["order", "price", "final_amount_cents", "authorized_amount_cents", "charge_id", "anomaly"]
)
RefundResult = namedtuple(
    "RefundResult",
    ["order", "refund", "refunds", "amount_cents", "total_refunded_cents", "remaining_cents", "payment_status"],
)
CancellationQuote = namedtuple("CancellationQuote", ["amount_cents", "percent", "reason"])
CancellationResult = namedtuple("CancellationResult", ["order", "quote", "refund_cents", "payment_action"])


def _epoch_ms():
    return int(_time.time() * 1000)


def _load_order(order_id):
    order = db.session.get(Order, order_id) if order_id else None
    if not order:
        raise NotFoundError("Order not found")
    return order


def _commit(description, **context):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.critical("Failed to save %s %s: %s", description, context, e)
        raise PersistenceError("Failed to save {}".format(description), payload=context)


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------
def resolve_time_window(value, field="pickupTimeWindowId"):
    """Accept a window id or a case-insensitive label such as ``Morning``."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("{} is required".format(field))
    value = value.strip()

    if validate_uuid(value):
        window = db.session.get(TimeWindow, value)
    else:
        window = TimeWindow.query.filter(func.lower(TimeWindow.label) == value.lower()).first()

    if not window or not window.is_active:
        labels = [w.label for w in TimeWindow.query.filter_by(is_active=True).order_by(TimeWindow.start_time)]
        raise ValidationError("Unknown time window: {}".format(value), {"validLabels": labels})
    return window


def _parse_address(data, field):
    if not isinstance(data, dict):
        raise ValidationError("{} is required".format(field))
    line1 = (data.get("line1") or data.get("street") or "").strip()
    city = (data.get("city") or "").strip()
    state = (data.get("state") or "").strip()
    postal_code = str(data.get("postal_code") or data.get("postalCode") or data.get("zip") or "").strip()
    if not line1 or not city or not state:
        raise ValidationError("{} needs line1, city and state".format(field))
    if not validate_postal_code(postal_code):
        raise ValidationError("{} has an invalid ZIP code".format(field))
    return {
        "line1": line1,
        "line2": (data.get("line2") or "").strip() or None,
        "city": city,
        "state": state,
        "postal_code": postal_code[:5],
    }


def parse_add_ons(add_ons):
    """``[{"name": ..., "price": cents}]`` -> (cleaned list, total cents)."""
    if add_ons is None:
        return [], 0
    if not isinstance(add_ons, list):
        raise ValidationError("addons must be a list")
    cleaned = []
    for item in add_ons:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str) or not is_cents(item.get("price")):
            raise ValidationError("Each add-on needs a name and a non-negative integer price in cents")
        cleaned.append({"name": item["name"], "price": item["price"]})
    return cleaned, sum(item["price"] for item in cleaned)


def _local_today():
    return datetime.now(ZoneInfo(current_app.config.get("TIMEZONE", "UTC"))).date()


def pickup_datetime(order):
    """Start of the pickup window in the service timezone (midnight if the window has no start)."""
    tz = ZoneInfo(current_app.config.get("TIMEZONE", "UTC"))
    window = order.pickup_time_window
    start = window.start_time if window and window.start_time else time.min
    return datetime.combine(order.pickup_date, start, tzinfo=tz)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def _customer_for(auth_user_id, name, email, phone, sms_opt_in):
    customer = Customer.query.filter_by(auth_user_id=auth_user_id).first()
    if customer is None:
        customer = Customer(auth_user_id=auth_user_id, full_name=name, email=email)
        db.session.add(customer)
    customer.full_name = name or customer.full_name
    customer.email = email or customer.email
    if phone:
        customer.phone = phone
    if sms_opt_in is not None:
        customer.sms_opt_in = bool(sms_opt_in)
    db.session.flush()
    return customer


def create_order(data, auth_user_id, idempotency_key=None):
    """Validate, price and persist a new order, then open its payment.

    Per-pound orders get a manual-capture authorization for the estimated
    total; bag orders are charged the bag price (plus add-ons) up front.
    Returns an OrderPlacement with the client secret for the payment element.
    """
    data = data or {}

    name = (data.get("customerName") or "").strip()
    email = (data.get("customerEmail") or "").strip().lower()
    phone = (data.get("customerPhone") or "").strip() or None
    if not name:
        raise ValidationError("customerName is required")
    if not validate_email(email):
        raise ValidationError("A valid customerEmail is required")
    if phone and not validate_phone(phone):
        raise ValidationError("customerPhone is not a valid US phone number")

    pricing_model = pricing.normalize_pricing_model(data.get("pricingModel") or data.get("orderType"))

    pickup_date = parse_iso_date(data.get("pickupDate"))
    if pickup_date is None:
        raise ValidationError("pickupDate must be an ISO date (YYYY-MM-DD)")
    if pickup_date < _local_today():
        raise ValidationError("pickupDate cannot be in the past")

    pickup_window = resolve_time_window(data.get("pickupTimeWindowId"))
    delivery_window = None
    if data.get("deliveryTimeWindowId"):
        delivery_window = resolve_time_window(data["deliveryTimeWindowId"], "deliveryTimeWindowId")

    pickup_fields = _parse_address(data.get("pickupAddress"), "pickupAddress")
    delivery_fields = None
    if data.get("deliveryAddress"):
        delivery_fields = _parse_address(data["deliveryAddress"], "deliveryAddress")

    add_ons, add_on_total = parse_add_ons(data.get("addons"))

    estimated_weight = data.get("estimatedWeightLb")
    if estimated_weight is None:
        estimated_weight = DEFAULT_ESTIMATED_WEIGHT_LB
    estimated_weight = pricing.validate_weight(estimated_weight, "estimatedWeightLb")

    # Bag pricing is members-only; checked before anything is written
    is_member = membership.is_active_member(Customer.query.filter_by(auth_user_id=auth_user_id).first())
    if pricing.is_bag_model(pricing_model) and not is_member:
        raise AuthorizationError("Per-bag pricing is only available to members")

    customer = _customer_for(auth_user_id, name, email, phone, data.get("smsOptIn"))

    if pricing_model == pricing.PER_POUND:
        quote = pricing.compute_per_pound_price(estimated_weight, is_member)
        subtotal = quote.total
        unit_rate = quote.rate_per_pound
        minimum_applied = quote.minimum_applied
    else:
        subtotal = pricing.compute_bag_price(pricing.bag_size_for(pricing_model))
        unit_rate = None
        minimum_applied = False

    pickup_address = Address(customer_id=customer.id, **pickup_fields)
    db.session.add(pickup_address)
    delivery_address = None
    if delivery_fields:
        delivery_address = Address(customer_id=customer.id, **delivery_fields)
        db.session.add(delivery_address)
    db.session.flush()

    order = Order(
        customer_id=customer.id,
        pricing_model=pricing_model,
        service_type=data.get("serviceType") or "wash_fold",
        status="scheduled",
        payment_status="requires_payment",
        pickup_date=pickup_date,
        pickup_time_window_id=pickup_window.id,
        delivery_time_window_id=delivery_window.id if delivery_window else None,
        pickup_address_id=pickup_address.id,
        delivery_address_id=delivery_address.id if delivery_address else pickup_address.id,
        estimated_weight_lb=estimated_weight if pricing_model == pricing.PER_POUND else None,
        unit_rate_cents=unit_rate,
        subtotal_cents=subtotal,
        add_on_total_cents=add_on_total,
        member_rate_applied=is_member and pricing_model == pricing.PER_POUND,
        minimum_order_applied=minimum_applied,
        weight_adjustment=NOT_MEASURED,
        addons=add_ons,
        preferences=data.get("preferences") if isinstance(data.get("preferences"), dict) else None,
        notes=data.get("notes"),
    )
    order.total_cents = order.compute_total()
    db.session.add(order)
    _commit("order", customer_id=customer.id)
    logger.info("Order %s created (%s, %s cents) for customer %s",
                order.id, pricing_model, order.total_cents, customer.id)

    key = idempotency_key or "order:{}:{}:{}:{}".format(
        customer.id, pickup_date.isoformat(), pricing_model, _epoch_ms()
    )
    try:
        intent = get_gateway().create_intent(
            amount=order.total_cents,
            idempotency_key=key,
            capture_method="manual" if pricing_model == pricing.PER_POUND else "automatic",
            metadata={"order_id": order.id, "customer_id": customer.id, "pricing_model": pricing_model},
            description="Bags of Laundry order {}".format(order.short_id),
            receipt_email=email,
            customer=customer.stripe_customer_id,
        )
    except PaymentProcessorError:
        order.payment_status = "failed"
        db.session.commit()
        logger.error("Payment authorization failed for order %s", order.id)
        raise

    order.stripe_payment_intent_id = intent.id
    order.payment_status = payment_status_for_intent(intent.status)
    if intent.charge_id:
        order.stripe_charge_id = intent.charge_id
    _commit("payment reference", order_id=order.id, payment_intent_id=intent.id)

    laundromat = routing.auto_assign(order)
    notifications.send_order_confirmation(order)

    return OrderPlacement(order, intent.client_secret, intent.id, laundromat)


# ---------------------------------------------------------------------------
# Bag weight adjustment
# ---------------------------------------------------------------------------
def adjust_weight(order_id, actual_weight, actor_id=None):
    """Record the measured weight of a bag order and charge any overweight fee.

    One-shot per order: the marker is claimed with a conditional update, so a
    second adjustment (or a concurrent one) is rejected.
    """
    actual_weight = pricing.validate_weight(actual_weight, "actualWeight")
    order = _load_order(order_id)

    if not pricing.is_bag_model(order.pricing_model):
        raise InvalidStateTransition(
            "Weight adjustment only applies to bag orders",
            payload={"pricingModel": order.pricing_model,
                     "validPricingModels": [m for m in pricing.PRICING_MODELS if pricing.is_bag_model(m)]},
        )
    if order.weight_adjustment != NOT_MEASURED:
        raise InvalidStateTransition(
            "Weight has already been adjusted for this order",
            payload={"weightAdjustment": order.weight_adjustment},
        )

    bag_size = pricing.bag_size_for(order.pricing_model)
    overweight = pricing.compute_overweight(bag_size, actual_weight)
    marker = OVERWEIGHT if overweight.overweight else MEASURED

    claimed = db.session.execute(
        update(Order)
        .where(Order.id == order.id, Order.weight_adjustment == NOT_MEASURED)
        .values(weight_adjustment=marker, measured_weight_lb=actual_weight, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        db.session.rollback()
        raise InvalidStateTransition("Weight has already been adjusted for this order")
    db.session.commit()
    db.session.refresh(order)

    if not overweight.overweight:
        logger.info("Order %s weighed %s lb, within the %s limit", order.id, actual_weight, bag_size)
        return WeightAdjustmentResult(order, overweight, 0, None, order.total_cents)

    gateway = get_gateway()
    payment_method = customer = None
    try:
        if order.stripe_payment_intent_id:
            original = gateway.retrieve_intent(order.stripe_payment_intent_id)
            payment_method, customer = original.payment_method, original.customer

        intent = gateway.create_intent(
            amount=overweight.fee,
            idempotency_key="overweight:{}:{}".format(order.id, actual_weight),
            capture_method="automatic",
            metadata={
                "order_id": order.id,
                "original_order_total": str(order.total_cents),
                "overweight_fee": str(overweight.fee),
                "overage_lbs": str(overweight.overage_lb),
                "bag_size": bag_size,
                "adjusted_by": actor_id or "",
            },
            description="Overweight fee - Order {} - {}lbs over limit".format(order.short_id, overweight.overage_lb),
            customer=customer,
            payment_method=payment_method,
            confirm=bool(payment_method),
            off_session=True,
        )
    except PaymentProcessorError:
        # Give the order back so the adjustment can be retried
        db.session.execute(
            update(Order)
            .where(Order.id == order.id, Order.weight_adjustment == OVERWEIGHT)
            .values(weight_adjustment=NOT_MEASURED, measured_weight_lb=None)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        raise

    order.overweight_payment_intent_id = intent.id
    order.overweight_charge_id = intent.charge_id
    order.bag_overweight_cents = overweight.fee
    order.total_cents = order.compute_total()
    _commit("overweight charge", order_id=order.id, payment_intent_id=intent.id)
    logger.info("Order %s overweight by %s lb; charged %s cents (%s)",
                order.id, overweight.overage_lb, overweight.fee, intent.id)

    notifications.send_overweight_notice(order, overweight)
    return WeightAdjustmentResult(order, overweight, overweight.fee, intent.id, order.total_cents)


# ---------------------------------------------------------------------------
# Final capture for per-pound orders
# ---------------------------------------------------------------------------
def _record_anomaly(order, intent_id, authorized, final):
    try:
        db.session.add(PaymentAnomaly(
            order_id=order.id,
            payment_intent_id=intent_id,
            authorized_amount=authorized,
            final_amount=final,
            difference_cents=final - authorized,
        ))
        db.session.commit()
        return True
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to record payment anomaly for order %s", order.id)
        return False


def capture_final_payment(order_id, actual_weight, add_ons=None, rush_fee_cents=0, actor_id=None):
    """Price a per-pound order from its measured weight and capture the payment."""
    actual_weight = pricing.validate_weight(actual_weight, "actualWeight")
    add_ons, add_on_total = parse_add_ons(add_ons)
    if rush_fee_cents is None:
        rush_fee_cents = 0
    if not is_cents(rush_fee_cents):
        raise ValidationError("rushFeeCents must be a non-negative integer")

    order = _load_order(order_id)
    if order.pricing_model != pricing.PER_POUND:
        raise InvalidStateTransition(
            "Final capture only applies to per-pound orders; bag orders use weight adjustment",
            payload={"pricingModel": order.pricing_model},
        )
    if not order.stripe_payment_intent_id:
        raise ValidationError("Order has no payment authorization")
    if order.payment_status in CAPTURED_PAYMENT_STATUSES:
        raise InvalidStateTransition("Payment has already been captured",
                                     payload={"paymentStatus": order.payment_status})

    is_member = membership.is_active_member(order.customer)
    price = pricing.compute_per_pound_price(actual_weight, is_member)
    final_amount = max(price.total + add_on_total + rush_fee_cents - (order.discount_cents or 0), 0)

    gateway = get_gateway()
    intent_id = order.stripe_payment_intent_id
    intent = gateway.retrieve_intent(intent_id)
    if intent.status != "requires_capture":
        raise InvalidStateTransition(
            "Payment is not authorized for capture (status: {})".format(intent.status),
            payload={"paymentIntentStatus": intent.status},
        )
    authorized = intent.amount

    anomaly = abs(final_amount - authorized) > ANOMALY_THRESHOLD_CENTS
    if anomaly:
        logger.warning("Order %s final amount %s differs from authorized %s",
                       order.id, final_amount, authorized)

    if final_amount > authorized:
        gateway.update_amount(intent_id, final_amount, "update:{}:{}".format(intent_id, final_amount))
    captured = gateway.capture(intent_id, final_amount, "capture:{}:{}".format(intent_id, final_amount))

    order.measured_weight_lb = actual_weight
    order.unit_rate_cents = price.rate_per_pound
    order.subtotal_cents = price.total
    order.add_on_total_cents = add_on_total
    order.rush_fee_cents = rush_fee_cents
    if add_ons:
        order.addons = add_ons
    order.total_cents = order.compute_total()
    order.member_rate_applied = is_member
    order.minimum_order_applied = price.minimum_applied
    order.weight_adjustment = MEASURED
    order.payment_status = "paid"
    order.stripe_charge_id = captured.charge_id
    _commit("captured payment", order_id=order.id, payment_intent_id=intent_id, amount=final_amount)
    if anomaly:
        # Only captures that actually went through are recorded
        _record_anomaly(order, intent_id, authorized, final_amount)
    logger.info("Captured %s cents for order %s (%s lb at %s c/lb)",
                final_amount, order.id, actual_weight, price.rate_per_pound)

    if order.status == "picked_up":
        try:
            apply_transition(order.id, "processing", actor_id)
        except InvalidStateTransition:
            logger.warning("Order %s captured but status moved concurrently", order.id)

    return CaptureResult(order, price, final_amount, authorized, captured.charge_id, anomaly)


# ---------------------------------------------------------------------------
# Refunds
# ---------------------------------------------------------------------------
def refunded_total(order_id, payment_intent_id=None):
    """Sum of the refund ledger for ``order_id``, optionally for one payment intent."""
    query = select(func.coalesce(func.sum(Refund.amount_cents), 0)).where(Refund.order_id == order_id)
    if payment_intent_id is not None:
        query = query.where(Refund.payment_intent_id == payment_intent_id)
    return db.session.execute(query).scalar_one()


def refund_sources(order):
    """(payment intent, cents collected on it) in the order refunds draw from them.

    The booking payment comes first; an overweight fee lives on its own intent.
    """
    fee = (order.bag_overweight_cents or 0) if order.overweight_payment_intent_id else 0
    sources = [(order.stripe_payment_intent_id, order.total_cents - fee)]
    if fee:
        sources.append((order.overweight_payment_intent_id, fee))
    return sources


def _refund_from_intent(order, intent_id, amount_cents, key, reason, reason_internal, actor_id):
    """Refund ``amount_cents`` on one intent and append its ledger row.

    Returns (ledger row, True if the row is new).
    """
    processor_refund = get_gateway().refund(
        intent_id,
        amount_cents,
        key,
        reason="requested_by_customer",
        metadata={"order_id": order.id, "refunded_by": actor_id or "", "reason": reason[:500]},
    )

    # A replayed idempotency key hands back a refund we have already recorded
    existing = Refund.query.filter_by(stripe_refund_id=processor_refund.id).first()
    if existing is not None:
        logger.info("Refund %s already recorded for order %s", processor_refund.id, order.id)
        return existing, False

    refund = Refund(
        order_id=order.id,
        amount_cents=amount_cents,
        reason=reason,
        reason_internal=reason_internal,
        stripe_refund_id=processor_refund.id,
        payment_intent_id=intent_id,
        status="succeeded" if processor_refund.status in (None, "succeeded") else processor_refund.status,
        created_by=actor_id,
    )
    new_total = refunded_total(order.id) + amount_cents
    db.session.add(refund)
    order.refund_amount_cents = new_total
    order.payment_status = "refunded" if new_total >= order.total_cents else "partially_refunded"
    order.refunded_at = utcnow()
    _commit("refund ledger entry", order_id=order.id, stripeRefundId=processor_refund.id, amount=amount_cents)
    logger.info("Refunded %s cents on order %s via %s (%s total, %s)",
                amount_cents, order.id, intent_id, new_total, processor_refund.id)
    return refund, True


def refund_order(order_id, amount_cents, reason, actor_id=None, reason_internal=None,
                 idempotency_key=None, notify=True):
    """Refund part or all of an order's captured payments.

    The cumulative refund never exceeds the order total. The booking payment
    is refunded first and any overweight fee after it, one ledger row per
    payment intent. A ledger row is only written once its processor refund
    has succeeded.
    """
    if not is_cents(amount_cents, allow_zero=False):
        raise ValidationError("amountCents must be a positive integer")
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason is required")

    order = db.session.execute(
        select(Order).where(Order.id == order_id).with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none() if order_id else None
    if not order:
        raise NotFoundError("Order not found")
    if order.payment_status not in REFUNDABLE_PAYMENT_STATUSES:
        raise InvalidStateTransition(
            "Order payment is not refundable (status: {})".format(order.payment_status),
            payload={"paymentStatus": order.payment_status},
        )
    if not order.stripe_payment_intent_id:
        raise ValidationError("Order has no payment to refund")

    already_refunded = refunded_total(order.id)
    remaining = order.total_cents - already_refunded
    if amount_cents > remaining:
        raise ExceedsRefundable(max(remaining, 0))

    key = idempotency_key or "refund:{}:{}:{}:{}".format(
        order.stripe_payment_intent_id, amount_cents, actor_id, _epoch_ms()
    )
    sources = refund_sources(order)
    refunds = []
    recorded_new = False
    left = amount_cents
    for index, (intent_id, collected) in enumerate(sources):
        portion = min(left, collected - refunded_total(order.id, intent_id))
        if portion <= 0:
            continue
        intent_key = key if index == 0 else "{}:{}".format(key, intent_id)
        refund, created = _refund_from_intent(
            order, intent_id, portion, intent_key, reason, reason_internal, actor_id
        )
        refunds.append(refund)
        recorded_new = recorded_new or created
        left -= refund.amount_cents
        if left <= 0:
            break

    if not refunds:
        raise ExceedsRefundable(max(remaining, 0))

    refunded_now = sum(r.amount_cents for r in refunds)
    new_total = refunded_total(order.id)
    if not recorded_new:
        return RefundResult(
            order, refunds[0], refunds, refunded_now, new_total,
            order.total_cents - new_total, order.payment_status,
        )

    # Reconcile against what the processor reports; drift is only reported
    gateway = get_gateway()
    try:
        processor_total = sum(gateway.retrieve_intent(intent_id).amount_refunded for intent_id, _ in sources)
        if abs(processor_total - new_total) > REFUND_DRIFT_TOLERANCE_CENTS:
            logger.warning("Refund drift on order %s: ledger %s, processor %s",
                           order.id, new_total, processor_total)
    except PaymentProcessorError:
        logger.warning("Could not verify refund total with processor for order %s", order.id)

    if notify:
        notifications.send_refund_email(order, refunded_now, reason)

    return RefundResult(
        order, refunds[0], refunds, refunded_now, new_total,
        order.total_cents - new_total, order.payment_status,
    )


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------
def cancellation_refund(order, pickup_at, now):
    """How much of ``order.total_cents`` a customer cancellation returns.

    Already picked up or in progress: half. Six or more hours before
    pickup: everything. Less than six hours: everything but a $10 fee.
    At or after the pickup time: half.
    """
    total = order.total_cents or 0
    if order.status in IN_PROGRESS_STATUSES:
        return CancellationQuote(total // 2, 50, "Order already picked up (50% refund)")

    hours_until_pickup = (pickup_at - now).total_seconds() / 3600
    if hours_until_pickup >= FULL_REFUND_NOTICE_HOURS:
        return CancellationQuote(total, 100, "Canceled 6+ hours before pickup (full refund)")
    if hours_until_pickup > 0:
        amount = max(total - LATE_CANCELLATION_FEE_CENTS, 0)
        percent = math.floor(amount * 100 / total) if total else 0
        return CancellationQuote(amount, percent, "Canceled less than 6 hours before pickup ($10 fee)")
    return CancellationQuote(total // 2, 50, "Canceled after the pickup time (50% refund)")


def _release_payment(order, refund_cents, reason, actor_id):
    """Cancel an uncaptured authorization, or refund up to ``refund_cents`` of a captured one.

    Returns (action, refunded cents).
    """
    intent_id = order.stripe_payment_intent_id
    if not intent_id or order.payment_status in ("failed", "canceled", "refunded"):
        return "none", 0

    gateway = get_gateway()
    if order.payment_status in ("requires_payment", "authorized"):
        intent = gateway.retrieve_intent(intent_id)
        if intent.status in RELEASABLE_INTENT_STATUSES:
            gateway.cancel(intent_id, "cancel:{}".format(intent_id))
            order.payment_status = "canceled"
            _commit("canceled authorization", order_id=order.id, payment_intent_id=intent_id)
            logger.info("Canceled authorization %s for order %s", intent_id, order.id)
            return "authorization_canceled", 0
        if intent.status == "succeeded":
            # Webhook has not caught up with the capture yet
            order.payment_status = "paid"
            db.session.commit()
        else:
            return "none", 0

    remaining = order.total_cents - refunded_total(order.id)
    amount = min(refund_cents, remaining)
    if amount <= 0:
        return "none", 0
    refund_order(
        order.id, amount, reason, actor_id,
        reason_internal="cancellation", idempotency_key="cancel-refund:{}:{}".format(order.id, amount),
        notify=False,
    )
    return "refunded", amount


def cancel_order(order_id, actor_id=None, reason=None, now=None):
    """Customer cancellation: only from ``scheduled``, refund per the cancellation policy."""
    order = _load_order(order_id)
    if not can_transition(order.status, "canceled_by_customer"):
        raise InvalidStateTransition(
            "Order can no longer be canceled (status: {})".format(order.status),
            valid_transitions=valid_next_statuses(order.status),
        )

    now = now or utcnow()
    quote = cancellation_refund(order, pickup_datetime(order), now)
    action, refunded = _release_payment(order, quote.amount_cents, reason or quote.reason, actor_id)

    apply_transition(
        order.id, "canceled_by_customer", actor_id,
        extra_fields={"cancellation_reason": reason or quote.reason},
    )
    db.session.refresh(order)
    logger.info("Order %s canceled by customer (%s, refunded %s)", order.id, action, refunded)

    notifications.send_cancellation_email(order, refunded, quote.reason)
    return CancellationResult(order, quote, refunded, action)


def cancel_order_by_ops(order_id, actor_id, reason):
    """Operations cancellation: any open order, full refund of what is left."""
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason is required")
    order = _load_order(order_id)
    if order.status in CLOSED_STATUSES:
        raise InvalidStateTransition(
            "Order is already closed (status: {})".format(order.status),
            valid_transitions=valid_next_statuses(order.status),
        )

    quote = CancellationQuote(order.total_cents, 100, "Canceled by Bags of Laundry (full refund)")
    action, refunded = _release_payment(order, quote.amount_cents, reason, actor_id)

    apply_transition(
        order.id, "canceled_by_ops", actor_id,
        extra_fields={"cancellation_reason": reason}, skip_validation=True,
    )
    db.session.refresh(order)
    logger.warning("Order %s canceled by ops user %s (%s, refunded %s)", order.id, actor_id, action, refunded)

    notifications.send_cancellation_email(order, refunded, quote.reason)
    return CancellationResult(order, quote, refunded, action)
