"""
Payment routes for laundromat staff and admins: bag weight adjustment,
final per-pound capture and refunds.
"""

from flask import Blueprint, jsonify, request

from laundry.auth import require_roles
from laundry.blueprints.common import load_staff_order, order_payload
from laundry.errors import ValidationError
from laundry.rate_limit import rate_limited
from laundry.services import orders as order_service

payments_bp = Blueprint("payments", __name__)


def _order_id(data):
    order_id = data.get("orderId") or data.get("order_id")
    if not order_id:
        raise ValidationError("orderId is required")
    return order_id


@payments_bp.route("/adjust-weight", methods=["POST"])
@rate_limited("PAYMENT")
@require_roles("laundromat_staff")
def adjust_weight(identity):
    """
    Record the measured weight of a bag order; charges the overweight fee if any.
    Body JSON: orderId (str), actualWeight (number, lbs)
    """
    data = request.get_json() or {}
    order, _ = load_staff_order(_order_id(data), identity)

    result = order_service.adjust_weight(order.id, data.get("actualWeight"), identity.user_id)
    overweight = result.overweight
    return jsonify({
        "success": True,
        "overweight": overweight.overweight,
        "overageLbs": overweight.overage_lb,
        "weightLimit": overweight.weight_limit,
        "feeCents": result.fee_cents,
        "newTotalCents": result.new_total_cents,
        "paymentIntentId": result.payment_intent_id,
        "order": order_payload(result.order),
    }), 200


@payments_bp.route("/capture-payment", methods=["POST"])
@rate_limited("PAYMENT")
@require_roles("laundromat_staff")
def capture_payment(identity):
    """
    Capture the final amount for a per-pound order.
    Body JSON: orderId, actualWeight, addOns ([{name, price}] cents, optional),
               rushFeeCents (int, optional)
    """
    data = request.get_json() or {}
    order, _ = load_staff_order(_order_id(data), identity)

    result = order_service.capture_final_payment(
        order.id,
        data.get("actualWeight"),
        add_ons=data.get("addOns") or data.get("addons"),
        rush_fee_cents=data.get("rushFeeCents", 0),
        actor_id=identity.user_id,
    )
    return jsonify({
        "success": True,
        "finalAmountCents": result.final_amount_cents,
        "authorizedAmountCents": result.authorized_amount_cents,
        "ratePerPound": result.price.rate_per_pound,
        "minimumApplied": result.price.minimum_applied,
        "memberSavingsCents": result.price.savings,
        "chargeId": result.charge_id,
        "anomaly": result.anomaly,
        "order": order_payload(result.order),
    }), 200


@payments_bp.route("/refund-payment", methods=["POST"])
@rate_limited("PAYMENT")
@require_roles("admin")
def refund_payment(identity):
    """
    Refund part or all of a captured order.
    Body JSON: orderId, amountCents (int), reason (str), reasonInternal (str, optional)
    Header: Idempotency-Key (optional)
    """
    data = request.get_json() or {}
    result = order_service.refund_order(
        _order_id(data),
        data.get("amountCents"),
        data.get("reason"),
        actor_id=identity.user_id,
        reason_internal=data.get("reasonInternal"),
        idempotency_key=request.headers.get("Idempotency-Key"),
    )
    return jsonify({
        "success": True,
        "refundId": result.refund.stripe_refund_id,
        "refundIds": [r.stripe_refund_id for r in result.refunds],
        "amountCents": result.amount_cents,
        "totalRefundedCents": result.total_refunded_cents,
        "remainingCents": result.remaining_cents,
        "paymentStatus": result.payment_status,
    }), 200
