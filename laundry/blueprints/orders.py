"""
Customer order routes: place an order, look it up, cancel it.
"""

from flask import Blueprint, jsonify, request

from laundry.auth import require_auth, require_roles
from laundry.blueprints.common import (
    can_view_any_order, get_order_or_404, load_customer_order, order_payload,
)
from laundry.models import utcnow
from laundry.rate_limit import rate_limited
from laundry.services import orders as order_service
from laundry.services.order_status import can_transition

orders_bp = Blueprint("orders", __name__)


@orders_bp.route("/create-order", methods=["POST"])
@rate_limited("ORDER_CREATE")
@require_roles("customer")
def create_order(identity):
    """
    Place an order and open its payment.
    Body JSON: customerName, customerEmail, customerPhone, orderType|pricingModel,
               pickupDate, pickupTimeWindowId, pickupAddress, addons, ...
    Header: Idempotency-Key (optional)
    """
    data = request.get_json() or {}
    placement = order_service.create_order(
        data, identity.user_id, idempotency_key=request.headers.get("Idempotency-Key")
    )
    order = placement.order

    return jsonify({
        "success": True,
        "orderId": order.id,
        "clientSecret": placement.client_secret,
        "paymentIntentId": placement.payment_intent_id,
        "totalCents": order.total_cents,
        "laundromat": placement.laundromat.name if placement.laundromat else None,
        "order": order_payload(order),
    }), 201


@orders_bp.route("/orders/<order_id>", methods=["GET"])
@rate_limited("READ")
@require_auth
def get_order(identity, order_id):
    if can_view_any_order(identity):
        order = get_order_or_404(order_id)
    else:
        order = load_customer_order(order_id, identity)
    return jsonify({"success": True, "order": order_payload(order, include_history=True)}), 200


@orders_bp.route("/orders/<order_id>/cancellation-quote", methods=["GET"])
@rate_limited("READ")
@require_auth
def cancellation_quote(identity, order_id):
    """What a cancellation right now would refund."""
    order = load_customer_order(order_id, identity)
    quote = order_service.cancellation_refund(order, order_service.pickup_datetime(order), utcnow())
    return jsonify({
        "success": True,
        "cancellable": can_transition(order.status, "canceled_by_customer"),
        "refundCents": quote.amount_cents,
        "refundPercent": quote.percent,
        "policy": quote.reason,
    }), 200


@orders_bp.route("/orders/<order_id>/cancel", methods=["POST"])
@rate_limited("GENERAL")
@require_auth
def cancel_order(identity, order_id):
    data = request.get_json(silent=True) or {}
    order = load_customer_order(order_id, identity)
    result = order_service.cancel_order(order.id, identity.user_id, reason=data.get("reason"))
    return jsonify({
        "success": True,
        "order": order_payload(result.order),
        "refundCents": result.refund_cents,
        "paymentAction": result.payment_action,
        "policy": result.quote.reason,
    }), 200
