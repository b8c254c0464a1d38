"""
Admin routes: status overrides, operations cancellations and the refund ledger.
"""

import logging

from flask import Blueprint, jsonify, request

from laundry.auth import require_roles
from laundry.blueprints.common import get_order_or_404, order_payload
from laundry.errors import ValidationError
from laundry.rate_limit import rate_limited
from laundry.services import orders as order_service
from laundry.services.order_status import apply_transition

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)


@admin_bp.route("/orders/<order_id>/status", methods=["POST"])
@rate_limited("GENERAL")
@require_roles("admin")
def set_status(identity, order_id):
    """
    Move an order to any status.
    Body JSON: status (str), skipValidation (bool, default false), notes (str, optional)
    """
    data = request.get_json() or {}
    status = data.get("status")
    if not status:
        raise ValidationError("status is required")
    skip_validation = data.get("skipValidation") is True

    extra = {}
    if data.get("notes"):
        extra["notes"] = data["notes"]
    if data.get("actualWeight") is not None:
        extra["actual_weight"] = data["actualWeight"]

    result = apply_transition(
        order_id, status, identity.user_id, extra_fields=extra, skip_validation=skip_validation
    )
    return jsonify({
        "success": True,
        "status": result.status,
        "previousStatus": result.previous_status,
        "override": skip_validation,
        "order": order_payload(result.order),
    }), 200


@admin_bp.route("/orders/<order_id>/cancel", methods=["POST"])
@rate_limited("GENERAL")
@require_roles("admin")
def cancel_order(identity, order_id):
    """Body JSON: reason (str)"""
    data = request.get_json() or {}
    result = order_service.cancel_order_by_ops(order_id, identity.user_id, data.get("reason"))
    return jsonify({
        "success": True,
        "refundCents": result.refund_cents,
        "paymentAction": result.payment_action,
        "order": order_payload(result.order),
    }), 200


@admin_bp.route("/orders/<order_id>/refunds", methods=["GET"])
@rate_limited("READ")
@require_roles("admin")
def list_refunds(identity, order_id):
    """The refund ledger for an order, and whether the order's mirror agrees with it."""
    order = get_order_or_404(order_id)
    ledger_total = order_service.refunded_total(order.id)
    if ledger_total != order.refund_amount_cents:
        logger.warning("Refund mirror mismatch on order %s: ledger %s, order %s",
                       order.id, ledger_total, order.refund_amount_cents)

    return jsonify({
        "success": True,
        "orderId": order.id,
        "totalCents": order.total_cents,
        "refundedCents": ledger_total,
        "remainingCents": order.total_cents - ledger_total,
        "mirrorConsistent": ledger_total == order.refund_amount_cents,
        "refunds": order_payload(order, include_history=True)["refunds"],
    }), 200
