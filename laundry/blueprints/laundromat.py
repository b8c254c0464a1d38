"""
Laundromat staff routes: record weights, move orders through processing,
message customers, and route orders to a laundromat.
"""

import logging

from flask import Blueprint, jsonify, request

from laundry.auth import is_admin, require_roles
from laundry.blueprints.common import get_order_or_404, load_staff_order, order_payload, staff_laundromat
from laundry.errors import AuthorizationError, ValidationError
from laundry.models import db
from laundry.notifications import MESSAGE_TEMPLATES, render_staff_message, send_sms
from laundry.rate_limit import rate_limited
from laundry.services import membership, pricing, routing
from laundry.services import orders as order_service
from laundry.services.order_status import apply_transition

logger = logging.getLogger(__name__)

laundromat_bp = Blueprint("laundromat", __name__)


@laundromat_bp.route("/laundromat/orders/<order_id>/weight", methods=["POST"])
@rate_limited("GENERAL")
@require_roles("laundromat_staff")
def record_weight(identity, order_id):
    """
    Record the measured weight.
    Bag orders go through weight adjustment (and may be charged an overweight fee).
    Per-pound orders just store the weight and return the repriced total; the
    money moves later through /capture-payment.
    Body JSON: weight (number, lbs)
    """
    data = request.get_json() or {}
    order, _ = load_staff_order(order_id, identity)
    weight = data.get("weight", data.get("actualWeight"))

    if order.is_bag_order:
        result = order_service.adjust_weight(order.id, weight, identity.user_id)
        return jsonify({
            "success": True,
            "weight": result.overweight.actual_weight,
            "overweight": result.overweight.overweight,
            "feeCents": result.fee_cents,
            "totalCents": result.new_total_cents,
            "order": order_payload(result.order),
        }), 200

    weight = pricing.validate_weight(weight, "weight")
    is_member = membership.is_active_member(order.customer)
    quote = pricing.compute_per_pound_price(weight, is_member)
    order.measured_weight_lb = weight
    db.session.commit()
    logger.info("Order %s weighed at %s lb by %s", order.id, weight, identity.user_id)

    return jsonify({
        "success": True,
        "weight": weight,
        "ratePerPound": quote.rate_per_pound,
        "subtotalCents": quote.subtotal,
        "totalCents": quote.total,
        "minimumApplied": quote.minimum_applied,
        "memberSavingsCents": quote.savings,
        "order": order_payload(order),
    }), 200


@laundromat_bp.route("/laundromat/orders/<order_id>/status", methods=["POST"])
@rate_limited("GENERAL")
@require_roles("laundromat_staff")
def update_status(identity, order_id):
    """Body JSON: status (str), notes (str, optional)"""
    data = request.get_json() or {}
    status = data.get("status")
    if not status:
        raise ValidationError("status is required")

    order, _ = load_staff_order(order_id, identity)
    extra = {}
    if data.get("notes"):
        extra["notes"] = data["notes"]
    if data.get("actualWeight") is not None:
        extra["actual_weight"] = data["actualWeight"]

    result = apply_transition(order.id, status, identity.user_id, extra_fields=extra)
    return jsonify({
        "success": True,
        "status": result.status,
        "previousStatus": result.previous_status,
        "order": order_payload(result.order),
    }), 200


@laundromat_bp.route("/laundromat/orders/<order_id>/message", methods=["POST"])
@rate_limited("GENERAL")
@require_roles("laundromat_staff")
def send_message(identity, order_id):
    """
    Text the customer.
    Body JSON: messageType (template name) or customMessage, phoneNumber (optional override)
    """
    data = request.get_json() or {}
    order, laundromat = load_staff_order(order_id, identity)
    customer = order.customer
    phone_override = data.get("phoneNumber")

    target_phone = phone_override or customer.phone
    if not target_phone:
        raise ValidationError("No phone number available for this customer")
    if not customer.sms_opt_in and not phone_override:
        raise ValidationError("Customer has not opted into SMS notifications")

    message_type = data.get("messageType")
    if data.get("customMessage"):
        message = data["customMessage"]
    else:
        message = render_staff_message(
            message_type, order,
            laundromat_name=laundromat.name if laundromat else None,
            is_member=membership.is_active_member(customer),
        )
        if message is None:
            raise ValidationError(
                "Either customMessage or valid messageType is required",
                {"availableTemplates": list(MESSAGE_TEMPLATES)},
            )

    sid = send_sms(target_phone, message, order_id=order.id, event=message_type or "custom_message")
    return jsonify({
        "success": True,
        "orderId": order.id,
        "messageType": message_type or "custom",
        "sentTo": target_phone,
        "message": message,
        "smsId": sid,
    }), 200


@laundromat_bp.route("/assign-laundromat", methods=["POST"])
@rate_limited("GENERAL")
@require_roles("laundromat_staff")
def assign_laundromat(identity):
    """
    Route an order to a laundromat.
    Body JSON: orderId, laundromatId (manual) or zipCode (least busy match)
    """
    data = request.get_json() or {}
    order = get_order_or_404(data.get("orderId"))

    if data.get("laundromatId"):
        laundromat_id = data["laundromatId"]
        method = "manual"
    else:
        zip_code = data.get("zipCode") or (order.pickup_address.postal_code if order.pickup_address else None)
        candidates = routing.find_laundromats_by_zip(zip_code)
        if not candidates:
            return jsonify({
                "success": False,
                "error": "No laundromat with capacity serves this ZIP code",
                "zipCode": zip_code,
            }), 404
        laundromat_id = candidates[0].id
        method = "zip_match"

    # Staff may only route orders to their own laundromat
    if not is_admin(identity):
        own = staff_laundromat(identity)
        if own.id != laundromat_id:
            raise AuthorizationError("Staff can only assign orders to their own laundromat")

    order, laundromat = routing.assign_order_to_laundromat(order.id, laundromat_id, method)
    return jsonify({
        "success": True,
        "orderId": order.id,
        "laundromat": laundromat.to_dict(),
        "routingMethod": method,
    }), 200
