"""
Driver routes: the day's task list and the pickup/delivery status steps.

Each step is one state machine edge. A step that doesn't match the order's
current status answers 400 with the statuses it could move to instead.
"""

from flask import Blueprint, jsonify, request
from sqlalchemy import or_

from laundry.auth import is_admin, require_roles
from laundry.blueprints.common import load_driver_order, order_payload
from laundry.errors import ValidationError
from laundry.models import Order
from laundry.rate_limit import rate_limited
from laundry.services.order_status import apply_transition
from laundry.validators import parse_iso_date

driver_bp = Blueprint("driver", __name__)

PICKUP_STATUSES = ("scheduled", "en_route_pickup")
IN_PROCESS_STATUSES = ("picked_up", "processing")
DELIVERY_STATUSES = ("ready_for_delivery", "en_route_delivery")


@driver_bp.route("/tasks", methods=["GET"])
@rate_limited("READ")
@require_roles("driver")
def get_tasks(identity):
    """Orders for a day (``?date=YYYY-MM-DD``) that are unassigned or assigned to this driver."""
    query = Order.query
    date_param = request.args.get("date")
    if date_param:
        day = parse_iso_date(date_param)
        if day is None:
            raise ValidationError("date must be YYYY-MM-DD")
        query = query.filter(Order.pickup_date == day)
    if not is_admin(identity):
        query = query.filter(or_(Order.driver_id.is_(None), Order.driver_id == identity.user_id))

    orders = query.filter(
        Order.status.in_(PICKUP_STATUSES + IN_PROCESS_STATUSES + DELIVERY_STATUSES)
    ).order_by(Order.pickup_date, Order.created_at).all()

    def bucket(statuses):
        return [order_payload(o) for o in orders if o.status in statuses]

    pickups = bucket(PICKUP_STATUSES)
    in_process = bucket(IN_PROCESS_STATUSES)
    deliveries = bucket(DELIVERY_STATUSES)
    return jsonify({
        "success": True,
        "pickups": pickups,
        "inProcess": in_process,
        "deliveries": deliveries,
        "summary": {
            "pickups": len(pickups),
            "inProcess": len(in_process),
            "deliveries": len(deliveries),
        },
    }), 200


def _step(order_id, identity, to_status, extra_fields=None):
    order = load_driver_order(order_id, identity)
    result = apply_transition(order.id, to_status, identity.user_id, extra_fields=extra_fields)
    return jsonify({
        "success": True,
        "status": result.status,
        "previousStatus": result.previous_status,
        "order": order_payload(result.order),
    }), 200


@driver_bp.route("/orders/<order_id>/start-route", methods=["POST"])
@rate_limited("GENERAL")
@require_roles("driver")
def start_route(identity, order_id):
    return _step(order_id, identity, "en_route_pickup", {"driver_id": identity.user_id})


@driver_bp.route("/orders/<order_id>/pickup", methods=["POST"])
@rate_limited("GENERAL")
@require_roles("driver")
def pickup(identity, order_id):
    """Body JSON: actualWeight (number, lbs), notes (str, optional)"""
    data = request.get_json() or {}
    extra = {"actual_weight": data.get("actualWeight")}
    if data.get("notes"):
        extra["notes"] = data["notes"]
    return _step(order_id, identity, "picked_up", extra)


@driver_bp.route("/orders/<order_id>/arrive-facility", methods=["POST"])
@rate_limited("GENERAL")
@require_roles("driver")
def arrive_facility(identity, order_id):
    return _step(order_id, identity, "processing")


@driver_bp.route("/orders/<order_id>/processing-complete", methods=["POST"])
@rate_limited("GENERAL")
@require_roles("driver")
def processing_complete(identity, order_id):
    return _step(order_id, identity, "ready_for_delivery")


@driver_bp.route("/orders/<order_id>/pickup-laundromat", methods=["POST"])
@rate_limited("GENERAL")
@require_roles("driver")
def pickup_laundromat(identity, order_id):
    return _step(order_id, identity, "en_route_delivery", {"driver_id": identity.user_id})


@driver_bp.route("/orders/<order_id>/dropoff", methods=["POST"])
@rate_limited("GENERAL")
@require_roles("driver")
def dropoff(identity, order_id):
    """Body JSON: deliveryNotes (str, optional)"""
    data = request.get_json(silent=True) or {}
    extra = {}
    if data.get("deliveryNotes"):
        extra["delivery_notes"] = data["deliveryNotes"]
    return _step(order_id, identity, "delivered", extra)
