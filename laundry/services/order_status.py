"""
Order status state machine.

The transition table is the only source of truth for which status changes
are allowed. ``apply_transition`` is the only way status is written: it
checks the table, then updates the row only if the status is still the one
it read, so two concurrent writers cannot both move the same order.
"""

import logging
import math
from collections import namedtuple

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from laundry.errors import InvalidStateTransition, NotFoundError, StaleOrderStatus, ValidationError
from laundry.models import Order, OrderStatusHistory, ORDER_STATUSES, db, utcnow

logger = logging.getLogger(__name__)

Transition = namedtuple("Transition", ["from_status", "to_status", "trigger", "notifications", "requires_data"])
TransitionResult = namedtuple("TransitionResult", ["order", "status", "previous_status", "updated_at"])

TRANSITIONS = (
    Transition("draft", "scheduled", "payment_confirmed", ("email", "sms"), ()),
    Transition("scheduled", "en_route_pickup", "driver_dispatched", ("sms",), ()),
    Transition("en_route_pickup", "picked_up", "items_collected", (), ("actual_weight",)),
    Transition("picked_up", "processing", "arrived_at_facility", (), ()),
    Transition("processing", "ready_for_delivery", "cleaning_completed", (), ()),
    Transition("ready_for_delivery", "en_route_delivery", "out_for_delivery", ("sms",), ()),
    Transition("en_route_delivery", "delivered", "items_delivered", ("email",), ()),
    Transition("delivered", "completed", "payment_finalized", (), ()),
    Transition("scheduled", "canceled_by_customer", "customer_cancellation", (), ()),
    Transition("scheduled", "no_show", "pickup_missed", (), ()),
    Transition("processing", "issue_flagged", "damage_reported", (), ()),
)

# from_status -> {to_status: Transition}
_ADJACENCY = {status: {} for status in ORDER_STATUSES}
for _t in TRANSITIONS:
    _ADJACENCY[_t.from_status][_t.to_status] = _t

STATUS_LABELS = {
    "draft": "Draft",
    "scheduled": "Scheduled",
    "en_route_pickup": "Driver on the way",
    "picked_up": "Picked up",
    "processing": "Being cleaned",
    "ready_for_delivery": "Ready for delivery",
    "en_route_delivery": "Out for delivery",
    "delivered": "Delivered",
    "completed": "Completed",
    "canceled_by_customer": "Canceled",
    "canceled_by_ops": "Canceled by Bags of Laundry",
    "no_show": "Missed pickup",
    "issue_flagged": "Issue reported",
}

# Columns a transition may set alongside status
_EXTRA_FIELDS = {
    "actual_weight": "measured_weight_lb",
    "measured_weight_lb": "measured_weight_lb",
    "driver_id": "driver_id",
    "picked_up_at": "picked_up_at",
    "ready_for_delivery_at": "ready_for_delivery_at",
    "delivered_at": "delivered_at",
    "canceled_at": "canceled_at",
    "delivery_notes": "delivery_notes",
    "cancellation_reason": "cancellation_reason",
    "notes": "notes",
}

_STATUS_TIMESTAMPS = {
    "picked_up": "picked_up_at",
    "ready_for_delivery": "ready_for_delivery_at",
    "delivered": "delivered_at",
    "canceled_by_customer": "canceled_at",
    "canceled_by_ops": "canceled_at",
}


def can_transition(from_status, to_status):
    return to_status in _ADJACENCY.get(from_status, {})


def get_transition(from_status, to_status):
    return _ADJACENCY.get(from_status, {}).get(to_status)


def valid_transitions(from_status):
    return list(_ADJACENCY.get(from_status, {}).values())


def valid_next_statuses(from_status):
    return [t.to_status for t in valid_transitions(from_status)]


def is_terminal(status):
    return status in ORDER_STATUSES and not _ADJACENCY[status]


def status_display(status):
    return STATUS_LABELS.get(status, status.replace("_", " ").title())


def _column_values(extra_fields):
    values = {}
    unknown = [k for k in extra_fields if k not in _EXTRA_FIELDS]
    if unknown:
        raise ValidationError("Unknown fields: {}".format(", ".join(sorted(unknown))))

    for key, value in extra_fields.items():
        if value is None:
            continue
        if _EXTRA_FIELDS[key] == "measured_weight_lb":
            if isinstance(value, bool) or not isinstance(value, (int, float)) \
                    or not math.isfinite(value) or value <= 0:
                raise ValidationError("{} must be a positive number".format(key))
            value = float(value)
        values[_EXTRA_FIELDS[key]] = value
    return values


def apply_transition(order_id, to_status, actor_id=None, extra_fields=None, skip_validation=False):
    """Move an order to ``to_status``.

    Raises NotFoundError, InvalidStateTransition (with the valid next
    statuses), ValidationError for missing/invalid data, and StaleOrderStatus
    when the order changed underneath us. Nothing is written on failure.
    ``skip_validation`` is the admin override: it bypasses the table and is
    logged and flagged in the history.
    """
    if to_status not in ORDER_STATUSES:
        raise ValidationError("Unknown status: {}".format(to_status), {"validStatuses": list(ORDER_STATUSES)})

    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")

    current = order.status
    extra_fields = dict(extra_fields or {})
    transition = get_transition(current, to_status)

    if skip_validation:
        logger.warning(
            "Status override on order %s: %s -> %s by %s", order_id, current, to_status, actor_id
        )
    else:
        if transition is None:
            raise InvalidStateTransition(
                "Cannot transition from {} to {}".format(current, to_status),
                valid_transitions=valid_next_statuses(current),
                payload={"currentStatus": current},
            )
        missing = [f for f in transition.requires_data if extra_fields.get(f) is None]
        if missing:
            raise ValidationError(
                "Missing required data: {}".format(", ".join(missing)), {"missingFields": missing}
            )

    now = utcnow()
    values = _column_values(extra_fields)
    timestamp_column = _STATUS_TIMESTAMPS.get(to_status)
    if timestamp_column and timestamp_column not in values:
        values[timestamp_column] = now
    values.update(status=to_status, updated_at=now)

    result = db.session.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        raise StaleOrderStatus(valid_transitions=valid_next_statuses(current))

    try:
        with db.session.begin_nested():
            db.session.add(OrderStatusHistory(
                order_id=order_id,
                status=to_status,
                previous_status=current,
                changed_by=actor_id,
                override=bool(skip_validation),
                changed_at=now,
            ))
    except SQLAlchemyError:
        logger.exception("Failed to record status history for order %s", order_id)

    db.session.commit()
    db.session.refresh(order)
    logger.info("Order %s: %s -> %s (actor %s)", order_id, current, to_status, actor_id)

    if transition is not None and transition.notifications:
        from laundry.notifications import notify_status_change
        notify_status_change(order, transition)

    return TransitionResult(order, to_status, current, order.updated_at)
