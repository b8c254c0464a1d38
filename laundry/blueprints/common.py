"""
Helpers shared by the API blueprints: order lookup with ownership and
laundromat checks, and the order payload returned to clients.
"""
from laundry.auth import is_admin
from laundry.errors import AuthorizationError, NotFoundError
from laundry.models import LaundromatStaff, Order, OrderStatusHistory, Refund, db
from laundry.roles import Role, has_role
from laundry.services.order_status import status_display, valid_next_statuses


def get_order_or_404(order_id):
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def load_customer_order(order_id, identity):
    """The order, if it belongs to the caller (admins see everything)."""
    order = get_order_or_404(order_id)
    if is_admin(identity):
        return order
    if not order.customer or order.customer.auth_user_id != identity.user_id:
        # Don't reveal other customers' order ids
        raise NotFoundError("Order not found")
    return order


def staff_laundromat(identity):
    """The laundromat the caller works at, or None for admins."""
    if is_admin(identity):
        return None
    staff = LaundromatStaff.query.filter_by(auth_user_id=identity.user_id).first()
    if not staff:
        raise AuthorizationError("No laundromat assignment found")
    return staff.laundromat


def load_staff_order(order_id, identity):
    """The order, if it is assigned to the caller's laundromat. Returns (order, laundromat)."""
    laundromat = staff_laundromat(identity)
    order = get_order_or_404(order_id)
    if laundromat is not None and order.assigned_laundromat_id != laundromat.id:
        raise AuthorizationError("Order not assigned to your laundromat")
    return order, laundromat or order.laundromat


def load_driver_order(order_id, identity):
    order = get_order_or_404(order_id)
    if order.driver_id and order.driver_id != identity.user_id and not is_admin(identity):
        raise AuthorizationError("Order is assigned to another driver")
    return order


def can_view_any_order(identity):
    return has_role(identity.roles, (Role.DRIVER, Role.LAUNDROMAT_STAFF))


def order_payload(order, include_history=False):
    data = order.to_dict()
    data["status_label"] = status_display(order.status)
    data["valid_transitions"] = valid_next_statuses(order.status)
    data["pickup_time_window"] = order.pickup_time_window.label if order.pickup_time_window else None
    data["pickup_address"] = order.pickup_address.one_line() if order.pickup_address else None
    if include_history:
        data["status_history"] = [h.to_dict() for h in order.status_history.order_by(OrderStatusHistory.changed_at)]
        data["refunds"] = [r.to_dict() for r in order.refunds.order_by(Refund.created_at)]
    return data
