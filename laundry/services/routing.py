"""
Routes orders to partner laundromats by pickup ZIP code.
"""

import logging

from sqlalchemy import update

from laundry.errors import NotFoundError, ValidationError
from laundry.models import Laundromat, LaundromatServiceArea, Order, db, utcnow

logger = logging.getLogger(__name__)


def find_laundromats_by_zip(zip_code):
    """Active laundromats serving ``zip_code`` with capacity left, least busy first."""
    zip_code = (zip_code or "").strip()[:5]
    if not zip_code:
        return []
    return (
        Laundromat.query
        .join(LaundromatServiceArea, LaundromatServiceArea.laundromat_id == Laundromat.id)
        .filter(
            LaundromatServiceArea.zip_code == zip_code,
            Laundromat.is_active.is_(True),
            Laundromat.today_orders < Laundromat.max_daily_orders,
        )
        .order_by(Laundromat.today_orders.asc(), Laundromat.name.asc())
        .all()
    )


def assign_order_to_laundromat(order_id, laundromat_id, routing_method="zip_match"):
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    laundromat = db.session.get(Laundromat, laundromat_id)
    if not laundromat:
        raise NotFoundError("Laundromat not found")
    if not laundromat.is_active:
        raise ValidationError("Laundromat is not active")

    order.assigned_laundromat_id = laundromat.id
    order.assigned_at = utcnow()
    order.routing_method = routing_method
    db.session.execute(
        update(Laundromat)
        .where(Laundromat.id == laundromat.id)
        .values(today_orders=Laundromat.today_orders + 1)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    db.session.refresh(laundromat)
    logger.info("Order %s assigned to laundromat %s (%s)", order_id, laundromat.name, routing_method)
    return order, laundromat


def auto_assign(order):
    """Best-effort ZIP routing at order creation. Returns the laundromat or None."""
    try:
        zip_code = order.pickup_address.postal_code if order.pickup_address else None
        candidates = find_laundromats_by_zip(zip_code)
        if not candidates:
            logger.info("No laundromat with capacity serves %s (order %s)", zip_code, order.id)
            return None
        _, laundromat = assign_order_to_laundromat(order.id, candidates[0].id, "zip_match")
        return laundromat
    except Exception:
        db.session.rollback()
        logger.exception("Auto-assignment failed for order %s", order.id)
        return None
