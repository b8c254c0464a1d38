"""
Membership lookups and the subscription lifecycle driven by Stripe webhooks.
"""

import logging

from laundry.models import Membership, db, utcnow, as_utc
from laundry.services.pricing import membership_expiration

logger = logging.getLogger(__name__)


def current_membership(customer, now=None):
    if customer is None:
        return None
    now = now or utcnow()
    memberships = customer.memberships.order_by(Membership.end_date.desc()).all()
    for membership in memberships:
        if membership.is_current(now):
            return membership
    return None


def is_active_member(customer, now=None):
    return current_membership(customer, now) is not None


def activate_membership(customer, subscription_id=None, start=None):
    """Start (or restart) a six-month membership for ``customer``."""
    start = start or utcnow()
    membership = None
    if subscription_id:
        membership = Membership.query.filter_by(stripe_subscription_id=subscription_id).first()
    if membership is None:
        membership = Membership(customer_id=customer.id, stripe_subscription_id=subscription_id)
        db.session.add(membership)

    membership.status = "active"
    membership.start_date = start
    membership.end_date = membership_expiration(start)
    db.session.commit()
    logger.info("Membership %s active for customer %s until %s",
                membership.id, customer.id, membership.end_date)
    return membership


def extend_membership(subscription_id, now=None):
    """Recurring payment received: push the end date out one term."""
    membership = Membership.query.filter_by(stripe_subscription_id=subscription_id).first()
    if not membership:
        logger.warning("No membership for subscription %s", subscription_id)
        return None

    now = now or utcnow()
    current_end = as_utc(membership.end_date)
    base = current_end if current_end and current_end > now else now
    membership.status = "active"
    membership.end_date = membership_expiration(base)
    db.session.commit()
    logger.info("Membership %s extended to %s", membership.id, membership.end_date)
    return membership


def cancel_membership(subscription_id):
    membership = Membership.query.filter_by(stripe_subscription_id=subscription_id).first()
    if not membership:
        logger.warning("No membership for subscription %s", subscription_id)
        return None
    membership.status = "canceled"
    db.session.commit()
    logger.info("Membership %s canceled", membership.id)
    return membership
