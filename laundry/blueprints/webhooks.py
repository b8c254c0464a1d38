"""
Stripe webhook receiver.

Every event is stored in ``webhook_events`` keyed on its Stripe id; a
redelivered event is acknowledged without being processed again.
"""

import json
import logging

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError

from laundry.extensions import limiter
from laundry.models import Customer, Order, WebhookEvent, db
from laundry.rate_limit import rate_limited
from laundry.services import membership
from laundry.services.payments import get_gateway

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhooks", __name__)


@webhook_bp.route("/stripe", methods=["POST"])
@limiter.exempt
@rate_limited("WEBHOOK")
def stripe_webhook():
    """
    Handle Stripe webhook events with signature verification.
    Events: payment_intent.amount_capturable_updated, payment_intent.succeeded,
            payment_intent.payment_failed, customer.subscription.created,
            invoice.payment_succeeded, customer.subscription.deleted
    """
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature", "")
    webhook_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET", "")

    # Verify webhook signature when secret is configured
    if webhook_secret:
        import stripe
        try:
            get_gateway().construct_event(payload, sig_header, webhook_secret)
        except stripe.SignatureVerificationError:
            return jsonify({"error": "Invalid signature"}), 400
        except ValueError:
            return jsonify({"error": "Invalid payload"}), 400

    try:
        event = json.loads(payload)
    except ValueError:
        return jsonify({"error": "Invalid JSON"}), 400
    if not isinstance(event, dict) or not event.get("type"):
        return jsonify({"error": "Invalid payload"}), 400

    event_id = event.get("id")
    event_type = event["type"]
    data_object = (event.get("data") or {}).get("object") or {}

    if event_id and WebhookEvent.query.filter_by(stripe_event_id=event_id).first():
        logger.info("Duplicate webhook %s (%s) ignored", event_id, event_type)
        return jsonify({"received": True, "duplicate": True}), 200

    record = WebhookEvent(stripe_event_id=event_id, event_type=event_type, payload=event, status="received")
    db.session.add(record)
    try:
        db.session.commit()
    except IntegrityError:
        # Concurrent delivery of the same event
        db.session.rollback()
        return jsonify({"received": True, "duplicate": True}), 200

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        record.status = "ignored"
        db.session.commit()
        return jsonify({"received": True}), 200

    try:
        handler(data_object)
        record.status = "processed"
    except Exception as e:
        db.session.rollback()
        logger.exception("Webhook %s (%s) failed", event_id, event_type)
        record = db.session.get(WebhookEvent, record.id)
        record.status = "failed"
        record.error_message = str(e)
    db.session.commit()

    return jsonify({"received": True}), 200


def _order_for_intent(intent):
    intent_id = intent.get("id", "")
    order = Order.query.filter_by(stripe_payment_intent_id=intent_id).first()
    if not order:
        logger.info("No order for payment intent %s", intent_id)
    return order


def _handle_amount_capturable(intent):
    order = _order_for_intent(intent)
    if order and order.payment_status in ("requires_payment", "failed"):
        order.payment_status = "authorized"
        db.session.commit()
        logger.info("Order %s authorized for %s cents", order.id, intent.get("amount_capturable"))


def _handle_payment_succeeded(intent):
    order = _order_for_intent(intent)
    if not order:
        return
    # Refund states are owned by the refund ledger
    if order.payment_status not in ("partially_refunded", "refunded"):
        order.payment_status = "paid"
    charge_id = intent.get("latest_charge")
    if isinstance(charge_id, dict):
        charge_id = charge_id.get("id")
    if charge_id and not order.stripe_charge_id:
        order.stripe_charge_id = charge_id
    db.session.commit()
    logger.info("Order %s paid (%s)", order.id, intent.get("id"))


def _handle_payment_failed(intent):
    order = _order_for_intent(intent)
    if not order:
        return
    order.payment_status = "failed"
    db.session.commit()
    error = intent.get("last_payment_error") or {}
    logger.warning("Payment failed for order %s: %s", order.id, error.get("message"))


def _customer_for_subscription(subscription):
    metadata = subscription.get("metadata") or {}
    if metadata.get("customer_id"):
        customer = db.session.get(Customer, metadata["customer_id"])
        if customer:
            return customer
    stripe_customer = subscription.get("customer")
    if stripe_customer:
        return Customer.query.filter_by(stripe_customer_id=stripe_customer).first()
    return None


def _handle_subscription_created(subscription):
    customer = _customer_for_subscription(subscription)
    if not customer:
        logger.warning("No customer for subscription %s", subscription.get("id"))
        return
    membership.activate_membership(customer, subscription.get("id"))


def _handle_invoice_paid(invoice):
    subscription_id = invoice.get("subscription")
    if subscription_id:
        membership.extend_membership(subscription_id)


def _handle_subscription_deleted(subscription):
    membership.cancel_membership(subscription.get("id"))


EVENT_HANDLERS = {
    "payment_intent.amount_capturable_updated": _handle_amount_capturable,
    "payment_intent.succeeded": _handle_payment_succeeded,
    "payment_intent.payment_failed": _handle_payment_failed,
    "customer.subscription.created": _handle_subscription_created,
    "invoice.payment_succeeded": _handle_invoice_paid,
    "customer.subscription.deleted": _handle_subscription_deleted,
}
