"""
Payment gateway used by the order lifecycle.

``StripeGateway`` talks to Stripe. Every call that moves money carries an
idempotency key, so a retried request can never charge or refund twice.

``DevPaymentGateway`` is used when STRIPE_SECRET_KEY is not configured
(local development and tests). It keeps intents in memory, hands out
``pi_dev_*`` ids, replays idempotent requests and enforces the same
amount limits Stripe would.
"""

import json
import logging
from collections import namedtuple

from flask import current_app

from laundry.errors import PaymentProcessorError
from laundry.models import generate_uuid

logger = logging.getLogger(__name__)

Intent = namedtuple(
    "Intent",
    ["id", "client_secret", "status", "amount", "amount_received", "amount_refunded",
     "charge_id", "customer", "payment_method"],
)
RefundRecord = namedtuple("RefundRecord", ["id", "status", "amount"])

# Stripe only accepts these refund reasons
STRIPE_REFUND_REASONS = ("duplicate", "fraudulent", "requested_by_customer")


def payment_status_for_intent(intent_status):
    """Map a PaymentIntent status to the order's payment status."""
    if intent_status == "requires_capture":
        return "authorized"
    if intent_status == "succeeded":
        return "paid"
    if intent_status == "canceled":
        return "canceled"
    return "requires_payment"


def get_gateway():
    return current_app.extensions["payments"]


def init_payments(app):
    if app.config.get("STRIPE_SECRET_KEY"):
        app.extensions["payments"] = StripeGateway(app.config["STRIPE_SECRET_KEY"])
    else:
        if not app.config.get("TESTING"):
            logger.warning("STRIPE_SECRET_KEY not set; using the in-memory development payment gateway")
        app.extensions["payments"] = DevPaymentGateway()


# ---------------------------------------------------------------------------
# Stripe
# ---------------------------------------------------------------------------
class StripeGateway:
    def __init__(self, api_key):
        import stripe
        stripe.api_key = api_key
        self.stripe = stripe

    def _call(self, description, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except self.stripe.StripeError as e:
            logger.error("Stripe %s failed: %s", description, e)
            raise PaymentProcessorError(
                "Stripe error: {}".format(e.user_message or str(e)),
                detail=str(e),
                code=getattr(e, "code", None),
            )

    def _intent(self, obj):
        charge = obj.get("latest_charge")
        amount_refunded = 0
        charge_id = None
        if isinstance(charge, str):
            charge_id = charge
        elif charge:
            charge_id = charge.get("id")
            amount_refunded = charge.get("amount_refunded") or 0
        payment_method = obj.get("payment_method")
        if payment_method is not None and not isinstance(payment_method, str):
            payment_method = payment_method.get("id")
        customer = obj.get("customer")
        if customer is not None and not isinstance(customer, str):
            customer = customer.get("id")
        return Intent(
            id=obj["id"],
            client_secret=obj.get("client_secret"),
            status=obj.get("status"),
            amount=obj.get("amount"),
            amount_received=obj.get("amount_received") or 0,
            amount_refunded=amount_refunded,
            charge_id=charge_id,
            customer=customer,
            payment_method=payment_method,
        )

    def create_intent(self, amount, idempotency_key, capture_method="manual", metadata=None,
                      description=None, receipt_email=None, customer=None,
                      payment_method=None, confirm=False, off_session=False):
        params = {
            "amount": amount,
            "currency": "usd",
            "capture_method": capture_method,
            "metadata": metadata or {},
            "idempotency_key": idempotency_key,
        }
        if description:
            params["description"] = description
        if receipt_email:
            params["receipt_email"] = receipt_email
        if customer:
            params["customer"] = customer
        if payment_method:
            params["payment_method"] = payment_method
        if confirm:
            params["confirm"] = True
            params["off_session"] = off_session
        else:
            params["automatic_payment_methods"] = {"enabled": True}
        return self._intent(self._call("create intent", self.stripe.PaymentIntent.create, **params))

    def retrieve_intent(self, intent_id):
        obj = self._call(
            "retrieve intent", self.stripe.PaymentIntent.retrieve, intent_id, expand=["latest_charge"]
        )
        return self._intent(obj)

    def update_amount(self, intent_id, amount, idempotency_key):
        obj = self._call(
            "update intent", self.stripe.PaymentIntent.modify, intent_id,
            amount=amount, idempotency_key=idempotency_key,
        )
        return self._intent(obj)

    def capture(self, intent_id, amount_to_capture, idempotency_key):
        obj = self._call(
            "capture", self.stripe.PaymentIntent.capture, intent_id,
            amount_to_capture=amount_to_capture, idempotency_key=idempotency_key,
        )
        return self._intent(obj)

    def cancel(self, intent_id, idempotency_key):
        obj = self._call(
            "cancel intent", self.stripe.PaymentIntent.cancel, intent_id, idempotency_key=idempotency_key
        )
        return self._intent(obj)

    def refund(self, intent_id, amount, idempotency_key, reason=None, metadata=None):
        params = {
            "payment_intent": intent_id,
            "amount": amount,
            "metadata": metadata or {},
            "idempotency_key": idempotency_key,
        }
        if reason in STRIPE_REFUND_REASONS:
            params["reason"] = reason
        obj = self._call("refund", self.stripe.Refund.create, **params)
        return RefundRecord(obj["id"], obj.get("status"), obj.get("amount"))

    def construct_event(self, payload, sig_header, secret):
        return self.stripe.Webhook.construct_event(payload, sig_header, secret)


# ---------------------------------------------------------------------------
# In-memory development gateway
# ---------------------------------------------------------------------------
class DevPaymentGateway:
    """Stand-in for Stripe when no key is configured.

    Manual-capture intents are immediately ``requires_capture`` and
    automatic ones ``succeeded``, as if the customer had confirmed the
    payment element.
    """

    def __init__(self):
        self.intents = {}
        self.refunds = {}
        self.calls = []
        self._idempotent = {}

    def _replay(self, operation, idempotency_key):
        if not idempotency_key:
            raise PaymentProcessorError("Idempotency key is required")
        return self._idempotent.get((operation, idempotency_key))

    def _remember(self, operation, idempotency_key, result):
        self._idempotent[(operation, idempotency_key)] = result
        self.calls.append((operation, idempotency_key, result))
        return result

    def _snapshot(self, intent_id):
        data = self.intents[intent_id]
        return Intent(**data)

    def _get(self, intent_id):
        if intent_id not in self.intents:
            raise PaymentProcessorError(
                "Stripe error: No such payment_intent: '{}'".format(intent_id), code="resource_missing"
            )
        return self.intents[intent_id]

    def create_intent(self, amount, idempotency_key, capture_method="manual", metadata=None,
                      description=None, receipt_email=None, customer=None,
                      payment_method=None, confirm=False, off_session=False):
        replay = self._replay("create_intent", idempotency_key)
        if replay is not None:
            return replay
        if not isinstance(amount, int) or amount < 50:
            raise PaymentProcessorError("Stripe error: Amount must be at least 50 cents", code="amount_too_small")

        intent_id = "pi_dev_{}".format(generate_uuid().replace("-", "")[:16])
        automatic = capture_method == "automatic"
        self.intents[intent_id] = {
            "id": intent_id,
            "client_secret": "{}_secret_dev".format(intent_id),
            "status": "succeeded" if automatic else "requires_capture",
            "amount": amount,
            "amount_received": amount if automatic else 0,
            "amount_refunded": 0,
            "charge_id": "ch_dev_{}".format(intent_id[7:]) if automatic else None,
            "customer": customer,
            "payment_method": payment_method or "pm_dev_card",
        }
        logger.info("[DEV] PaymentIntent %s created for %s cents (%s)", intent_id, amount, capture_method)
        return self._remember("create_intent", idempotency_key, self._snapshot(intent_id))

    def retrieve_intent(self, intent_id):
        self._get(intent_id)
        return self._snapshot(intent_id)

    def update_amount(self, intent_id, amount, idempotency_key):
        replay = self._replay("update_amount", idempotency_key)
        if replay is not None:
            return replay
        intent = self._get(intent_id)
        if intent["status"] != "requires_capture":
            raise PaymentProcessorError(
                "Stripe error: PaymentIntent {} cannot be updated in status {}".format(intent_id, intent["status"])
            )
        intent["amount"] = amount
        return self._remember("update_amount", idempotency_key, self._snapshot(intent_id))

    def capture(self, intent_id, amount_to_capture, idempotency_key):
        replay = self._replay("capture", idempotency_key)
        if replay is not None:
            return replay
        intent = self._get(intent_id)
        if intent["status"] != "requires_capture":
            raise PaymentProcessorError(
                "Stripe error: PaymentIntent {} has status {}; only requires_capture can be captured".format(
                    intent_id, intent["status"]),
                code="payment_intent_unexpected_state",
            )
        if amount_to_capture > intent["amount"]:
            raise PaymentProcessorError(
                "Stripe error: amount_to_capture exceeds the authorized amount",
                code="amount_too_large",
            )
        intent.update(
            status="succeeded",
            amount_received=amount_to_capture,
            charge_id="ch_dev_{}".format(intent_id[7:]),
        )
        return self._remember("capture", idempotency_key, self._snapshot(intent_id))

    def cancel(self, intent_id, idempotency_key):
        replay = self._replay("cancel", idempotency_key)
        if replay is not None:
            return replay
        intent = self._get(intent_id)
        if intent["status"] == "succeeded":
            raise PaymentProcessorError(
                "Stripe error: You cannot cancel this PaymentIntent because it has a status of succeeded.",
                code="payment_intent_unexpected_state",
            )
        intent["status"] = "canceled"
        return self._remember("cancel", idempotency_key, self._snapshot(intent_id))

    def refund(self, intent_id, amount, idempotency_key, reason=None, metadata=None):
        replay = self._replay("refund", idempotency_key)
        if replay is not None:
            return replay
        intent = self._get(intent_id)
        if intent["status"] != "succeeded":
            raise PaymentProcessorError(
                "Stripe error: PaymentIntent {} has no successful charge to refund".format(intent_id),
                code="charge_not_refundable",
            )
        if amount <= 0 or intent["amount_refunded"] + amount > intent["amount_received"]:
            raise PaymentProcessorError(
                "Stripe error: Refund amount is greater than the unrefunded amount on the charge",
                code="amount_too_large",
            )
        intent["amount_refunded"] += amount
        refund = RefundRecord("re_dev_{}".format(generate_uuid().replace("-", "")[:16]), "succeeded", amount)
        self.refunds[refund.id] = {"payment_intent": intent_id, "amount": amount, "metadata": metadata or {}}
        return self._remember("refund", idempotency_key, refund)

    def construct_event(self, payload, sig_header, secret):
        return json.loads(payload)
