"""
Notification services for Bags of Laundry.

Email: Resend (preferred) or SendGrid (legacy fallback).
SMS: Twilio.

IMPORTANT: No function in this module should ever raise an exception.
All errors are caught and logged so that a notification failure never
takes down an order or payment flow. Every attempt is recorded in the
``notifications`` table.
"""

import logging
import re

from flask import current_app

from laundry import email_templates
from laundry.models import Notification, db
from laundry.services.pricing import compute_per_pound_price, format_cents

logger = logging.getLogger(__name__)

BRAND_NAME = "Bags of Laundry"
SMS_OPT_OUT_FOOTER = "\n\nReply STOP to unsubscribe"

# Quick messages laundromat staff can send from the order screen
MESSAGE_TEMPLATES = {
    "pickup_reminder": "Hi! This is {laundromat_name}. We're on our way to pick up your laundry for order #{order_id}. Please have your items ready!",
    "pickup_complete": "Great! We've picked up your laundry (Order #{order_id}). We'll have it cleaned and ready for delivery soon.",
    "processing_update": "Your laundry (Order #{order_id}) is currently being processed. We'll notify you when it's ready for delivery!",
    "processing_complete": "Good news! Your laundry (Order #{order_id}) is clean and ready for delivery. We'll be in touch about delivery timing.",
    "delivery_eta": "Your clean laundry (Order #{order_id}) will be delivered within the next 2 hours. Thank you for choosing {laundromat_name}!",
    "delivery_complete": "Your laundry has been delivered! Thank you for using {laundromat_name}. Order #{order_id} is now complete.",
    "delay_notification": "We apologize for the delay with your order #{order_id}. We're working to get your laundry ready as soon as possible.",
    "weight_update": "We've measured your laundry at {weight} lbs for order #{order_id}. Your updated total is {total}.",
}

# SMS bodies for state machine edges that notify the customer
STATUS_SMS = {
    "scheduled": "{brand}: your pickup for order #{order_id} is confirmed for {pickup_date}.",
    "en_route_pickup": "{brand}: your driver is on the way to pick up order #{order_id}.",
    "en_route_delivery": "{brand}: your clean laundry (order #{order_id}) is out for delivery!",
}

STATUS_EMAIL_MESSAGES = {
    "scheduled": "Your payment is confirmed and your pickup is on the schedule.",
}

SERVICE_LABELS = {
    "per_lb": "Wash & fold (per pound)",
    "bag_small": "Small bag",
    "bag_medium": "Medium bag",
    "bag_large": "Large bag",
}


# ---------------------------------------------------------------------------
# Phone number formatting
# ---------------------------------------------------------------------------
def format_phone(phone):
    """Ensure a US phone number has the +1 international prefix.

        "3135551234"       -> "+13135551234"
        "13135551234"      -> "+13135551234"
        "(313) 555-1234"   -> "+13135551234"
        None               -> ""
    """
    if not phone:
        return ""
    stripped = re.sub(r"[^\d+]", "", phone.strip())
    if not stripped:
        return ""
    if stripped.startswith("+"):
        return stripped
    digits = re.sub(r"\D", "", stripped)
    if len(digits) == 10:
        return "+1{}".format(digits)
    return "+{}".format(digits)


def _record(channel, event, recipient, order_id=None, status="sent", provider_message_id=None,
            error=None, payload=None):
    try:
        db.session.add(Notification(
            order_id=order_id,
            channel=channel,
            event=event,
            recipient=recipient,
            status=status,
            provider_message_id=provider_message_id,
            error=error,
            payload=payload,
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to record %s notification %s", channel, event)


# ---------------------------------------------------------------------------
# Twilio SMS
# ---------------------------------------------------------------------------
def _get_twilio():
    """Lazily initialise the Twilio client (one per app)."""
    client = current_app.extensions.get("twilio")
    sid = current_app.config.get("TWILIO_ACCOUNT_SID")
    token = current_app.config.get("TWILIO_AUTH_TOKEN")
    if client is None and sid and token:
        try:
            from twilio.rest import Client
            client = Client(sid, token)
            current_app.extensions["twilio"] = client
        except Exception:
            logger.exception("Failed to initialise Twilio client")
    return client


def send_sms(to_number, body, order_id=None, event="custom_message", opt_out_footer=True):
    """Send an SMS via Twilio. Returns message SID or None.

    Never raises. Logs errors and returns None on failure.
    """
    try:
        to_number = format_phone(to_number)
        if not to_number:
            logger.info("No phone number for SMS %s (order %s)", event, order_id)
            return None
        if opt_out_footer:
            body = body + SMS_OPT_OUT_FOOTER

        client = _get_twilio()
        from_number = current_app.config.get("TWILIO_FROM_NUMBER")
        if not client or not from_number:
            logger.info("[DEV] SMS to %s: %s", to_number, body)
            _record("sms", event, to_number, order_id, status="skipped", payload={"message": body})
            return None

        message = client.messages.create(body=body, from_=from_number, to=to_number)
        logger.info("SMS sent to %s (SID: %s)", to_number, message.sid)
        _record("sms", event, to_number, order_id, provider_message_id=message.sid, payload={"message": body})
        return message.sid
    except Exception as e:
        logger.exception("Failed to send SMS to %s", to_number)
        _record("sms", event, to_number, order_id, status="failed", error=str(e))
        return None


# ---------------------------------------------------------------------------
# Email: Resend (preferred) or SendGrid (legacy fallback)
# ---------------------------------------------------------------------------
def _send_email_resend(to_email, subject, html_content):
    import resend
    resend.api_key = current_app.config["RESEND_API_KEY"]
    response = resend.Emails.send({
        "from": "{} <{}>".format(current_app.config["EMAIL_FROM_NAME"], current_app.config["EMAIL_FROM"]),
        "to": [to_email],
        "subject": subject,
        "html": html_content,
    })
    logger.info("Email sent via Resend to %s (id: %s)", to_email, response.get("id"))
    return response.get("id")


def _send_email_sendgrid(to_email, subject, html_content):
    from sendgrid import SendGridAPIClient
    from sendgrid.helpers.mail import Mail

    message = Mail(
        from_email=(current_app.config["EMAIL_FROM"], current_app.config["EMAIL_FROM_NAME"]),
        to_emails=to_email,
        subject=subject,
        html_content=html_content,
    )
    response = SendGridAPIClient(current_app.config["SENDGRID_API_KEY"]).send(message)
    logger.info("Email sent via SendGrid to %s (status: %s)", to_email, response.status_code)
    return str(response.status_code)


def send_email(to_email, subject, html_content, order_id=None, event="email"):
    """Send an email synchronously. Returns a provider id or None. Never raises."""
    if not to_email:
        return None
    try:
        if current_app.config.get("RESEND_API_KEY"):
            message_id = _send_email_resend(to_email, subject, html_content)
        elif current_app.config.get("SENDGRID_API_KEY"):
            message_id = _send_email_sendgrid(to_email, subject, html_content)
        else:
            logger.info("[DEV] Email to %s: %s", to_email, subject)
            _record("email", event, to_email, order_id, status="skipped", payload={"subject": subject})
            return None
        _record("email", event, to_email, order_id, provider_message_id=message_id, payload={"subject": subject})
        return message_id
    except Exception as e:
        logger.exception("Failed to send email to %s", to_email)
        _record("email", event, to_email, order_id, status="failed", error=str(e))
        return None


# ---------------------------------------------------------------------------
# Order emails and texts
# ---------------------------------------------------------------------------
def _order_url(order):
    return "{}/orders/{}".format(current_app.config.get("SITE_URL", "").rstrip("/"), order.id)


def _window_label(order):
    return order.pickup_time_window.display() if order.pickup_time_window else None


def send_order_confirmation(order):
    """Confirmation to the customer plus an alert to operations. Never raises."""
    try:
        customer = order.customer
        address = order.pickup_address.one_line() if order.pickup_address else None
        service_label = SERVICE_LABELS.get(order.pricing_model, order.pricing_model)
        send_email(
            customer.email,
            "Your Bags of Laundry pickup is scheduled! #{}".format(order.short_id),
            email_templates.order_confirmation_html(
                customer.full_name, order.id, order.pickup_date.isoformat(), _window_label(order),
                address, service_label, order.total_cents, _order_url(order),
            ),
            order_id=order.id,
            event="order_confirmation",
        )

        ops_email = current_app.config.get("OPS_ALERT_EMAIL")
        if ops_email:
            send_email(
                ops_email,
                "New order #{} ({})".format(order.short_id, service_label),
                email_templates.new_order_alert_html(
                    order.id, customer.full_name, customer.email, customer.phone,
                    order.pickup_date.isoformat(), _window_label(order), address, service_label,
                    order.total_cents, order.laundromat.name if order.laundromat else None,
                ),
                order_id=order.id,
                event="new_order_alert",
            )
    except Exception:
        logger.exception("Failed in send_order_confirmation for order %s", order.id)


def notify_status_change(order, transition):
    """Send the notifications a state machine edge asks for. Never raises."""
    try:
        from laundry.services.order_status import status_display

        customer = order.customer
        status = transition.to_status
        label = status_display(status)

        if "sms" in transition.notifications and customer.sms_opt_in and customer.phone:
            template = STATUS_SMS.get(status, "{brand}: order #{order_id} is now {label}.")
            send_sms(
                customer.phone,
                template.format(
                    brand=BRAND_NAME, order_id=order.short_id, label=label.lower(),
                    pickup_date=order.pickup_date.isoformat(),
                ),
                order_id=order.id,
                event="status_{}".format(status),
            )

        if "email" in transition.notifications:
            if status == "delivered":
                html = email_templates.delivered_html(customer.full_name, order.id, order.total_cents)
            else:
                message = STATUS_EMAIL_MESSAGES.get(status, "Your order is now: {}.".format(label))
                html = email_templates.status_update_html(customer.full_name, order.id, label, message)
            send_email(
                customer.email,
                "Order #{}: {}".format(order.short_id, label),
                html,
                order_id=order.id,
                event="status_{}".format(status),
            )
    except Exception:
        logger.exception("Failed to send status notifications for order %s", order.id)


def send_refund_email(order, amount_cents, reason=None):
    try:
        send_email(
            order.customer.email,
            "Refund issued for order #{}".format(order.short_id),
            email_templates.refund_issued_html(order.customer.full_name, order.id, amount_cents, reason),
            order_id=order.id,
            event="refund_issued",
        )
    except Exception:
        logger.exception("Failed in send_refund_email for order %s", order.id)


def send_cancellation_email(order, refund_cents, policy_note):
    try:
        send_email(
            order.customer.email,
            "Order #{} canceled".format(order.short_id),
            email_templates.order_canceled_html(order.customer.full_name, order.id, refund_cents, policy_note),
            order_id=order.id,
            event="order_canceled",
        )
    except Exception:
        logger.exception("Failed in send_cancellation_email for order %s", order.id)


def send_overweight_notice(order, overweight):
    try:
        customer = order.customer
        bag_label = SERVICE_LABELS.get(order.pricing_model, order.pricing_model)
        send_email(
            customer.email,
            "Overweight fee for order #{}".format(order.short_id),
            email_templates.overweight_fee_html(
                customer.full_name, order.id, bag_label, overweight.weight_limit,
                overweight.actual_weight, overweight.fee,
            ),
            order_id=order.id,
            event="overweight_fee",
        )
        if customer.sms_opt_in and customer.phone:
            send_sms(
                customer.phone,
                "{}: your bag for order #{} weighed {} lbs ({} lb limit). An overweight fee of {} was charged.".format(
                    BRAND_NAME, order.short_id, overweight.actual_weight, overweight.weight_limit,
                    format_cents(overweight.fee),
                ),
                order_id=order.id,
                event="overweight_fee",
            )
    except Exception:
        logger.exception("Failed in send_overweight_notice for order %s", order.id)


def render_staff_message(message_type, order, laundromat_name=None, is_member=False):
    """Fill a MESSAGE_TEMPLATES entry for ``order``. Returns None for unknown types."""
    template = MESSAGE_TEMPLATES.get(message_type)
    if template is None:
        return None
    weight = order.measured_weight_lb or 0
    if order.is_bag_order:
        total = order.total_cents
    elif weight:
        total = compute_per_pound_price(weight, is_member).total
    else:
        total = order.total_cents
    return template.format(
        laundromat_name=laundromat_name or BRAND_NAME,
        order_id=order.short_id,
        weight=weight,
        total=format_cents(total),
    )
