"""
HTML email templates for Bags of Laundry.

Every public function returns a complete HTML string ready for sending via
``send_email`` in ``laundry.notifications``.

Design tokens:
  - Primary accent: #0E7490 (teal)
  - Background:     #f8fafc
  - Card:           #ffffff
  - Text dark:      #0f172a
  - Text muted:     #475569 / #64748b

All styles are inlined for email-client compatibility. No external
resources are referenced.
"""

from html import escape as _esc

from laundry.services.pricing import format_cents


# ---------------------------------------------------------------------------
# Shared layout helpers
# ---------------------------------------------------------------------------

def _header():
    return (
        '<div style="text-align:center;margin-bottom:30px;">'
        '<h1 style="color:#0E7490;font-size:28px;margin:0;font-family:Arial,sans-serif;font-weight:700;">Bags of Laundry</h1>'
        '<p style="color:#64748b;margin:5px 0 0;font-size:14px;">Laundry pickup &amp; delivery</p>'
        '</div>'
    )


def _footer():
    return (
        '<div style="text-align:center;margin-top:30px;padding-top:20px;border-top:1px solid #e2e8f0;color:#94a3b8;font-size:12px;line-height:1.6;">'
        '<p style="margin:0 0 4px;">Bags of Laundry &middot; Metro Detroit, MI</p>'
        '<p style="margin:0;">support@bagsoflaundry.com</p>'
        '</div>'
    )


def _wrap(body_html):
    """Wrap inner content in the common email shell (background, card, header, footer)."""
    return (
        '<!DOCTYPE html>'
        '<html lang="en"><head><meta charset="utf-8">'
        '<meta name="viewport" content="width=device-width,initial-scale=1.0">'
        '<title>Bags of Laundry</title></head>'
        '<body style="margin:0;padding:0;background-color:#f1f5f9;">'
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;background:#f8fafc;padding:40px 20px;">'
        + _header()
        + '<div style="background:#ffffff;border-radius:12px;padding:30px;box-shadow:0 1px 3px rgba(0,0,0,0.1);">'
        + body_html
        + '</div>'
        + _footer()
        + '</div></body></html>'
    )


def _detail_row(label, value, is_last=False):
    border = 'border-top:1px solid #A5F3FC;' if is_last else ''
    val_color = '#0E7490' if is_last else '#0f172a'
    val_size = '20px' if is_last else '14px'
    return (
        '<tr style="{border}">'
        '<td style="padding:8px 0;color:#64748b;font-size:14px;">{label}</td>'
        '<td style="padding:8px 0;color:{vc};font-size:{vs};font-weight:600;text-align:right;">{value}</td>'
        '</tr>'
    ).format(border=border, label=_esc(str(label)), value=_esc(str(value)), vc=val_color, vs=val_size)


def _detail_table(rows):
    """*rows* is a list of (label, value) tuples; the last row is emphasised."""
    inner = ''.join(
        _detail_row(label, value, is_last=(i == len(rows) - 1)) for i, (label, value) in enumerate(rows)
    )
    return (
        '<div style="background:#ECFEFF;border:1px solid #A5F3FC;border-radius:8px;padding:20px;margin:20px 0;">'
        '<table style="width:100%;border-collapse:collapse;">'
        + inner
        + '</table></div>'
    )


def _button(url, label):
    return (
        '<div style="text-align:center;margin:28px 0 12px;">'
        '<a href="{url}" style="display:inline-block;background:#0E7490;color:#ffffff;'
        'text-decoration:none;padding:14px 36px;border-radius:8px;font-size:16px;'
        'font-weight:600;line-height:1;">'.format(url=_esc(str(url)))
        + _esc(str(label))
        + '</a></div>'
    )


def _greeting(title, customer_name, lead):
    name = _esc(str(customer_name)) if customer_name else 'there'
    return (
        '<h2 style="color:#0f172a;margin:0 0 12px;font-size:22px;">{title}</h2>'
        '<p style="color:#475569;line-height:1.6;">Hi {name},</p>'
        '<p style="color:#475569;line-height:1.6;">{lead}</p>'
    ).format(title=_esc(title), name=name, lead=lead)


# ---------------------------------------------------------------------------
# Customer emails
# ---------------------------------------------------------------------------

def order_confirmation_html(customer_name, order_id, pickup_date, pickup_window, address,
                            service_label, estimate_cents, order_url=None):
    """Return HTML for an order-confirmed email."""
    body = _greeting('Your Pickup Is Scheduled!', customer_name,
                     'Thanks for your order. Here are the details:')
    body += _detail_table([
        ('Order', '#{}'.format(str(order_id)[-8:])),
        ('Pickup date', pickup_date or 'TBD'),
        ('Pickup window', pickup_window or 'TBD'),
        ('Address', address or 'TBD'),
        ('Service', service_label),
        ('Estimated total', format_cents(estimate_cents)),
    ])
    body += (
        '<p style="color:#475569;font-size:14px;line-height:1.6;">'
        'Per-pound orders are weighed at the laundromat and you are only charged '
        'for the final weight. Your card has been authorized, not charged.</p>'
    )
    if order_url:
        body += _button(order_url, 'View Your Order')
    return _wrap(body)


def status_update_html(customer_name, order_id, status_label, message):
    body = _greeting('Order Update: {}'.format(status_label), customer_name, _esc(message))
    body += _detail_table([
        ('Order', '#{}'.format(str(order_id)[-8:])),
        ('Status', status_label),
    ])
    return _wrap(body)


def delivered_html(customer_name, order_id, total_cents):
    body = _greeting('Your Laundry Has Been Delivered', customer_name,
                     'Your clean laundry is at your door. Thank you for choosing Bags of Laundry!')
    body += _detail_table([
        ('Order', '#{}'.format(str(order_id)[-8:])),
        ('Total', format_cents(total_cents)),
    ])
    return _wrap(body)


def refund_issued_html(customer_name, order_id, refund_cents, reason=None):
    body = _greeting('Refund Issued', customer_name,
                     'We have issued a refund to your original payment method. '
                     'It may take 5-10 business days to appear on your statement.')
    rows = [('Order', '#{}'.format(str(order_id)[-8:]))]
    if reason:
        rows.append(('Reason', reason))
    rows.append(('Refund', format_cents(refund_cents)))
    body += _detail_table(rows)
    return _wrap(body)


def order_canceled_html(customer_name, order_id, refund_cents, policy_note):
    body = _greeting('Your Order Was Canceled', customer_name, _esc(policy_note))
    body += _detail_table([
        ('Order', '#{}'.format(str(order_id)[-8:])),
        ('Refund', format_cents(refund_cents)),
    ])
    return _wrap(body)


def overweight_fee_html(customer_name, order_id, bag_label, weight_limit, actual_weight, fee_cents):
    body = _greeting('Your Bag Was Over Its Weight Limit', customer_name,
                     'We weighed your bag at the laundromat and it came in over the limit, '
                     'so an overweight fee has been charged to your card on file.')
    body += _detail_table([
        ('Order', '#{}'.format(str(order_id)[-8:])),
        ('Bag', bag_label),
        ('Weight limit', '{} lbs'.format(weight_limit)),
        ('Measured weight', '{} lbs'.format(actual_weight)),
        ('Overweight fee', format_cents(fee_cents)),
    ])
    return _wrap(body)


# ---------------------------------------------------------------------------
# Internal emails
# ---------------------------------------------------------------------------

def new_order_alert_html(order_id, customer_name, customer_email, customer_phone, pickup_date,
                         pickup_window, address, service_label, estimate_cents, laundromat_name=None):
    body = (
        '<h2 style="color:#0f172a;margin:0 0 12px;font-size:22px;">New Order Received</h2>'
    )
    body += _detail_table([
        ('Order', str(order_id)),
        ('Customer', customer_name or ''),
        ('Email', customer_email or ''),
        ('Phone', customer_phone or 'n/a'),
        ('Pickup', '{} {}'.format(pickup_date, pickup_window or '')),
        ('Address', address or ''),
        ('Laundromat', laundromat_name or 'Unassigned'),
        ('Service', service_label),
        ('Estimate', format_cents(estimate_cents)),
    ])
    return _wrap(body)
