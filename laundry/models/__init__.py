from laundry.extensions import db
from laundry.models.base import BaseModel, generate_uuid, utcnow, as_utc
from laundry.models.user import User, Customer
from laundry.models.membership import Membership
from laundry.models.laundromat import Laundromat, LaundromatServiceArea, LaundromatStaff
from laundry.models.order import (
    Address, TimeWindow, Order, OrderStatusHistory,
    ORDER_STATUSES, PAYMENT_STATUSES, REFUNDABLE_PAYMENT_STATUSES,
    NOT_MEASURED, MEASURED, OVERWEIGHT,
)
from laundry.models.payment import Refund, PaymentAnomaly, WebhookEvent
from laundry.models.notification import Notification

__all__ = [
    'db',
    'BaseModel',
    'generate_uuid',
    'utcnow',
    'as_utc',
    'User',
    'Customer',
    'Membership',
    'Laundromat',
    'LaundromatServiceArea',
    'LaundromatStaff',
    'Address',
    'TimeWindow',
    'Order',
    'OrderStatusHistory',
    'ORDER_STATUSES',
    'PAYMENT_STATUSES',
    'REFUNDABLE_PAYMENT_STATUSES',
    'NOT_MEASURED',
    'MEASURED',
    'OVERWEIGHT',
    'Refund',
    'PaymentAnomaly',
    'WebhookEvent',
    'Notification',
]
