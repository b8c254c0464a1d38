"""
Orders and the records that hang off them: addresses, time windows and
the status audit trail.
"""
from sqlalchemy import (
    Boolean, CheckConstraint, Column, Date, DateTime, Float, ForeignKey, Integer,
    JSON, String, Text, Time,
)
from sqlalchemy.orm import relationship

from laundry.extensions import db
from laundry.models.base import BaseModel, generate_uuid, utcnow

ORDER_STATUSES = (
    "draft",
    "scheduled",
    "en_route_pickup",
    "picked_up",
    "processing",
    "ready_for_delivery",
    "en_route_delivery",
    "delivered",
    "completed",
    "canceled_by_customer",
    "canceled_by_ops",
    "no_show",
    "issue_flagged",
)

PAYMENT_STATUSES = (
    "requires_payment",
    "authorized",
    "paid",
    "partially_refunded",
    "refunded",
    "failed",
    "canceled",
)
REFUNDABLE_PAYMENT_STATUSES = ("paid", "partially_refunded")

# Weight adjustment marker for bag orders
NOT_MEASURED = "not_measured"
MEASURED = "measured"
OVERWEIGHT = "overweight"
WEIGHT_ADJUSTMENTS = (NOT_MEASURED, MEASURED, OVERWEIGHT)


def _in(values):
    return "({})".format(", ".join("'{}'".format(v) for v in values))


class Address(BaseModel):
    __tablename__ = "addresses"

    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    line1 = Column(String(255), nullable=False)
    line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=False)
    state = Column(String(50), nullable=False)
    postal_code = Column(String(10), nullable=False, index=True)

    def one_line(self):
        parts = [self.line1, self.line2, self.city, "{} {}".format(self.state, self.postal_code)]
        return ", ".join(p for p in parts if p)


class TimeWindow(BaseModel):
    __tablename__ = "time_windows"

    label = Column(String(50), nullable=False, unique=True)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def display(self):
        if self.start_time and self.end_time:
            return "{} ({}-{})".format(self.label.title(), _hour(self.start_time), _hour(self.end_time))
        return self.label.title()


def _hour(value):
    return "{}{}".format(int(value.strftime("%I")), value.strftime("%p").lower())


class Order(BaseModel):
    __tablename__ = "orders"

    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    pricing_model = Column(String(20), nullable=False)
    service_type = Column(String(30), nullable=False, default="wash_fold")
    status = Column(String(30), nullable=False, default="scheduled", index=True)
    payment_status = Column(String(30), nullable=False, default="requires_payment")

    pickup_date = Column(Date, nullable=False)
    pickup_time_window_id = Column(String(36), ForeignKey("time_windows.id"), nullable=False)
    delivery_time_window_id = Column(String(36), ForeignKey("time_windows.id"), nullable=True)
    pickup_address_id = Column(String(36), ForeignKey("addresses.id"), nullable=False)
    delivery_address_id = Column(String(36), ForeignKey("addresses.id"), nullable=True)

    # Routing / fulfilment
    assigned_laundromat_id = Column(String(36), ForeignKey("laundromats.id"), nullable=True, index=True)
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    routing_method = Column(String(30), nullable=True)
    driver_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    # Weight and pricing, all money in cents
    estimated_weight_lb = Column(Float, nullable=True)
    measured_weight_lb = Column(Float, nullable=True)
    unit_rate_cents = Column(Integer, nullable=True)
    subtotal_cents = Column(Integer, nullable=False, default=0)
    add_on_total_cents = Column(Integer, nullable=False, default=0)
    rush_fee_cents = Column(Integer, nullable=False, default=0)
    bag_overweight_cents = Column(Integer, nullable=False, default=0)
    discount_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False, default=0)
    member_rate_applied = Column(Boolean, nullable=False, default=False)
    minimum_order_applied = Column(Boolean, nullable=False, default=False)
    weight_adjustment = Column(String(20), nullable=False, default=NOT_MEASURED)

    # Refund mirror of the refunds ledger
    refund_amount_cents = Column(Integer, nullable=False, default=0)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    # Stripe references
    stripe_payment_intent_id = Column(String(255), nullable=True, index=True)
    stripe_charge_id = Column(String(255), nullable=True)
    overweight_payment_intent_id = Column(String(255), nullable=True)
    overweight_charge_id = Column(String(255), nullable=True)

    addons = Column(JSON, nullable=True)
    preferences = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    delivery_notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    ready_for_delivery_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN " + _in(ORDER_STATUSES), name="ck_order_status"),
        CheckConstraint("payment_status IN " + _in(PAYMENT_STATUSES), name="ck_order_payment_status"),
        CheckConstraint("weight_adjustment IN " + _in(WEIGHT_ADJUSTMENTS), name="ck_order_weight_adjustment"),
        CheckConstraint("total_cents >= 0", name="ck_order_total_non_negative"),
    )

    customer = relationship("Customer", back_populates="orders")
    pickup_time_window = relationship("TimeWindow", foreign_keys=[pickup_time_window_id])
    delivery_time_window = relationship("TimeWindow", foreign_keys=[delivery_time_window_id])
    pickup_address = relationship("Address", foreign_keys=[pickup_address_id])
    delivery_address = relationship("Address", foreign_keys=[delivery_address_id])
    laundromat = relationship("Laundromat")
    refunds = relationship("Refund", back_populates="order", lazy="dynamic")
    status_history = relationship("OrderStatusHistory", back_populates="order", lazy="dynamic")

    @property
    def short_id(self):
        return self.id[-8:] if self.id else "N/A"

    @property
    def is_bag_order(self):
        return self.pricing_model != "per_lb"

    def compute_total(self):
        total = (
            (self.subtotal_cents or 0)
            + (self.add_on_total_cents or 0)
            + (self.rush_fee_cents or 0)
            + (self.bag_overweight_cents or 0)
            - (self.discount_cents or 0)
        )
        return max(total, 0)

    def to_dict(self, exclude=None):
        data = super().to_dict(exclude)
        data["short_id"] = self.short_id
        return data


class OrderStatusHistory(db.Model):
    """Append-only audit trail of status changes."""
    __tablename__ = "order_status_history"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(30), nullable=False)
    previous_status = Column(String(30), nullable=True)
    changed_by = Column(String(36), nullable=True)
    override = Column(Boolean, nullable=False, default=False)
    changed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order = relationship("Order", back_populates="status_history")

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "status": self.status,
            "previous_status": self.previous_status,
            "changed_by": self.changed_by,
            "override": self.override,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
        }
