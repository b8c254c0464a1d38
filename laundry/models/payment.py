"""
Money records: the refund ledger, capture anomalies and Stripe webhook events
"""
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from laundry.extensions import db
from laundry.models.base import generate_uuid, utcnow


class Refund(db.Model):
    """One row per processor refund. Rows are never updated or deleted."""
    __tablename__ = "refunds"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    amount_cents = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    reason_internal = Column(Text, nullable=True)
    stripe_refund_id = Column(String(255), nullable=False, unique=True)
    payment_intent_id = Column(String(255), nullable=True, index=True)
    status = Column(String(30), nullable=False, default="succeeded")
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_refund_amount_positive"),
        CheckConstraint(
            "status IN ('pending', 'succeeded', 'failed', 'canceled')",
            name="ck_refund_status",
        ),
    )

    order = relationship("Order", back_populates="refunds")

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "stripe_refund_id": self.stripe_refund_id,
            "payment_intent_id": self.payment_intent_id,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class PaymentAnomaly(db.Model):
    """Captured amount differed from the authorization by more than a dollar."""
    __tablename__ = "payment_anomalies"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_intent_id = Column(String(255), nullable=True)
    authorized_amount = Column(Integer, nullable=False)
    final_amount = Column(Integer, nullable=False)
    difference_cents = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class WebhookEvent(db.Model):
    """Audit log for all incoming Stripe webhook events."""
    __tablename__ = "webhook_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    stripe_event_id = Column(String(255), nullable=True, unique=True, index=True)
    event_type = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default="processed")
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "stripe_event_id": self.stripe_event_id,
            "event_type": self.event_type,
            "status": self.status,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
