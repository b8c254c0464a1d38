from sqlalchemy import Column, DateTime, ForeignKey, JSON, String, Text

from laundry.extensions import db
from laundry.models.base import generate_uuid, utcnow


class Notification(db.Model):
    """Record of every email/SMS we tried to send."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)
    channel = Column(String(10), nullable=False)
    event = Column(String(50), nullable=False)
    recipient = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="sent")
    provider_message_id = Column(String(255), nullable=True)
    error = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)
    sent_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "channel": self.channel,
            "event": self.event,
            "recipient": self.recipient,
            "status": self.status,
            "provider_message_id": self.provider_message_id,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
        }
