from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from laundry.models.base import BaseModel, as_utc

MEMBERSHIP_STATUSES = ("active", "past_due", "canceled", "trialing")
ACTIVE_MEMBERSHIP_STATUSES = ("active", "trialing")


class Membership(BaseModel):
    __tablename__ = "memberships"

    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="active")
    membership_type = Column(String(30), nullable=False, default="six_month")
    stripe_subscription_id = Column(String(255), nullable=True, unique=True, index=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'past_due', 'canceled', 'trialing')",
            name="ck_membership_status",
        ),
    )

    customer = relationship("Customer", back_populates="memberships")

    def is_current(self, now):
        if self.status not in ACTIVE_MEMBERSHIP_STATUSES:
            return False
        end = as_utc(self.end_date)
        return end is None or end > now
