"""
Users (authentication identities) and customer profiles
"""
from sqlalchemy import Boolean, Column, ForeignKey, JSON, String
from sqlalchemy.orm import relationship

from laundry.models.base import BaseModel
from laundry.roles import parse_roles


class User(BaseModel):
    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    roles = Column(JSON, nullable=False, default=lambda: ["customer"])
    is_active = Column(Boolean, nullable=False, default=True)

    customer = relationship("Customer", back_populates="user", uselist=False)

    @property
    def role_set(self):
        return parse_roles(self.roles)

    def to_dict(self, exclude=None):
        data = super().to_dict(exclude)
        data["roles"] = sorted(r.value for r in self.role_set)
        return data


class Customer(BaseModel):
    __tablename__ = "customers"

    auth_user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    sms_opt_in = Column(Boolean, nullable=False, default=False)
    stripe_customer_id = Column(String(255), nullable=True)

    user = relationship("User", back_populates="customer")
    memberships = relationship("Membership", back_populates="customer", lazy="dynamic")
    orders = relationship("Order", back_populates="customer", lazy="dynamic")
