"""
Partner laundromats, the ZIP codes they serve, and their staff
"""
from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from laundry.models.base import BaseModel


class Laundromat(BaseModel):
    __tablename__ = "laundromats"

    name = Column(String(255), nullable=False)
    contact_email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    today_orders = Column(Integer, nullable=False, default=0)
    max_daily_orders = Column(Integer, nullable=False, default=50)
    avg_turnaround_hours = Column(Float, nullable=True)
    stripe_connect_id = Column(String(255), nullable=True)

    service_areas = relationship("LaundromatServiceArea", back_populates="laundromat", cascade="all, delete-orphan")
    staff = relationship("LaundromatStaff", back_populates="laundromat", cascade="all, delete-orphan")

    def to_dict(self, exclude=None):
        data = super().to_dict(exclude)
        data["zip_codes"] = sorted(a.zip_code for a in self.service_areas)
        return data


class LaundromatServiceArea(BaseModel):
    __tablename__ = "laundromat_service_areas"

    laundromat_id = Column(String(36), ForeignKey("laundromats.id", ondelete="CASCADE"), nullable=False, index=True)
    zip_code = Column(String(10), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("laundromat_id", "zip_code", name="uq_service_area_zip"),
    )

    laundromat = relationship("Laundromat", back_populates="service_areas")


class LaundromatStaff(BaseModel):
    __tablename__ = "laundromat_staff"

    auth_user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    laundromat_id = Column(String(36), ForeignKey("laundromats.id", ondelete="CASCADE"), nullable=False, index=True)

    laundromat = relationship("Laundromat", back_populates="staff")
