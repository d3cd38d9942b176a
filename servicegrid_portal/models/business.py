"""Business, business-scoped customer records, and staff memberships.

These are owned by the wider CRM; the portal core only reads them.
"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from servicegrid_portal.database import Base


class Business(Base):
    __tablename__ = "businesses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255))
    phone = Column(String(20))
    logo_url = Column(String(500))
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    memberships = relationship("BusinessMembership", back_populates="business")

    def __repr__(self):
        return f"<Business {self.name}>"


class Customer(Base):
    """Customer record as a business sees it (one per business)."""

    __tablename__ = "customers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), index=True)
    phone = Column(String(20))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    business = relationship("Business")

    def __repr__(self):
        return f"<Customer {self.first_name} {self.last_name}>"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class BusinessMembership(Base):
    """Staff user's membership in a business team."""

    __tablename__ = "business_memberships"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("staff_users.id"), nullable=False, index=True)
    role = Column(String(30), default="member")  # owner, admin, member
    status = Column(String(20), default="active", nullable=False)  # active, invited, removed
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    business = relationship("Business", back_populates="memberships")
    user = relationship("StaffUser", back_populates="memberships")

    __table_args__ = (UniqueConstraint("business_id", "user_id", name="uq_business_membership"),)

    def __repr__(self):
        return f"<BusinessMembership user={self.user_id} business={self.business_id} {self.status}>"
