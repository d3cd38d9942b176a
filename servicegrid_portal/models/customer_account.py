"""Portal login identities and their links to business customer records."""

import enum
import uuid

from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Uuid, UniqueConstraint, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from servicegrid_portal.database import Base


class AuthMethod(str, enum.Enum):
    magic_link = "magic_link"
    password = "password"


class LinkStatus(str, enum.Enum):
    active = "active"
    revoked = "revoked"


class CustomerAccount(Base):
    """One row per portal login identity, keyed by lower-cased email."""

    __tablename__ = "customer_accounts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=True)
    auth_method = Column(String(20), default=AuthMethod.magic_link.value, nullable=False)

    email_verified = Column(Boolean, default=False, nullable=False)
    email_verified_at = Column(DateTime(timezone=True), nullable=True)

    # Lockout
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime(timezone=True), nullable=True)

    # Login stats
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    login_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    links = relationship("CustomerAccountLink", back_populates="account")

    def __repr__(self):
        return f"<CustomerAccount {self.email}>"


class CustomerAccountLink(Base):
    """Grants an account access to one (business, customer) pair."""

    __tablename__ = "customer_account_links"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    customer_account_id = Column(Uuid, ForeignKey("customer_accounts.id"), nullable=False, index=True)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False, index=True)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False, index=True)
    status = Column(String(20), default=LinkStatus.active.value, nullable=False)
    is_primary = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    account = relationship("CustomerAccount", back_populates="links")
    business = relationship("Business")
    customer = relationship("Customer")

    __table_args__ = (
        UniqueConstraint(
            "customer_account_id", "business_id", "customer_id", name="uq_account_business_customer"
        ),
        Index("ix_account_links_business_customer", "business_id", "customer_id"),
    )

    def __repr__(self):
        return f"<CustomerAccountLink {self.customer_account_id} -> {self.business_id} {self.status}>"
