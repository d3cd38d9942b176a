"""Magic-link invites and portal sessions.

Raw tokens never touch the database; rows carry a SHA-256 of the token.
"""

import enum
import uuid

from sqlalchemy import Column, String, Boolean, DateTime, Text, ForeignKey, Uuid, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from servicegrid_portal.database import Base


class InviteStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    expired = "expired"


class PortalInvite(Base):
    """Single-use magic-link token record."""

    __tablename__ = "customer_portal_invites"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    token_hash = Column(String(64), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=False, index=True)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=True, index=True)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=True, index=True)

    status = Column(String(20), default=InviteStatus.pending.value, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    customer = relationship("Customer")
    business = relationship("Business")

    __table_args__ = (Index("ix_portal_invites_status_expiry", "status", "expires_at"),)

    def __repr__(self):
        return f"<PortalInvite {self.email} {self.status}>"


class PortalSession(Base):
    """Customer portal session carrying the active business/customer context."""

    __tablename__ = "customer_portal_sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    token_hash = Column(String(64), unique=True, index=True, nullable=False)
    customer_account_id = Column(Uuid, ForeignKey("customer_accounts.id"), nullable=False, index=True)

    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_revoked = Column(Boolean, default=False, nullable=False)
    last_active_at = Column(DateTime(timezone=True), nullable=True)

    # Captured at creation
    user_agent = Column(Text)
    ip_address = Column(String(45))

    # Active context
    active_business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=True)
    active_customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    account = relationship("CustomerAccount")

    __table_args__ = (
        Index("ix_portal_sessions_account_business", "customer_account_id", "active_business_id"),
    )

    def __repr__(self):
        return f"<PortalSession account={self.customer_account_id} revoked={self.is_revoked}>"
