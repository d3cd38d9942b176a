"""
Portal access audit log.

Append-only: rows are inserted by the portal auth services and never
updated or deleted.
"""
import enum
import uuid

from sqlalchemy import Column, String, DateTime, Text, ForeignKey, JSON, Uuid
from sqlalchemy.sql import func
from servicegrid_portal.database import Base


class AuditEventType(str, enum.Enum):
    invite_sent = "invite_sent"
    login = "login"
    first_login = "first_login"
    access_revoked = "access_revoked"


class PortalAccessAudit(Base):
    __tablename__ = "portal_access_audit"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False, index=True)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False, index=True)
    customer_account_id = Column(Uuid, ForeignKey("customer_accounts.id"), nullable=True, index=True)

    # What happened
    event_type = Column(String(30), nullable=False, index=True)
    event_details = Column(JSON, nullable=False, default=dict)

    # Who did it (staff user id for staff actions)
    performed_by = Column(String(100), nullable=True)

    # Where it came from
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<PortalAccessAudit {self.event_type} customer={self.customer_id}>"
