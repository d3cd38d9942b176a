"""Notification models for in-app staff notifications and their preferences."""

from sqlalchemy import Column, String, DateTime, Text, Integer, Boolean, ForeignKey, JSON, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import uuid

from servicegrid_portal.database import Base


class Notification(Base):
    """In-app notification for staff users."""

    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)

    # Target user
    user_id = Column(Integer, ForeignKey("staff_users.id"), nullable=False, index=True)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=True, index=True)

    # Notification content
    type = Column(String(50), nullable=False, index=True)  # portal, system, ...
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    # Status
    read = Column(Boolean, default=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)

    # Additional context (customer_id, customer_email, ...)
    data = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    def __repr__(self):
        return f"<Notification {self.type}: {self.title[:30]}>"


class NotificationPreference(Base):
    """Per-user notification switches. A missing row means everything is enabled."""

    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("staff_users.id"), nullable=False, unique=True, index=True)

    inapp_portal_activity = Column(Boolean, default=True, nullable=False)
    email_portal_first_login = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("StaffUser", back_populates="notification_preferences")

    def __repr__(self):
        return f"<NotificationPreference user_id={self.user_id}>"
