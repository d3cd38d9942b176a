"""Staff-facing views of customer portal access."""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class AuditEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    event_type: str
    event_details: Dict[str, Any] = {}
    customer_account_id: Optional[uuid.UUID] = None
    performed_by: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


class AuditEventListResponse(BaseModel):
    items: List[AuditEventResponse]
    total: int


class InviteHistoryEntry(BaseModel):
    id: uuid.UUID
    email: str
    status: str
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class InviteHistoryResponse(BaseModel):
    items: List[InviteHistoryEntry]
    total: int


class EventBreakdown(BaseModel):
    invites_sent: int
    logins_total: int
    first_logins: int
    access_revoked: int


class LoginTrendPoint(BaseModel):
    date: str
    logins: int


class TopActiveCustomer(BaseModel):
    customer_id: uuid.UUID
    customer_name: str
    login_count: int
    last_login: datetime


class PortalAnalyticsResponse(BaseModel):
    total_customers_with_access: int
    pending_invites: int
    total_logins: int
    logins_this_week: int
    logins_this_month: int
    conversion_rate: float
    event_breakdown: EventBreakdown
    login_trend: List[LoginTrendPoint]
    top_active_customers: List[TopActiveCustomer]
