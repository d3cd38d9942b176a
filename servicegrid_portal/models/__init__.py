from servicegrid_portal.models.business import Business, Customer, BusinessMembership
from servicegrid_portal.models.user import StaffUser
from servicegrid_portal.models.customer_account import (
    AuthMethod,
    CustomerAccount,
    CustomerAccountLink,
    LinkStatus,
)
from servicegrid_portal.models.portal import InviteStatus, PortalInvite, PortalSession
from servicegrid_portal.models.audit import AuditEventType, PortalAccessAudit
from servicegrid_portal.models.notification import Notification, NotificationPreference

__all__ = [
    "Business",
    "Customer",
    "BusinessMembership",
    "StaffUser",
    "AuthMethod",
    "CustomerAccount",
    "CustomerAccountLink",
    "LinkStatus",
    "InviteStatus",
    "PortalInvite",
    "PortalSession",
    "AuditEventType",
    "PortalAccessAudit",
    "Notification",
    "NotificationPreference",
]
