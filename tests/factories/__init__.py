"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation.
"""

from .user import StaffUserFactory, InactiveStaffUserFactory
from .customer import BusinessFactory, CustomerFactory
from .account import CustomerAccountFactory, PasswordAccountFactory
from .notification import NotificationPreferenceFactory, MutedPreferenceFactory

__all__ = [
    "StaffUserFactory",
    "InactiveStaffUserFactory",
    "BusinessFactory",
    "CustomerFactory",
    "CustomerAccountFactory",
    "PasswordAccountFactory",
    "NotificationPreferenceFactory",
    "MutedPreferenceFactory",
]
