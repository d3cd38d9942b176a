"""
Notification preference test factory.
"""

import factory


class NotificationPreferenceFactory(factory.Factory):
    """
    Factory for generating NotificationPreference test data.

    Usage:
        prefs = NotificationPreferenceFactory(user_id=user.id, email_portal_first_login=False)
    """

    class Meta:
        model = dict

    user_id = None
    inapp_portal_activity = True
    email_portal_first_login = True


class MutedPreferenceFactory(NotificationPreferenceFactory):
    """Member who opted out of every portal channel."""

    inapp_portal_activity = False
    email_portal_first_login = False
