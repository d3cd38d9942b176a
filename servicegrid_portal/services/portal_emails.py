"""Subjects and bodies for the portal's transactional emails."""

from html import escape
from typing import Optional, Tuple

BUTTON_STYLE = (
    "display: inline-block; background: #2563eb; color: white; padding: 12px 24px; "
    "text-decoration: none; border-radius: 6px; margin: 16px 0;"
)
MUTED_STYLE = "color: #666; font-size: 14px;"
DEFAULT_BRAND = "ServiceGrid"


def _wrap(inner: str) -> str:
    return f'<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">{inner}</div>'


def magic_link_email(
    business_name: Optional[str], portal_url: str, expire_minutes: int
) -> Tuple[str, str, str]:
    """Self-service sign-in link. Returns (subject, text, html)."""
    name = business_name or DEFAULT_BRAND
    subject = f"Sign in to {name} Portal"
    text = (
        f"Sign in to {name}\n\n"
        f"Open this link to sign in to your customer portal:\n{portal_url}\n\n"
        f"This link expires in {expire_minutes} minutes.\n"
        "If you didn't request this, you can safely ignore this email."
    )
    html = _wrap(
        f"<h2>Sign in to {escape(name)}</h2>"
        "<p>Click the button below to sign in to your customer portal:</p>"
        f'<a href="{escape(portal_url)}" style="{BUTTON_STYLE}">Sign In to Portal</a>'
        f'<p style="{MUTED_STYLE}">This link expires in {expire_minutes} minutes.</p>'
        f'<p style="{MUTED_STYLE}">If you didn\'t request this, you can safely ignore this email.</p>'
    )
    return subject, text, html


def invite_email(
    business_name: Optional[str],
    display_name: Optional[str],
    portal_url: str,
    expire_minutes: int,
) -> Tuple[str, str, str]:
    """Staff-initiated portal invite."""
    name = business_name or DEFAULT_BRAND
    greeting = f"Hi {display_name}," if display_name else "Hi,"
    subject = f"Access Your {name} Customer Portal"
    text = (
        f"Welcome to {name}\n\n{greeting}\n\n"
        "You've been invited to access your customer portal where you can view quotes, "
        "invoices, schedule appointments, and more.\n\n"
        f"{portal_url}\n\n"
        f"This link expires in {expire_minutes} minutes.\n"
        "If you didn't expect this email, you can safely ignore it."
    )
    html = _wrap(
        f"<h2>Welcome to {escape(name)}</h2>"
        f"<p>{escape(greeting)}</p>"
        "<p>You've been invited to access your customer portal where you can view quotes, "
        "invoices, schedule appointments, and more.</p>"
        f'<a href="{escape(portal_url)}" style="{BUTTON_STYLE}">Access Your Portal</a>'
        f'<p style="{MUTED_STYLE}">This link expires in {expire_minutes} minutes.</p>'
        f'<p style="{MUTED_STYLE}">If you didn\'t expect this email, you can safely ignore it.</p>'
    )
    return subject, text, html


def first_login_email(
    business_name: Optional[str],
    customer_name: Optional[str],
    customer_email: str,
    customer_url: str,
) -> Tuple[str, str, str]:
    """Team notification that a customer opened the portal for the first time."""
    who = customer_name or customer_email
    subject = f"{who} just logged into their portal"
    text = (
        f"{customer_name or 'A customer'} ({customer_email}) has successfully logged into "
        "their customer portal for the first time.\n\n"
        f"View customer: {customer_url}\n\n- {business_name or DEFAULT_BRAND}"
    )
    html = _wrap(
        "<h2>New Portal Login</h2>"
        f"<p>Great news! <strong>{escape(customer_name or 'A customer')}</strong> "
        f"({escape(customer_email)}) has successfully logged into their customer portal "
        "for the first time.</p>"
        "<p>They now have access to:</p>"
        "<ul><li>View and approve quotes</li><li>Pay invoices online</li>"
        "<li>Request service appointments</li><li>Track job progress</li></ul>"
        f'<a href="{escape(customer_url)}" style="{BUTTON_STYLE}">View Customer</a>'
        f'<p style="{MUTED_STYLE}">{escape(business_name or DEFAULT_BRAND)}</p>'
    )
    return subject, text, html
