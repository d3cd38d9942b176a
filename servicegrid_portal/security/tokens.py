"""Opaque bearer tokens for magic links and portal sessions.

The raw token goes to the customer (email link or session response); only its
SHA-256 hex digest is persisted and used for lookups.
"""

import hashlib
import secrets

TOKEN_BYTES = 32


def generate_token() -> str:
    """URL-safe random token with 256 bits of entropy."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def hash_client_ip(ip_address: str) -> str:
    """Shortened digest used as a throttle key so raw IPs never hit Redis."""
    return hashlib.sha256(ip_address.encode("utf-8")).hexdigest()[:16]
