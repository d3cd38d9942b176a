"""Credential hashing, token handling and request throttling."""
