"""
Identifier Helpers
==================
Normalization and log-safe masking of email identifiers.
"""


def normalize_identifier(identifier: str) -> str:
    """Normalize an email identifier for use as a store key."""
    return (identifier or "").strip().lower()


def mask_identifier(identifier: str) -> str:
    """Mask an email for logs: ``alice@example.com`` -> ``al***@example.com``."""
    local, sep, domain = (identifier or "").partition("@")
    return f"{local[:2]}***{sep}{domain}"
