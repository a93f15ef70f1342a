"""
OTP Code Utilities
==================
Secure code generation and constant-time comparison.
"""

import hmac
import secrets


def generate_otp(length: int = 6) -> str:
    """
    Generate a numeric OTP from the system CSPRNG.

    Args:
        length: Number of digits

    Returns:
        Zero-padded OTP string
    """
    return str(secrets.randbelow(10 ** length)).zfill(length)


def constant_time_compare(expected: str, submitted: str) -> bool:
    """
    Compare two codes without leaking the mismatch position through timing.

    Codes of different length never match.
    """
    if len(expected) != len(submitted):
        return False
    return hmac.compare_digest(expected.encode("utf-8"), submitted.encode("utf-8"))
