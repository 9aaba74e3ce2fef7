"""Comparison of secret byte strings."""

import hmac


def compare_bytes(a: bytes, b: bytes) -> bool:
    """Compare secrets in time independent of where they differ.

    Used for integrity digests and passphrase confirmation.
    """
    return hmac.compare_digest(a, b)
