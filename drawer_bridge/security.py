"""
PIN hashing.

PINs are never stored; only their SHA-256 hex digest is kept in the
device config. The same digest is used for the staff and admin slots.
"""

import hashlib
import hmac


def hash_pin(pin: str) -> str:
    """Return the SHA-256 hex digest of a PIN."""
    return hashlib.sha256(pin.encode('utf-8')).hexdigest()


def pin_matches(pin: str, pin_hash: str | None) -> bool:
    """Check a PIN against a stored digest. An unset digest never matches."""
    if not pin_hash:
        return False
    return hmac.compare_digest(hash_pin(pin).encode('ascii'), pin_hash.encode('utf-8'))
