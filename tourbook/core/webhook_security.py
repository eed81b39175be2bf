"""Signature checks for payment provider callbacks."""

import hashlib
import hmac


def compute_signature(secret: str, payload: bytes) -> str:
    """Compute the hex HMAC-SHA256 of ``payload``."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(secret: str, payload: bytes, signature: str | None) -> bool:
    """Constant-time check of an ``X-Signature`` header value.

    Accepts a bare hex digest or one prefixed with ``sha256=``.
    """
    if not secret or not signature:
        return False
    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]
    return hmac.compare_digest(compute_signature(secret, payload), signature.strip().lower())
