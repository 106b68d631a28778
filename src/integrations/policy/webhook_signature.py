"""HMAC-SHA256 signatures for gateway webhook bodies."""

import hashlib
import hmac
from typing import Optional


def sign_payload(payload_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload_body, hashlib.sha256).hexdigest()


def verify_signature(payload_body: bytes, signature_header: Optional[str], secret: str) -> bool:
    """
    Verify the hex HMAC of the raw body. Accepts a bare digest or "sha256=<digest>".
    Missing secret or header never verifies.
    """
    if not signature_header or not secret:
        return False
    candidate = signature_header.strip()
    if candidate.lower().startswith("sha256="):
        candidate = candidate[len("sha256="):]
    expected = sign_payload(payload_body, secret)
    return hmac.compare_digest(expected, candidate.lower())
