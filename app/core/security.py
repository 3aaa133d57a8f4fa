from __future__ import annotations

import base64
import hashlib
import hmac


def sign_tally_body(body: bytes, secret: str) -> str:
    """Tally's ``tally-signature``: base64 HMAC-SHA256 of the raw request body."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_tally_signature(body: bytes, signature: str | None, secret: str) -> bool:
    if not secret:
        return True
    if not signature:
        return False
    return hmac.compare_digest(sign_tally_body(body, secret), signature.strip())


def verify_shared_secret(provided: str | None, secret: str) -> bool:
    """Constant-time check of a static secret header (database webhooks)."""
    if not secret:
        return True
    if not provided:
        return False
    return hmac.compare_digest(provided.strip().encode("utf-8"), secret.encode("utf-8"))
