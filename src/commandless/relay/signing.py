"""Request signing helpers for the relay transport."""

import base64
import hashlib
import hmac
import time


def hmac_sign(body: str, secret: str) -> str:
    """Return the hex HMAC-SHA256 of ``body`` keyed by ``secret``."""
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def now_unix_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def make_idempotency_key(event_type: str, event_id: str, timestamp_ms: int) -> str:
    """
    Build the idempotency key sent with an event.

    Retries of the same event within one second share a key, so the relay can
    drop duplicates. Encoded as unpadded base64url.
    """
    base = f"{event_type}:{event_id}:{timestamp_ms // 1000}"
    return base64.urlsafe_b64encode(base.encode("utf-8")).decode("ascii").rstrip("=")
