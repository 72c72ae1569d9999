"""Payment webhook signature verification."""

from __future__ import annotations

import hashlib
import hmac

from tutorug.errors import InvalidSignature

SIGNATURE_HEADERS = ("verif-hash", "x-flutterwave-signature", "x-flw-signature")


def verify_webhook_signature(raw_body: bytes, received: str | None, secret: str) -> None:
    """Accept the shared secret itself or the hex HMAC-SHA256 of the raw body.

    Fails closed: no configured secret rejects every delivery. Comparisons are
    constant-time.

    Raises:
        InvalidSignature: If the signature is missing or does not match.
    """
    if not secret:
        raise InvalidSignature("Webhook secret is not configured")
    if not received:
        raise InvalidSignature("Missing webhook signature header")

    if hmac.compare_digest(received.encode(), secret.encode()):
        return

    expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    if hmac.compare_digest(received.lower().encode(), expected.encode()):
        return

    raise InvalidSignature("Invalid webhook signature")


def signature_from_headers(headers: dict[str, str] | object) -> str | None:
    for name in SIGNATURE_HEADERS:
        value = headers.get(name)  # type: ignore[attr-defined]
        if value:
            return value
    return None
