from __future__ import annotations

import hmac
import logging
import time


logger = logging.getLogger(__name__)


def parse_signature_header(signature_header: str) -> tuple[int | None, list[str]]:
    timestamp: int | None = None
    signatures: list[str] = []
    for part in signature_header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


def verify_stripe_signature(
    body: bytes,
    signature_header: str | None,
    webhook_secret: str | None,
    env: str,
    tolerance_seconds: int = 300,
    now: float | None = None,
) -> bool:
    if not signature_header:
        if env.lower() in {"dev", "local"} and not webhook_secret:
            logger.warning("Missing signature header; accepting in dev mode")
            return True
        return False

    if not webhook_secret:
        logger.error("Missing webhook secret for signature verification")
        return False

    timestamp, signatures = parse_signature_header(signature_header)
    if timestamp is None or not signatures:
        return False

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance_seconds:
        logger.warning("Webhook timestamp outside tolerance", extra={"age_seconds": int(current - timestamp)})
        return False

    signed_payload = f"{timestamp}.".encode("utf-8") + body
    expected = hmac.new(webhook_secret.encode("utf-8"), signed_payload, "sha256").hexdigest()
    return any(hmac.compare_digest(expected, signature) for signature in signatures)
