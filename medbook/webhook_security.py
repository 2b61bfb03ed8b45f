"""
Webhook Security Module

Signature verification for payment-provider callbacks (Standard Webhooks):
- Signed message is webhook-id.webhook-timestamp.payload
- Constant-time signature comparison
- Timestamp tolerance to reject stale deliveries
"""

import base64
import hashlib
import hmac
import logging
import time
from collections.abc import Mapping
from typing import Optional

from .errors import InvalidSignature

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time"""
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def extract_signing_key(secret: str) -> bytes:
    """
    Signing key bytes from a "whsec_BASE64KEY" style secret.
    Secrets without the prefix are tried as base64, then as raw UTF-8.
    """
    try:
        if secret.startswith("whsec_"):
            return base64.b64decode(secret[6:])
        return base64.b64decode(secret, validate=True)
    except Exception:
        return secret.encode("utf-8")


def compute_signature(secret: str, webhook_id: str, timestamp: str, raw_body: bytes) -> str:
    """Base64 HMAC-SHA256 over id.timestamp.body"""
    signed_message = b".".join([webhook_id.encode("utf-8"), timestamp.encode("utf-8"), raw_body])
    digest = hmac.new(extract_signing_key(secret), signed_message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_timestamp(timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS) -> bool:
    """
    Verify webhook timestamp is within acceptable range.

    Args:
        timestamp: Unix timestamp as string
        max_age: Maximum age in seconds
    """
    if not timestamp:
        return False

    try:
        age = abs(int(time.time()) - int(timestamp))
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False

    if age > max_age:
        logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
        return False
    return True


def verify_standard_webhook(headers: Mapping[str, str], raw_body: bytes, secret: Optional[str]) -> str:
    """
    Verify a signed delivery and return its webhook id.

    The signature header may carry several space-separated "v1,<sig>" entries
    (key rotation); any match is accepted.

    Raises:
        InvalidSignature: On missing headers, stale timestamp or mismatch
    """
    if not secret:
        logger.error("❌ Webhook secret not configured; rejecting delivery")
        raise InvalidSignature("Webhook secret not configured")

    webhook_id = headers.get("webhook-id", "")
    timestamp = headers.get("webhook-timestamp", "")
    signature_header = headers.get("webhook-signature", "")

    logger.info(f"📥 Payment webhook received: id={webhook_id or 'unknown'}")

    if not webhook_id or not signature_header:
        logger.error("❌ Missing webhook-id or webhook-signature header")
        raise InvalidSignature("Missing webhook signature")

    if not verify_timestamp(timestamp):
        logger.error("❌ Webhook timestamp expired or invalid")
        raise InvalidSignature("Webhook timestamp expired or invalid")

    expected_signature = compute_signature(secret, webhook_id, timestamp, raw_body)

    for candidate in signature_header.split():
        version, _, received_signature = candidate.partition(",")
        if version == "v1" and constant_time_compare(expected_signature, received_signature):
            logger.info(f"✅ Webhook signature verified: {webhook_id}")
            return webhook_id

    logger.error(f"❌ Webhook signature mismatch for {webhook_id} ({len(raw_body)} bytes)")
    raise InvalidSignature("Invalid webhook signature")
