"""
Utility functions for the storefront API.
"""

import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def verify_hmac_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """
    Verify a Meta webhook signature (X-Hub-Signature-256).

    Args:
        body: Raw request body bytes
        signature: Header value, "sha256=<hex digest>"
        secret: App secret the digest was computed with

    Returns:
        True if signature is valid, False otherwise
    """
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        logger.info("Webhook signature missing or malformed")
        return False

    expected_signature = hmac.new(
        secret.encode("utf-8"),
        body,
        hashlib.sha256
    ).hexdigest()

    # Use constant-time comparison to prevent timing attacks
    is_valid = hmac.compare_digest(expected_signature, signature[len(SIGNATURE_PREFIX):])
    logger.info(f"HMAC signature verification: {'valid' if is_valid else 'invalid'}")

    return is_valid
