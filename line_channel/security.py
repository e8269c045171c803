import base64
import hmac
import hashlib
import logging
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


def validate_signature(raw_body: bytes, headers: Mapping[str, str], channel_secret: Optional[str]) -> bool:
    """Check the X-Line-Signature header (base64 HMAC-SHA256 of the raw body)."""
    if not channel_secret:
        logger.warning("CHANNEL_SECRET not set, skipping webhook signature check")
        return True

    signature = headers.get("x-line-signature") or headers.get("X-Line-Signature") or ""
    if not signature:
        return False
    digest = hmac.new(channel_secret.encode("utf-8"), msg=raw_body, digestmod=hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(expected, signature)
