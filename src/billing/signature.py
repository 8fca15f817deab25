import hashlib
import hmac
from typing import Optional

from billing.errors import AuthError
from utils.logger import get_logger

logger = get_logger("signature")


def compute_signature(raw_body: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(raw_body: str, signature: Optional[str], secret: Optional[str]) -> None:
    """
    Check an HMAC-SHA256 hex signature over the raw request body.

    No secret configured means the vendor does not sign; the check is skipped.
    A `sha256=` prefix on the header value is accepted.
    """
    if not secret:
        logger.debug("signature.not_configured")
        return

    if not signature:
        logger.warning("signature.missing")
        raise AuthError("Missing signature")

    provided = signature.strip()
    if provided.lower().startswith("sha256="):
        provided = provided[len("sha256="):]

    expected = compute_signature(raw_body, secret)
    if not hmac.compare_digest(expected, provided.lower()):
        logger.warning("signature.mismatch", extra={"signature_preview": provided[:12]})
        raise AuthError("Invalid signature")
