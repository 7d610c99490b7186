import hashlib
import hmac

import stripe


def verify_stripe_signature(payload: bytes, signature_header: str, secret: str, tolerance: int = 300) -> bool:
    """
    Verify a `Stripe-Signature` header (t=...,v1=...) against the raw body.
    """
    if not secret or not signature_header:
        return False
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"), signature_header, secret, tolerance=tolerance
        )
    except (stripe.SignatureVerificationError, UnicodeDecodeError):
        return False
    return True


def verify_hmac_signature(secret: str, payload: bytes, signature_header: str) -> bool:
    """
    Verify an HMAC-SHA256 webhook signature (Donorbox).

    Accepted header shapes:
      <hexdigest> or sha256=<hexdigest>   HMAC over the raw body
      <timestamp>,<hexdigest>             HMAC over "<timestamp>.<body>"
    """
    if not secret or not signature_header:
        return False

    header = signature_header.strip()
    message = payload
    if "," in header:
        timestamp, _, header = header.partition(",")
        message = timestamp.strip().encode("utf-8") + b"." + payload
    if header.startswith("sha256="):
        header = header.split("=", 1)[1]

    mac = hmac.new(secret.encode("utf-8"), msg=message, digestmod=hashlib.sha256)
    return hmac.compare_digest(mac.hexdigest(), header.strip().lower())
