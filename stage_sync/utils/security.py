import base64, hashlib, hmac


def compute_webhook_hmac(raw: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_webhook_hmac(raw: bytes, their_hmac: str | None, secret: str | None) -> bool:
    """
    Base64 HMAC-SHA256 over the raw, unparsed body.
    Fails closed when the secret or the header is missing.
    """
    if not secret or not their_hmac:
        return False
    # bytes, so a non-ASCII header is a mismatch rather than a TypeError
    expected = compute_webhook_hmac(raw or b"", secret).encode("utf-8")
    return hmac.compare_digest(expected, their_hmac.strip().encode("utf-8"))
