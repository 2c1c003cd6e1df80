"""HMAC-SHA256 signing of webhook payloads.

Receivers verify a delivery by recomputing the HMAC over the raw request
body with their webhook secret. The body is serialized canonically (sorted
keys, no whitespace) so any language can reproduce it byte for byte.
"""
import hashlib
import hmac
import json
from typing import Any, Dict

SIGNATURE_PREFIX = "sha256="


def canonical_json(payload: Dict[str, Any]) -> bytes:
    """Serialize a payload with stable key order and compact separators."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def sign_payload(secret: str, body: bytes) -> str:
    """Return the hex HMAC-SHA256 digest of ``body`` keyed by ``secret``."""
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256,
    ).hexdigest()


def signature_header(secret: str, body: bytes) -> str:
    """Value for the ``X-ClickNPS-Signature`` header."""
    return f"{SIGNATURE_PREFIX}{sign_payload(secret, body)}"


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Check a received signature, with or without the ``sha256=`` prefix."""
    if signature.startswith(SIGNATURE_PREFIX):
        signature = signature[len(SIGNATURE_PREFIX):]
    return hmac.compare_digest(sign_payload(secret, body), signature)
