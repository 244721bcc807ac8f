"""
HMAC-SHA256 verification for RevenueCat webhook payloads.

The provider signs the canonical JSON serialization of the payload (sorted keys,
compact separators, UTF-8), so two bodies that differ only in key order or
whitespace carry the same signature.
"""
import hashlib
import hmac
import json
from typing import Any, Mapping, Optional, Union

# Length of a hex-encoded SHA-256 digest
SIGNATURE_HEX_LENGTH = hashlib.sha256().digest_size * 2

Payload = Union[bytes, str, Mapping[str, Any]]


def canonical_json(payload: Payload) -> bytes:
    """Serialize payload the way the provider signs it."""
    if isinstance(payload, (bytes, str)):
        payload = json.loads(payload)
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_signature(payload: Payload, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), canonical_json(payload), hashlib.sha256).hexdigest()


def verify_signature(payload: Payload, provided_signature: Optional[str], secret: str) -> bool:
    """
    Return True when provided_signature is the hex HMAC of payload under secret.

    Callers must handle a missing secret before calling; an empty secret never
    verifies. The length check only compares against a public constant, and the
    digest comparison itself is constant time.
    """
    if not secret or not provided_signature:
        return False

    candidate = provided_signature.strip().lower().encode("utf-8", errors="replace")
    if len(candidate) != SIGNATURE_HEX_LENGTH:
        return False

    try:
        expected = compute_signature(payload, secret).encode("ascii")
    except (TypeError, ValueError):
        # Body is not JSON, so it cannot match a signed canonical serialization
        return False

    return hmac.compare_digest(candidate, expected)
