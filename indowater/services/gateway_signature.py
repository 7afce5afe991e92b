"""Signature schemes used by the supported payment gateways.

Midtrans signs notifications with a SHA-512 hex digest of
``order_id + status_code + gross_amount + server_key``.

DOKU signs requests and notifications with HMAC-SHA256 over a newline-joined
component block::

    Client-Id:<client id>
    Request-Id:<request id>
    Request-Timestamp:<timestamp>
    Request-Target:<path>
    Digest:<base64(sha256(body))>      (only when a body is present)

The result is base64-encoded and prefixed with ``HMACSHA256=``.
"""

import base64
import hashlib
import hmac
from collections.abc import Sequence


def _to_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def midtrans_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    """Compute the Midtrans notification ``signature_key``."""
    raw = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


def doku_digest(body: str | bytes) -> str:
    """Base64-encoded SHA-256 digest of a request body."""
    return base64.b64encode(hashlib.sha256(_to_bytes(body)).digest()).decode("ascii")


def doku_components(
    client_id: str,
    request_id: str,
    request_timestamp: str,
    request_target: str,
    body: str | bytes | None = None,
) -> list[tuple[str, str]]:
    """Ordered ``(key, value)`` pairs that make up a DOKU string-to-sign."""
    components = [
        ("Client-Id", client_id),
        ("Request-Id", request_id),
        ("Request-Timestamp", request_timestamp),
        ("Request-Target", request_target),
    ]
    if body:
        components.append(("Digest", doku_digest(body)))
    return components


def sign(components: Sequence[tuple[str, str]], secret: str, algorithm: str = "sha256") -> str:
    """Sign ordered components with HMAC and return a ``HMAC<ALG>=``-prefixed signature."""
    canonical = "\n".join(f"{key}:{value}" for key, value in components)
    mac = hmac.new(secret.encode("utf-8"), canonical.encode("utf-8"), algorithm).digest()
    return f"HMAC{algorithm.upper()}=" + base64.b64encode(mac).decode("ascii")


def doku_signature(
    client_id: str,
    request_id: str,
    request_timestamp: str,
    request_target: str,
    secret_key: str,
    body: str | bytes | None = None,
) -> str:
    """Compute the ``Signature`` header value for a DOKU request or notification."""
    return sign(
        doku_components(client_id, request_id, request_timestamp, request_target, body),
        secret_key,
    )


def verify(received: str | None, expected: str) -> bool:
    """Exact, case-sensitive comparison in constant time."""
    if not received:
        return False
    return hmac.compare_digest(_to_bytes(received), _to_bytes(expected))
