"""
Opaque order references carried through the processor.

The reference goes out as the checkout session's client_reference_id and
as `orderReference` metadata on the payment intent or subscription, and
comes back on webhooks when no other order context is available.

Format: ``ord_<base64url(order id)>_<checksum>``. The checksum is the
first 8 hex digits of the SHA-256 of the order id, so a truncated or
hand-edited reference fails to decode instead of pointing at the wrong
order.
"""

import base64
import binascii
import hashlib

from checkout_bridge.engine.errors import ReferenceMalformed

REFERENCE_PREFIX = "ord"
_SEPARATOR = "_"
_CHECKSUM_LENGTH = 8


def _checksum(order_id: str) -> str:
    return hashlib.sha256(order_id.encode("utf-8")).hexdigest()[:_CHECKSUM_LENGTH]


def encode_order_reference(order_id: str) -> str:
    """Encode a host order id into an opaque reference string."""
    if not order_id:
        raise ValueError("Order id is required to build an order reference")

    body = base64.urlsafe_b64encode(order_id.encode("utf-8")).decode("ascii").rstrip("=")
    return f"{REFERENCE_PREFIX}{_SEPARATOR}{body}{_SEPARATOR}{_checksum(order_id)}"


def decode_order_reference(reference: str) -> str:
    """
    Decode an order reference back into the host order id.

    Raises:
        ReferenceMalformed: If the prefix, encoding or checksum is wrong.
    """
    if not reference or not isinstance(reference, str):
        raise ReferenceMalformed("Empty order reference")

    # base64url may itself contain "_", so split the outer fields only
    prefix, sep, rest = reference.partition(_SEPARATOR)
    body, sep2, checksum = rest.rpartition(_SEPARATOR)
    if prefix != REFERENCE_PREFIX or not sep or not sep2 or not body:
        raise ReferenceMalformed(f"Unrecognised order reference: {reference!r}")

    padded = body + "=" * (-len(body) % 4)
    try:
        order_id = base64.b64decode(padded, altchars=b"-_", validate=True).decode("utf-8")
    except (binascii.Error, ValueError) as e:
        raise ReferenceMalformed(f"Order reference is not valid base64: {reference!r}") from e

    if not order_id or _checksum(order_id) != checksum:
        raise ReferenceMalformed(f"Order reference checksum mismatch: {reference!r}")

    return order_id
