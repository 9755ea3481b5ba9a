"""
Idempotency key utilities.

Idempotency keys let a caller retry invoice creation safely: the Ledger
stores the key on the invoice and returns the existing record for any
repeat of the same key.
"""

from uuid import UUID, uuid4

from billing_kernel.exceptions import InvalidInputError


def generate_idempotency_key(
    source: str,
    request_id: UUID | str | None = None,
) -> str:
    """
    Generate an idempotency key for a creation request.

    Format: source:request_id

    Args:
        source: Caller that builds the request (e.g. "invoice-form").
        request_id: Stable identifier of the request; a fresh UUID when
            omitted, which is only safe if the caller keeps the returned key
            for its retries.

    Example:
        >>> generate_idempotency_key("invoice-form", "550e8400-e29b-41d4-a716-446655440000")
        'invoice-form:550e8400-e29b-41d4-a716-446655440000'
    """
    return f"{source}:{request_id or uuid4()}"


def require_idempotency_key(key: object) -> str:
    """Return ``key`` stripped, or raise if it is missing or blank."""
    if not isinstance(key, str) or not key.strip():
        raise InvalidInputError("idempotency_key", "must be a non-empty string")
    return key.strip()
