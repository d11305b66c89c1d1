"""
Idempotency key utilities.

A client-supplied idempotency key is only unique within the tenant, the HTTP
method and the path it was sent with.  The composite cache key partitions
the idempotency cache accordingly, so one tenant can never replay another
tenant's response.
"""

from uuid import UUID

IDEMPOTENCY_NAMESPACE = "idempotency"


def generate_idempotency_key(
    tenant_id: UUID | str,
    client_key: str,
    method: str,
    path: str,
) -> str:
    """
    Build the composite cache key for a guarded request.

    Format: idempotency:tenant:client_key:METHOD:path

    Example:
        >>> generate_idempotency_key(tenant, "abc", "post", "/payments")
        "idempotency:550e8400-e29b-41d4-a716-446655440000:abc:POST:/payments"
    """
    return f"{IDEMPOTENCY_NAMESPACE}:{tenant_id}:{client_key}:{method.upper()}:{path}"


def parse_idempotency_key(key: str) -> tuple[str, str, str, str]:
    """
    Split a composite key into (tenant_id, client_key, method, path).

    The path is the last component and may itself contain colons; the
    client key must not.

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 4)
    if len(parts) != 5 or parts[0] != IDEMPOTENCY_NAMESPACE:
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[1], parts[2], parts[3], parts[4]
