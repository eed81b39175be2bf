"""Idempotency keys for payment callbacks.

Providers retry callbacks; each capture is stored under a deterministic key
so a replay returns the first outcome instead of applying ``pay`` twice.
"""

import hashlib
import json
from typing import Any
from uuid import UUID

from tourbook.core.exceptions import ValidationError


def generate_idempotency_key(
    operation: str,
    entity_id: UUID | str,
    params: dict[str, Any] | None = None,
) -> str:
    """Generate a deterministic idempotency key.

    Args:
        operation: Operation name (e.g., "payment_capture")
        entity_id: Primary entity ID
        params: Additional parameters to include in key

    Returns:
        SHA256 hash of operation + entity + params
    """
    key_data = {
        "operation": operation,
        "entity_id": str(entity_id),
        "params": params or {},
    }
    key_str = json.dumps(key_data, sort_keys=True)
    return hashlib.sha256(key_str.encode()).hexdigest()


class IdempotencyError(ValidationError):
    """Raised when the same key is reused with different parameters."""

    def __init__(self, operation: str, entity_id: str):
        super().__init__(
            f"Conflicting {operation} operation for entity {entity_id}. "
            "This reference was already used with different values."
        )
