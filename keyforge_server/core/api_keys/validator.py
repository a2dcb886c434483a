"""Lifecycle rules checked before API key mutations are written.

Secret keys rotate: at most one secret key is valid at a time, and a second
one may only exist while the previous key waits out its revocation date.
"""

import logging
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.engine import Connection

from keyforge_server.core.exceptions import (
    ApiKeyAlreadyRevoked,
    ApiKeyNotRevoked,
    InvalidRevokeRequest,
    SecretKeyLimitExceeded,
)
from keyforge_server.utils.datetime import utcnow
from .models import ApiKeyCreate, ApiKeyType, RevokeApiKeyInput
from .repository import ApiKeyRepository, Filters

logger = logging.getLogger(__name__)


def still_valid_filter(now: datetime) -> Filters:
    """Keys without a revocation date, or whose revocation is still ahead."""
    return {
        "$or": [
            {"revoked_at": {"$eq": None}},
            {"revoked_at": {"$gt": now}},
        ]
    }


class ApiKeyValidator:
    """Checks API key invariants against the current store state."""

    def __init__(self, repository: ApiKeyRepository):
        self.repository = repository

    def validate_create(
        self,
        conn: Connection,
        data: Sequence[ApiKeyCreate],
        now: Optional[datetime] = None,
    ) -> None:
        """
        Validate a create batch.

        Raises:
            SecretKeyLimitExceeded: If the batch holds more than one secret key,
                or a secret key is requested while another one is still valid
        """
        secret_keys_to_create = [k for k in data if k.type == ApiKeyType.SECRET]
        if not secret_keys_to_create:
            return

        if len(secret_keys_to_create) > 1:
            logger.warning(f"Rejected batch with {len(secret_keys_to_create)} secret keys")
            raise SecretKeyLimitExceeded(
                "You can only create one secret key at a time. "
                f"You tried to create {len(secret_keys_to_create)} secret keys."
            )

        active = self.repository.list(
            conn,
            {"type": ApiKeyType.SECRET, **still_valid_filter(now or utcnow())},
        )
        if active:
            logger.warning(
                f"Rejected secret key creation, active secret key exists: "
                f"{', '.join(k.id for k in active)}"
            )
            raise SecretKeyLimitExceeded(
                "You can only have one active secret key a time. "
                "Revoke or delete your existing key before creating a new one."
            )

    def validate_revoke(self, conn: Connection, data: Sequence[RevokeApiKeyInput]) -> None:
        """
        Validate a revoke batch.

        Raises:
            InvalidRevokeRequest: If an entry lacks an id or a revoked_by actor
            ApiKeyAlreadyRevoked: If a targeted secret key already has a revocation date
        """
        if not data:
            return

        if any(not k.id for k in data):
            raise InvalidRevokeRequest("You must provide an api key id field when revoking a key.")

        if any(not k.revoked_by for k in data):
            raise InvalidRevokeRequest("You must provide a revoked_by field when revoking a key.")

        revoked = self.repository.list(
            conn,
            {
                "id": [k.id for k in data],
                "type": ApiKeyType.SECRET,
                "revoked_at": {"$ne": None},
            },
        )
        if revoked:
            raise ApiKeyAlreadyRevoked(
                f"There are {len(revoked)} secret keys that are already revoked: "
                f"{', '.join(k.id for k in revoked)}"
            )

    def validate_delete(
        self,
        conn: Connection,
        ids: Sequence[str],
        now: Optional[datetime] = None,
    ) -> None:
        """
        Validate that every targeted key is actually revoked.

        Raises:
            ApiKeyNotRevoked: If any key is unrevoked or revoked in the future
        """
        if not ids:
            return

        unrevoked = self.repository.list(
            conn,
            {"id": list(ids), **still_valid_filter(now or utcnow())},
        )
        if unrevoked:
            raise ApiKeyNotRevoked(
                "Cannot delete api keys that are not revoked - "
                f"{', '.join(k.id for k in unrevoked)}"
            )
