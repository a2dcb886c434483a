"""API key service for business logic."""

import logging
from datetime import timedelta
from typing import Optional, Sequence, Union

from sqlalchemy.engine import Connection, Engine

from keyforge_server.core.database import get_connection, secret_key_transaction
from keyforge_server.utils.datetime import utcnow
from .generator import APIKeyGenerator, GeneratedToken
from .models import (
    ApiKey,
    ApiKeyCreate,
    ApiKeyResponse,
    ApiKeyType,
    ApiKeyUpdate,
    ApiKeyUpsert,
    FindConfig,
    RevokeApiKey,
    RevokeApiKeyInput,
)
from .repository import ApiKeyRepository, Filters
from .validator import ApiKeyValidator, still_valid_filter

logger = logging.getLogger(__name__)

IdOrSelector = Union[str, Filters]


class APIKeyService:
    """Service for managing the API key lifecycle.

    Batch operations take sequences; the singular methods are thin wrappers
    around them.
    """

    def __init__(
        self,
        engine: Engine,
        generator: Optional[APIKeyGenerator] = None,
        repository: Optional[ApiKeyRepository] = None,
    ):
        """
        Initialize API key service.

        Args:
            engine: SQLAlchemy engine instance
            generator: Token generator (defaults to configured scrypt cost)
            repository: Record store (defaults to the SQLAlchemy repository)
        """
        self.engine = engine
        self.generator = generator or APIKeyGenerator()
        self.repository = repository or ApiKeyRepository()
        self.validator = ApiKeyValidator(self.repository)

    def create_api_keys(self, data: Sequence[ApiKeyCreate]) -> list[ApiKeyResponse]:
        """
        Create a batch of keys.

        The response is the only place the raw tokens are ever returned.

        Args:
            data: Keys to create

        Returns:
            Created keys with their raw token

        Raises:
            SecretKeyLimitExceeded: If the batch would break the secret key rules
        """
        data = list(data)
        if not data:
            return []

        with secret_key_transaction(self.engine) as conn:
            created, generated = self._create(conn, data)

        return self._with_raw_tokens(created, generated)

    def create_api_key(self, data: ApiKeyCreate) -> ApiKeyResponse:
        """Create a single key. See create_api_keys."""
        return self.create_api_keys([data])[0]

    def upsert_api_keys(self, data: Sequence[ApiKeyUpsert]) -> list[ApiKeyResponse]:
        """
        Create entries without an id and update the title of entries with one.

        Both halves run in one transaction. Created keys come first in the
        result, followed by updated keys.
        """
        for_create = [k.to_create() for k in data if not k.id]
        for_update = [k for k in data if k.id]

        results: list[ApiKeyResponse] = []
        with secret_key_transaction(self.engine) as conn:
            if for_create:
                created, generated = self._create(conn, for_create)
                results.extend(self._with_raw_tokens(created, generated))

            if for_update:
                updated = self.repository.update(
                    conn, [{"id": k.id, "title": k.title} for k in for_update]
                )
                results.extend(ApiKeyResponse.from_record(k) for k in updated)

        return results

    def upsert_api_key(self, data: ApiKeyUpsert) -> ApiKeyResponse:
        """Upsert a single key. See upsert_api_keys."""
        return self.upsert_api_keys([data])[0]

    def update_api_keys(self, selector: Filters, data: ApiKeyUpdate) -> list[ApiKeyResponse]:
        """
        Update the title of every key matching the selector.

        Token, salt and type are never touched.
        """
        with get_connection(self.engine) as conn:
            updated = self._update(conn, self._resolve_ids(conn, selector), data)
        return [ApiKeyResponse.from_record(k) for k in updated]

    def update_api_key(self, key_id: str, data: ApiKeyUpdate) -> ApiKeyResponse:
        """
        Update the title of one key.

        Raises:
            ApiKeyNotFound: If the key does not exist
        """
        with get_connection(self.engine) as conn:
            updated = self._update(conn, [key_id], data)
        return ApiKeyResponse.from_record(updated[0])

    def revoke_api_keys(self, selector: Filters, data: RevokeApiKey) -> list[ApiKeyResponse]:
        """
        Revoke every key matching the selector.

        With revoke_in > 0 the revocation date is that many seconds ahead and
        the keys keep working until then; otherwise they are revoked now.

        Raises:
            InvalidRevokeRequest: If revoked_by is missing
            ApiKeyAlreadyRevoked: If a matched secret key is already revoked
        """
        with secret_key_transaction(self.engine) as conn:
            revoked = self._revoke(conn, self._resolve_ids(conn, selector), data)
        return [ApiKeyResponse.from_record(k) for k in revoked]

    def revoke_api_key(self, key_id: str, data: RevokeApiKey) -> ApiKeyResponse:
        """Revoke one key. See revoke_api_keys."""
        with secret_key_transaction(self.engine) as conn:
            revoked = self._revoke(conn, [key_id], data)
        return ApiKeyResponse.from_record(revoked[0])

    def delete_api_keys(self, ids: Sequence[str]) -> None:
        """
        Delete keys permanently.

        Only keys whose revocation date has passed can be deleted.

        Raises:
            ApiKeyNotRevoked: If any key is unrevoked or revoked in the future
        """
        ids = list(ids)
        if not ids:
            return

        with secret_key_transaction(self.engine) as conn:
            self.validator.validate_delete(conn, ids)
            self.repository.delete(conn, ids)

        logger.info(f"Deleted API keys: {', '.join(ids)}")

    def delete_api_key(self, key_id: str) -> None:
        """Delete one key. See delete_api_keys."""
        self.delete_api_keys([key_id])

    def retrieve_api_key(self, key_id: str) -> ApiKeyResponse:
        """
        Get one key.

        Raises:
            ApiKeyNotFound: If the key does not exist
        """
        with get_connection(self.engine) as conn:
            record = self.repository.retrieve(conn, key_id)
        return ApiKeyResponse.from_record(record)

    def list_api_keys(
        self,
        filters: Optional[Filters] = None,
        config: Optional[FindConfig] = None,
    ) -> list[ApiKeyResponse]:
        """List keys matching the filters."""
        with get_connection(self.engine) as conn:
            records = self.repository.list(conn, filters, config)
        return [ApiKeyResponse.from_record(k) for k in records]

    def list_and_count_api_keys(
        self,
        filters: Optional[Filters] = None,
        config: Optional[FindConfig] = None,
    ) -> tuple[list[ApiKeyResponse], int]:
        """List keys matching the filters with the total count before pagination."""
        with get_connection(self.engine) as conn:
            records, count = self.repository.list_and_count(conn, filters, config)
        return [ApiKeyResponse.from_record(k) for k in records], count

    def authenticate(self, token: str) -> Optional[ApiKeyResponse]:
        """
        Match a presented token against the currently valid secret keys.

        At most two secret keys are valid at once (during rotation), so every
        candidate is checked. Candidates are tried oldest first and the first
        match wins.

        Args:
            token: Raw secret token presented by the caller

        Returns:
            The matching key, or None when nothing matches
        """
        if not token or not token.startswith(APIKeyGenerator.SECRET_PREFIX):
            logger.debug("Authentication declined: not a secret key token")
            return None

        with get_connection(self.engine) as conn:
            candidates = self.repository.list(
                conn,
                {"type": ApiKeyType.SECRET, **still_valid_filter(utcnow())},
                FindConfig(order={"created_at": "ASC", "id": "ASC"}),
            )

        for record in candidates:
            if self.generator.verify_key(token, record.salt, record.token):
                return ApiKeyResponse.from_record(record)

        logger.debug(f"Authentication declined after checking {len(candidates)} secret keys")
        return None

    def _create(
        self,
        conn: Connection,
        data: list[ApiKeyCreate],
    ) -> tuple[list[ApiKey], list[GeneratedToken]]:
        self.validator.validate_create(conn, data)

        records = []
        generated_tokens = []
        for key in data:
            if key.type == ApiKeyType.PUBLISHABLE:
                token_data = self.generator.generate_publishable_key()
            else:
                token_data = self.generator.generate_secret_key()

            generated_tokens.append(token_data)
            records.append(
                {
                    "title": key.title,
                    "type": key.type,
                    "created_by": key.created_by,
                    "token": token_data.hashed_token,
                    "salt": token_data.salt,
                    "redacted": token_data.redacted,
                }
            )

        created = self.repository.create(conn, records)
        for record in created:
            logger.info(f"Created {record.type.value} API key {record.id} ({record.redacted})")

        return created, generated_tokens

    def _update(self, conn: Connection, ids: list[str], data: ApiKeyUpdate) -> list[ApiKey]:
        return self.repository.update(conn, [{"id": key_id, "title": data.title} for key_id in ids])

    def _revoke(self, conn: Connection, ids: list[str], data: RevokeApiKey) -> list[ApiKey]:
        inputs = [RevokeApiKeyInput(id=key_id, **data.model_dump()) for key_id in ids]
        self.validator.validate_revoke(conn, inputs)

        now = utcnow()
        patches = []
        for k in inputs:
            revoked_at = now
            if k.revoke_in and k.revoke_in > 0:
                revoked_at = now + timedelta(seconds=k.revoke_in)
            patches.append({"id": k.id, "revoked_at": revoked_at, "revoked_by": k.revoked_by})

        revoked = self.repository.update(conn, patches)
        for record in revoked:
            logger.info(
                f"Revoked API key {record.id} by {record.revoked_by}, effective {record.revoked_at.isoformat()}"
            )
        return revoked

    def _resolve_ids(self, conn: Connection, id_or_selector: IdOrSelector) -> list[str]:
        if isinstance(id_or_selector, str):
            return [id_or_selector]
        return [k.id for k in self.repository.list(conn, id_or_selector)]

    @staticmethod
    def _with_raw_tokens(
        created: list[ApiKey],
        generated: list[GeneratedToken],
    ) -> list[ApiKeyResponse]:
        raw_by_hash = {t.hashed_token: t.raw_token for t in generated}
        return [
            ApiKeyResponse.from_record(k, raw_token=raw_by_hash.get(k.token))
            for k in created
        ]
