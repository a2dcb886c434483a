"""Unit tests for API key lifecycle rules."""

from datetime import timedelta

import pytest

from keyforge_server.core.api_keys.models import (
    ApiKeyCreate,
    ApiKeyType,
    RevokeApiKeyInput,
)
from keyforge_server.core.api_keys.repository import ApiKeyRepository
from keyforge_server.core.api_keys.validator import ApiKeyValidator, still_valid_filter
from keyforge_server.core.exceptions import (
    ApiKeyAlreadyRevoked,
    ApiKeyNotRevoked,
    InvalidRevokeRequest,
    InvariantViolation,
    SecretKeyLimitExceeded,
)
from keyforge_server.utils.datetime import utcnow


def _secret(title: str = "secret") -> ApiKeyCreate:
    return ApiKeyCreate(title=title, type=ApiKeyType.SECRET, created_by="user_01")


def _publishable(title: str = "publishable") -> ApiKeyCreate:
    return ApiKeyCreate(title=title, type=ApiKeyType.PUBLISHABLE, created_by="user_01")


@pytest.fixture
def repository() -> ApiKeyRepository:
    return ApiKeyRepository()


@pytest.fixture
def validator(repository) -> ApiKeyValidator:
    return ApiKeyValidator(repository)


@pytest.fixture
def store_key(db_connection, repository):
    """Insert a key directly, bypassing the rules."""
    def _store(key_type: ApiKeyType = ApiKeyType.SECRET, **values):
        record = {
            "title": "stored",
            "type": key_type,
            "created_by": "user_01",
            "token": "stored-token",
            "salt": "stored-salt",
            "redacted": "sk_sto***ken",
        }
        record.update(values)
        return repository.create(db_connection, [record])[0]

    return _store


class TestValidateCreate:
    """Test the secret key creation limits."""

    def test_publishable_keys_are_unlimited(self, db_connection, validator, store_key):
        store_key(ApiKeyType.PUBLISHABLE)
        store_key(ApiKeyType.SECRET)

        validator.validate_create(db_connection, [_publishable(), _publishable("second")])

    def test_single_secret_on_empty_store(self, db_connection, validator):
        validator.validate_create(db_connection, [_secret(), _publishable()])

    def test_two_secrets_in_one_batch(self, db_connection, validator):
        with pytest.raises(SecretKeyLimitExceeded, match="You tried to create 2 secret keys"):
            validator.validate_create(db_connection, [_secret("a"), _secret("b")])

    def test_two_secrets_rejected_regardless_of_store(self, db_connection, validator, store_key):
        store_key(revoked_at=utcnow() - timedelta(days=1), revoked_by="admin")

        with pytest.raises(SecretKeyLimitExceeded):
            validator.validate_create(db_connection, [_secret("a"), _secret("b")])

    def test_existing_active_secret(self, db_connection, validator, store_key):
        store_key()

        with pytest.raises(SecretKeyLimitExceeded, match="one active secret key"):
            validator.validate_create(db_connection, [_secret()])

    def test_existing_secret_in_grace_period(self, db_connection, validator, store_key):
        """A secret whose revocation is still ahead counts as active."""
        store_key(revoked_at=utcnow() + timedelta(minutes=10), revoked_by="admin")

        with pytest.raises(SecretKeyLimitExceeded):
            validator.validate_create(db_connection, [_secret()])

    def test_existing_revoked_secret(self, db_connection, validator, store_key):
        store_key(revoked_at=utcnow() - timedelta(seconds=1), revoked_by="admin")

        validator.validate_create(db_connection, [_secret()])

    def test_errors_are_invariant_violations(self, db_connection, validator):
        with pytest.raises(InvariantViolation):
            validator.validate_create(db_connection, [_secret("a"), _secret("b")])


class TestValidateRevoke:
    """Test the revocation preconditions."""

    def test_empty_batch(self, db_connection, validator):
        validator.validate_revoke(db_connection, [])

    def test_missing_id(self, db_connection, validator):
        with pytest.raises(InvalidRevokeRequest, match="id field"):
            validator.validate_revoke(db_connection, [RevokeApiKeyInput(revoked_by="admin")])

    def test_missing_revoked_by(self, db_connection, validator, store_key):
        key = store_key()

        with pytest.raises(InvalidRevokeRequest, match="revoked_by"):
            validator.validate_revoke(db_connection, [RevokeApiKeyInput(id=key.id)])

    def test_valid_request(self, db_connection, validator, store_key):
        key = store_key()

        validator.validate_revoke(db_connection, [RevokeApiKeyInput(id=key.id, revoked_by="admin")])

    def test_already_revoked_secret(self, db_connection, validator, store_key):
        key = store_key(revoked_at=utcnow() - timedelta(hours=1), revoked_by="admin")

        with pytest.raises(ApiKeyAlreadyRevoked, match="1 secret keys"):
            validator.validate_revoke(
                db_connection, [RevokeApiKeyInput(id=key.id, revoked_by="admin")]
            )

    def test_pending_revocation_counts_as_revoked(self, db_connection, validator, store_key):
        key = store_key(revoked_at=utcnow() + timedelta(hours=1), revoked_by="admin")

        with pytest.raises(ApiKeyAlreadyRevoked):
            validator.validate_revoke(
                db_connection, [RevokeApiKeyInput(id=key.id, revoked_by="admin")]
            )

    def test_revoked_publishable_can_be_revoked_again(self, db_connection, validator, store_key):
        key = store_key(ApiKeyType.PUBLISHABLE, revoked_at=utcnow(), revoked_by="admin")

        validator.validate_revoke(db_connection, [RevokeApiKeyInput(id=key.id, revoked_by="admin")])


class TestValidateDelete:
    """Test that only revoked keys can be deleted."""

    def test_unrevoked_key(self, db_connection, validator, store_key):
        key = store_key()

        with pytest.raises(ApiKeyNotRevoked, match=key.id):
            validator.validate_delete(db_connection, [key.id])

    def test_future_revocation(self, db_connection, validator, store_key):
        key = store_key(revoked_at=utcnow() + timedelta(seconds=60), revoked_by="admin")

        with pytest.raises(ApiKeyNotRevoked):
            validator.validate_delete(db_connection, [key.id])

    def test_past_revocation(self, db_connection, validator, store_key):
        key = store_key(revoked_at=utcnow() - timedelta(seconds=60), revoked_by="admin")

        validator.validate_delete(db_connection, [key.id])

    def test_names_only_offending_ids(self, db_connection, validator, store_key):
        revoked = store_key(revoked_at=utcnow() - timedelta(seconds=60), revoked_by="admin")
        active = store_key(ApiKeyType.PUBLISHABLE)

        with pytest.raises(ApiKeyNotRevoked) as exc_info:
            validator.validate_delete(db_connection, [revoked.id, active.id])

        assert active.id in str(exc_info.value)
        assert revoked.id not in str(exc_info.value)


def test_still_valid_filter_shape():
    now = utcnow()

    assert still_valid_filter(now) == {
        "$or": [{"revoked_at": {"$eq": None}}, {"revoked_at": {"$gt": now}}]
    }
