"""Integration tests for secret key mutations under concurrent callers."""

import threading

import pytest

from keyforge_server.core.api_keys import APIKeyService, ApiKeyCreate, ApiKeyType, RevokeApiKey
from keyforge_server.core.exceptions import ApiKeyAlreadyRevoked, SecretKeyLimitExceeded


@pytest.mark.integration
class TestConcurrentSecretKeys:
    """Several callers race to create the first secret key."""

    def test_only_one_secret_key_wins(self, file_engine, generator):
        service = APIKeyService(file_engine, generator=generator)
        workers = 8
        barrier = threading.Barrier(workers)
        created: list[str] = []
        rejected: list[Exception] = []
        unexpected: list[Exception] = []
        results_lock = threading.Lock()

        def create(i: int) -> None:
            barrier.wait()
            try:
                key = service.create_api_key(
                    ApiKeyCreate(title=f"racer-{i}", type=ApiKeyType.SECRET, created_by="ci")
                )
            except SecretKeyLimitExceeded as e:
                with results_lock:
                    rejected.append(e)
            except Exception as e:  # surfaced through the assertion below
                with results_lock:
                    unexpected.append(e)
            else:
                with results_lock:
                    created.append(key.id)

        threads = [threading.Thread(target=create, args=(i,)) for i in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert unexpected == []
        assert len(created) == 1
        assert len(rejected) == workers - 1
        assert [k.id for k in service.list_api_keys({"type": "secret"})] == created

    def test_concurrent_reads_during_writes(self, file_engine, generator):
        service = APIKeyService(file_engine, generator=generator)
        secret = service.create_api_key(
            ApiKeyCreate(title="server", type=ApiKeyType.SECRET, created_by="ci")
        )
        matches: list[bool] = []

        def authenticate() -> None:
            matches.append(service.authenticate(secret.token) is not None)

        def create_publishable(i: int) -> None:
            service.create_api_key(
                ApiKeyCreate(title=f"pk-{i}", type=ApiKeyType.PUBLISHABLE, created_by="ci")
            )

        threads = [threading.Thread(target=authenticate) for _ in range(4)]
        threads += [threading.Thread(target=create_publishable, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert matches == [True] * 4
        _, count = service.list_and_count_api_keys()
        assert count == 5


@pytest.mark.integration
class TestConcurrentRevoke:
    """Several callers race to revoke the same secret key."""

    def test_only_one_revoke_wins(self, file_engine, generator):
        service = APIKeyService(file_engine, generator=generator)
        secret = service.create_api_key(
            ApiKeyCreate(title="server", type=ApiKeyType.SECRET, created_by="ci")
        )
        workers = 8
        barrier = threading.Barrier(workers)
        revoked = []
        rejected: list[Exception] = []
        unexpected: list[Exception] = []
        results_lock = threading.Lock()

        def revoke(i: int) -> None:
            barrier.wait()
            try:
                key = service.revoke_api_key(
                    secret.id, RevokeApiKey(revoked_by=f"admin-{i}", revoke_in=60 * (i + 1))
                )
            except ApiKeyAlreadyRevoked as e:
                with results_lock:
                    rejected.append(e)
            except Exception as e:  # surfaced through the assertion below
                with results_lock:
                    unexpected.append(e)
            else:
                with results_lock:
                    revoked.append(key)

        threads = [threading.Thread(target=revoke, args=(i,)) for i in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert unexpected == []
        assert len(revoked) == 1
        assert len(rejected) == workers - 1

        winner = revoked[0]
        stored = service.retrieve_api_key(secret.id)
        assert stored.revoked_by == winner.revoked_by
        assert stored.revoked_at == winner.revoked_at
