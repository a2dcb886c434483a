"""
Test configuration and fixtures for Keyforge tests

This module imports all fixtures from fixtures/ (database, service).

Usage:
    def test_create_key(service):
        key = service.create_api_key(ApiKeyCreate(title="CI", type="secret", created_by="admin"))
        assert key.token.startswith("sk_")
"""

import pytest

from keyforge_server.core.api_keys import ApiKeyCreate, ApiKeyType

# Import all fixtures for test usage
from tests.fixtures import *  # noqa: F401, F403


@pytest.fixture
def secret_key_input() -> ApiKeyCreate:
    """Request for a new secret key."""
    return ApiKeyCreate(title="Server key", type=ApiKeyType.SECRET, created_by="user_01")


@pytest.fixture
def publishable_key_input() -> ApiKeyCreate:
    """Request for a new publishable key."""
    return ApiKeyCreate(title="Storefront", type=ApiKeyType.PUBLISHABLE, created_by="user_01")
