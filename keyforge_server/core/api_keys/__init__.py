"""API key management for Keyforge."""

from .generator import APIKeyGenerator, GeneratedToken, ScryptParams, redact_key
from .models import (
    ApiKey,
    ApiKeyCreate,
    ApiKeyResponse,
    ApiKeyType,
    ApiKeyUpdate,
    ApiKeyUpsert,
    FindConfig,
    RevokeApiKey,
)
from .repository import ApiKeyRepository
from .service import APIKeyService
from .validator import ApiKeyValidator

__all__ = [
    "APIKeyGenerator",
    "GeneratedToken",
    "ScryptParams",
    "redact_key",
    "ApiKey",
    "ApiKeyCreate",
    "ApiKeyResponse",
    "ApiKeyType",
    "ApiKeyUpdate",
    "ApiKeyUpsert",
    "FindConfig",
    "RevokeApiKey",
    "ApiKeyRepository",
    "APIKeyService",
    "ApiKeyValidator",
]
