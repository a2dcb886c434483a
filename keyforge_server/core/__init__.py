"""Core business logic"""

from .exceptions import (
    KeyforgeError,
    InvariantViolation,
    SecretKeyLimitExceeded,
    ApiKeyAlreadyRevoked,
    ApiKeyNotRevoked,
    InvalidRevokeRequest,
    ApiKeyNotFound,
    InvalidFilter,
)

__all__ = [
    "KeyforgeError",
    "InvariantViolation",
    "SecretKeyLimitExceeded",
    "ApiKeyAlreadyRevoked",
    "ApiKeyNotRevoked",
    "InvalidRevokeRequest",
    "ApiKeyNotFound",
    "InvalidFilter",
]
