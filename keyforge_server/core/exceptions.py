"""Exceptions raised by the Keyforge core."""


class KeyforgeError(Exception):
    """Base class for all Keyforge errors."""
    pass


class InvariantViolation(KeyforgeError):
    """Raised when a mutation would break an API key lifecycle rule.

    The whole batch is rejected; nothing is written.
    """
    pass


class SecretKeyLimitExceeded(InvariantViolation):
    """Raised when a create would leave more than one active secret key."""
    pass


class ApiKeyAlreadyRevoked(InvariantViolation):
    """Raised when revoking a secret key that already has a revocation date."""
    pass


class ApiKeyNotRevoked(InvariantViolation):
    """Raised when deleting keys that are still valid."""
    pass


class InvalidRevokeRequest(InvariantViolation):
    """Raised when a revoke request is missing the key id or the actor."""
    pass


class ApiKeyNotFound(KeyforgeError):
    """Raised when an API key id does not resolve to a record."""
    pass


class InvalidFilter(KeyforgeError):
    """Raised when a selector references an unknown field or operator."""
    pass
