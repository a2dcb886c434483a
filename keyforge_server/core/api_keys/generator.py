"""API key generation, hashing and redaction utilities."""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Optional

from keyforge_server.config import get_settings


@dataclass(frozen=True)
class GeneratedToken:
    """Credential material produced for a new key.

    raw_token is returned to the caller once; the rest is persisted.
    """

    raw_token: str
    hashed_token: str
    salt: str
    redacted: str


@dataclass(frozen=True)
class ScryptParams:
    """scrypt cost parameters."""

    n: int = 16384
    r: int = 8
    p: int = 1

    @classmethod
    def from_settings(cls) -> "ScryptParams":
        settings = get_settings()
        return cls(n=settings.scrypt_n, r=settings.scrypt_r, p=settings.scrypt_p)

    @property
    def maxmem(self) -> int:
        """Memory ceiling for hashlib.scrypt: 128*r*(n+p+2) bytes plus 1 MiB."""
        return 128 * self.r * (self.n + self.p + 2) + 1024 * 1024


class APIKeyGenerator:
    """Generates publishable (pk_) and secret (sk_) keys."""

    PUBLISHABLE_PREFIX = "pk_"
    SECRET_PREFIX = "sk_"
    KEY_LENGTH = 32  # 32 bytes = 256 bits
    SALT_LENGTH = 16
    HASH_LENGTH = 64  # derived key bytes, 128 hex chars

    def __init__(self, params: Optional[ScryptParams] = None):
        """
        Initialize the generator.

        Args:
            params: scrypt cost parameters (defaults to the configured ones)
        """
        self.params = params or ScryptParams.from_settings()

    def generate_publishable_key(self) -> GeneratedToken:
        """
        Generate a publishable key.

        Publishable keys identify a client and are not secret, so the
        stored token is the raw token and there is no salt.
        """
        token = self.PUBLISHABLE_PREFIX + secrets.token_hex(self.KEY_LENGTH)

        return GeneratedToken(
            raw_token=token,
            hashed_token=token,
            salt="",
            redacted=redact_key(token),
        )

    def generate_secret_key(self) -> GeneratedToken:
        """
        Generate a secret key with its own random salt.

        Returns:
            GeneratedToken whose hashed_token is scrypt(raw_token, salt)
        """
        token = self.SECRET_PREFIX + secrets.token_hex(self.KEY_LENGTH)
        salt = secrets.token_hex(self.SALT_LENGTH)

        return GeneratedToken(
            raw_token=token,
            hashed_token=self.calculate_hash(token, salt),
            salt=salt,
            redacted=redact_key(token),
        )

    def calculate_hash(self, token: str, salt: str) -> str:
        """
        Derive the stored hash of a secret token.

        Args:
            token: Raw secret token
            salt: Hex salt stored alongside the key

        Returns:
            str: 128 lowercase hex characters
        """
        derived = hashlib.scrypt(
            token.encode(),
            salt=salt.encode(),
            n=self.params.n,
            r=self.params.r,
            p=self.params.p,
            maxmem=self.params.maxmem,
            dklen=self.HASH_LENGTH,
        )
        return derived.hex()

    def verify_key(self, token: str, salt: str, hashed_token: str) -> bool:
        """
        Verify a presented token against a stored hash.

        The full digest is compared in constant time.

        Args:
            token: Token presented by the caller
            salt: Salt stored with the candidate key
            hashed_token: Hash stored with the candidate key

        Returns:
            bool: True if the token matches
        """
        return hmac.compare_digest(self.calculate_hash(token, salt), hashed_token)


def redact_key(key: str) -> str:
    """
    Create the masked display form of a token.

    Args:
        key: Raw token (e.g., "sk_1a2b3c...9f0")

    Returns:
        str: First 6 and last 3 characters joined by "***" (e.g., "sk_1a2***9f0")
    """
    return "***".join([key[:6], key[-3:]])
