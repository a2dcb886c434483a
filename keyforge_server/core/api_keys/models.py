"""Pydantic models for API keys."""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

# 100 years; keeps now + revoke_in within datetime range
MAX_REVOKE_IN = 100 * 365 * 24 * 60 * 60


class ApiKeyType(str, Enum):
    """Kinds of API keys."""

    SECRET = "secret"
    PUBLISHABLE = "publishable"


class ApiKeyCreate(BaseModel):
    """Request model for creating an API key."""

    title: str = Field(..., min_length=1, max_length=255, description="Label for the key")
    type: ApiKeyType
    created_by: str = Field(..., min_length=1, max_length=255, description="Actor creating the key")


class ApiKeyUpdate(BaseModel):
    """Patch applied by update. Only the title is mutable."""

    title: str = Field(..., min_length=1, max_length=255)


class ApiKeyUpsert(BaseModel):
    """Upsert entry: with an id it updates the title, without one it creates a key."""

    id: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[ApiKeyType] = None
    created_by: Optional[str] = Field(None, min_length=1, max_length=255)

    @model_validator(mode="after")
    def check_required_fields(self) -> "ApiKeyUpsert":
        if self.id is None:
            missing = [
                name for name in ("title", "type", "created_by")
                if getattr(self, name) is None
            ]
            if missing:
                raise ValueError(f"Missing fields for a new key: {', '.join(missing)}")
        elif self.title is None:
            raise ValueError("title is required when updating a key")
        return self

    def to_create(self) -> ApiKeyCreate:
        return ApiKeyCreate(title=self.title, type=self.type, created_by=self.created_by)


class RevokeApiKey(BaseModel):
    """Revocation request.

    revoke_in defers the revocation by that many seconds; the key stays
    valid until then.
    """

    revoked_by: Optional[str] = None
    revoke_in: Optional[int] = Field(
        None, ge=0, le=MAX_REVOKE_IN, description="Seconds until the revocation takes effect"
    )


class RevokeApiKeyInput(RevokeApiKey):
    """Revocation request resolved to a concrete key."""

    id: Optional[str] = None


class ApiKey(BaseModel):
    """Database model for API key (internal use)."""

    id: str
    token: str
    salt: str
    redacted: str
    title: str
    type: ApiKeyType
    created_by: str
    revoked_by: Optional[str] = None
    revoked_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ApiKeyResponse(BaseModel):
    """Response view of an API key. Never carries the salt."""

    id: str
    token: str = Field(..., description="Raw token on create, empty for secret keys otherwise")
    redacted: str
    title: str
    type: ApiKeyType
    created_by: str
    revoked_by: Optional[str] = None
    revoked_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: ApiKey, raw_token: Optional[str] = None) -> "ApiKeyResponse":
        """
        Build the view of a stored key.

        Args:
            record: Stored key
            raw_token: One-time raw token, only passed right after creation

        Returns:
            ApiKeyResponse with the secret material scrubbed
        """
        if raw_token is not None:
            token = raw_token
        elif record.type == ApiKeyType.SECRET:
            token = ""
        else:
            token = record.token

        return cls(
            id=record.id,
            token=token,
            redacted=record.redacted,
            title=record.title,
            type=record.type,
            created_by=record.created_by,
            revoked_by=record.revoked_by,
            revoked_at=record.revoked_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class FindConfig(BaseModel):
    """Listing options: pagination and ordering."""

    skip: int = Field(0, ge=0)
    take: Optional[int] = Field(None, ge=0)
    order: Optional[dict[str, Literal["ASC", "DESC"]]] = None
