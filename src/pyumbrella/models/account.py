"""Directory account models."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PendingCode(BaseModel):
    """A one-time code awaiting validation.

    Parameters
    ----------
    code : str
        Zero-padded numeric code as sent to the user.
    expires_at : datetime
        UTC instant after which the code is rejected.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def is_expired(self, now: datetime) -> bool:
        """Strict comparison: a code is still valid at exactly ``expires_at``."""
        return now > self.expires_at


class AccountProfile(BaseModel):
    """Public view of an account. Never carries the credential."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    alternate_contact: str | None = None


class Account(BaseModel):
    """A registered or pending user record keyed by ``identifier``."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    identifier: str = Field(..., description="Primary email address; unique and case-sensitive")
    credential_hash: str | None = Field(default=None, repr=False)
    alternate_contact: str | None = None
    pending_code: PendingCode | None = Field(default=None, repr=False)

    @field_validator("identifier")
    @classmethod
    def _non_empty_identifier(cls, value: str) -> str:
        if not value:
            raise ValueError("identifier must be non-empty")
        return value

    @property
    def is_registered(self) -> bool:
        return self.credential_hash is not None

    def profile(self) -> AccountProfile:
        return AccountProfile(identifier=self.identifier, alternate_contact=self.alternate_contact)
