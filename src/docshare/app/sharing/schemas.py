"""Request bodies for the share endpoints.

Wire names are camelCase. Bodies are validated explicitly by the routes so
a malformed body is reported as 400 ``{error}`` rather than FastAPI's 422.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .model import normalize_recipient_type


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class RecipientIn(_WireModel):
    email: str = Field(..., min_length=3, max_length=320)
    type: str = 'other'
    metadata: dict[str, Any] | None = None

    @field_validator('email')
    @classmethod
    def _strip_email(cls, value: str) -> str:
        value = value.strip()
        if '@' not in value:
            raise ValueError('invalid email address')
        return value

    @field_validator('type', mode='before')
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        return normalize_recipient_type(value)


class IssueSharesRequest(_WireModel):
    document_ids: list[str] = Field(default_factory=list, alias='documentIds')
    allow_download: bool = Field(default=False, alias='allowDownload')
    expires_at: datetime | None = Field(default=None, alias='expiresAt')
    recipients: list[RecipientIn] = Field(default_factory=list)

    # Single-recipient shorthand accepted from older clients.
    recipient_email: str | None = Field(default=None, alias='recipientEmail')
    recipient_type: str | None = Field(default=None, alias='recipientType')
    recipient_metadata: dict[str, Any] | None = Field(default=None, alias='recipientMetadata')

    def normalized_recipients(self) -> list[RecipientIn]:
        if self.recipients:
            return list(self.recipients)
        if self.recipient_email:
            return [
                RecipientIn(
                    email=self.recipient_email,
                    type=self.recipient_type or 'other',
                    metadata=self.recipient_metadata or {},
                )
            ]
        return []


class ShareAccessRequest(_WireModel):
    action: str = ''
    token: str | None = None
    email: str | None = None
    otp: str | None = None
    access_token: str | None = Field(default=None, alias='accessToken')
    document_id: str | None = Field(default=None, alias='documentId')

    @field_validator('otp', mode='before')
    @classmethod
    def _otp_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class RevokeShareRequest(_WireModel):
    share_id: str | None = Field(default=None, alias='shareId')
