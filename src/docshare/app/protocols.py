"""Repository and provider protocol interfaces for dependency injection.

These protocols define the contracts that concrete implementations
(InMemory for local dev and tests, Supabase/Google/Resend otherwise) must
satisfy. The app factory accepts any implementation matching them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence, runtime_checkable

from .notifications.email import EmailResult
from .sharing.model import AuditEntry, DocumentRecord, ShareGrant, ShareStatus
from .storage.credentials import CredentialStore, TokenRefresher
from .drive.sync import DrivePermissions

__all__ = [
    'AuditLogRepository',
    'CredentialStore',
    'DocumentRepository',
    'DrivePermissions',
    'EmailSender',
    'ObjectStore',
    'OtpProvider',
    'ShareGrantRepository',
    'TokenRefresher',
]


@runtime_checkable
class ShareGrantRepository(Protocol):
    """ShareGrant persistence. Grants are never deleted, only status-flipped."""

    async def create(self, grant: ShareGrant) -> ShareGrant: ...
    async def get(self, share_id: str) -> ShareGrant | None: ...
    async def get_by_token_hash(self, token_hash: str) -> ShareGrant | None: ...
    async def list_for_owner(self, owner_id: str) -> list[ShareGrant]: ...
    async def set_status(self, share_id: str, status: ShareStatus) -> None: ...
    async def update_ledger(self, share_id: str, ledger: dict[str, str]) -> None: ...
    async def mark_revoked(self, share_id: str) -> None: ...


@runtime_checkable
class AuditLogRepository(Protocol):
    """Append-only share audit log."""

    async def append(self, entry: AuditEntry) -> AuditEntry: ...
    async def mark_otp_verified(self, share_id: str, verified_at: datetime) -> None: ...


@runtime_checkable
class DocumentRepository(Protocol):
    """Read access to vault documents."""

    async def get_many(self, document_ids: Sequence[str]) -> list[DocumentRecord]: ...


@runtime_checkable
class EmailSender(Protocol):
    async def send_share_notification(
        self,
        *,
        to: str,
        share_link: str,
        document_count: int,
        expires_at: datetime,
    ) -> EmailResult: ...


@runtime_checkable
class OtpProvider(Protocol):
    async def send_otp(self, email: str) -> None: ...
    async def verify_otp(self, email: str, code: str) -> bool: ...


@runtime_checkable
class ObjectStore(Protocol):
    async def create_signed_url(self, raw_path: str, ttl_seconds: int = 3600) -> str: ...
