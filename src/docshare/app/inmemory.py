"""In-memory repository and provider implementations.

Used when ENVIRONMENT=local and by the test-suite. They satisfy the
protocol interfaces but keep everything in dicts (no persistence across
restarts). The email, OTP and storage fakes record what they were asked to
do so tests can assert on it.
"""

from __future__ import annotations

import copy
import secrets
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Sequence

from .drive.permissions import PermissionStatus
from .notifications.email import EmailResult
from .sharing.model import (
    AuditEntry,
    DocumentRecord,
    ProviderCredential,
    ShareGrant,
    ShareStatus,
    normalize_email,
)
from .storage.credentials import RefreshedToken


class InMemoryShareGrantRepository:
    def __init__(self) -> None:
        self._grants: dict[str, ShareGrant] = {}
        self.fail_create_for: set[str] = set()

    async def create(self, grant: ShareGrant) -> ShareGrant:
        if normalize_email(grant.recipient_email) in self.fail_create_for:
            raise RuntimeError(f'insert failed for {grant.recipient_email}')
        stored = replace(
            grant,
            id=grant.id or str(uuid.uuid4()),
            permission_ledger=dict(grant.permission_ledger),
            recipient_metadata=dict(grant.recipient_metadata),
        )
        self._grants[stored.id] = stored
        return copy.deepcopy(stored)

    async def get(self, share_id: str) -> ShareGrant | None:
        grant = self._grants.get(share_id)
        return copy.deepcopy(grant) if grant else None

    async def get_by_token_hash(self, token_hash: str) -> ShareGrant | None:
        for grant in self._grants.values():
            if secrets.compare_digest(grant.token_hash, token_hash):
                return copy.deepcopy(grant)
        return None

    async def list_for_owner(self, owner_id: str) -> list[ShareGrant]:
        grants = [g for g in self._grants.values() if g.owner_id == owner_id]
        return [copy.deepcopy(g) for g in sorted(grants, key=lambda g: g.created_at, reverse=True)]

    async def set_status(self, share_id: str, status: ShareStatus) -> None:
        if share_id in self._grants:
            self._grants[share_id].status = status

    async def update_ledger(self, share_id: str, ledger: dict[str, str]) -> None:
        if share_id in self._grants:
            self._grants[share_id].permission_ledger = dict(ledger)

    async def mark_revoked(self, share_id: str) -> None:
        if share_id in self._grants:
            self._grants[share_id].status = ShareStatus.REVOKED
            self._grants[share_id].permission_ledger = {}

    def all(self) -> list[ShareGrant]:
        return list(self._grants.values())


class InMemoryAuditLogRepository:
    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    async def append(self, entry: AuditEntry) -> AuditEntry:
        stored = replace(entry, id=entry.id or str(uuid.uuid4()))
        self.entries.append(stored)
        return stored

    async def mark_otp_verified(self, share_id: str, verified_at: datetime) -> None:
        for entry in self.entries:
            if entry.share_id == share_id and entry.otp_verified_at is None:
                entry.otp_verified_at = verified_at

    def for_share(self, share_id: str) -> list[AuditEntry]:
        return [e for e in self.entries if e.share_id == share_id]


class InMemoryDocumentRepository:
    def __init__(self, documents: Sequence[DocumentRecord] = ()) -> None:
        self._docs: dict[str, DocumentRecord] = {d.id: d for d in documents}

    def put(self, document: DocumentRecord) -> None:
        self._docs[document.id] = document

    def set_share_enabled(self, document_id: str, enabled: bool) -> None:
        self._docs[document_id] = replace(self._docs[document_id], share_enabled=enabled)

    async def get_many(self, document_ids: Sequence[str]) -> list[DocumentRecord]:
        return [self._docs[d] for d in dict.fromkeys(document_ids) if d in self._docs]


class InMemoryCredentialStore:
    def __init__(self) -> None:
        self._creds: dict[str, ProviderCredential] = {}

    def put(self, credential: ProviderCredential) -> None:
        self._creds[credential.user_id] = credential

    async def get_credential(self, user_id: str) -> ProviderCredential | None:
        return self._creds.get(user_id)

    async def save_access_token(
        self, user_id: str, access_token: str, expires_at: datetime,
    ) -> None:
        current = self._creds.get(user_id)
        if current is None:
            return
        self._creds[user_id] = replace(
            current, access_token=access_token, expires_at=expires_at,
        )


@dataclass
class SentEmail:
    to: str
    share_link: str
    document_count: int
    expires_at: datetime


class InMemoryEmailSender:
    """Accepts every message except those addressed to ``failing``."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = {normalize_email(e) for e in failing or set()}
        self.sent: list[SentEmail] = []

    async def send_share_notification(
        self,
        *,
        to: str,
        share_link: str,
        document_count: int,
        expires_at: datetime,
    ) -> EmailResult:
        if normalize_email(to) in self.failing:
            return EmailResult(accepted=False, error='rejected')
        self.sent.append(SentEmail(to, share_link, document_count, expires_at))
        return EmailResult(accepted=True, message_id=f'msg_{uuid.uuid4().hex[:8]}')


class InMemoryOtpProvider:
    """Issues six-digit codes and remembers the latest one per email."""

    def __init__(self) -> None:
        self.codes: dict[str, str] = {}
        self.fail_send = False

    async def send_otp(self, email: str) -> None:
        if self.fail_send:
            raise RuntimeError('otp delivery failed')
        self.codes[normalize_email(email)] = f'{secrets.randbelow(10**6):06d}'

    async def verify_otp(self, email: str, code: str) -> bool:
        expected = self.codes.get(normalize_email(email))
        if expected is None or not secrets.compare_digest(expected, str(code)):
            return False
        # One-time: a verified code cannot be replayed.
        del self.codes[normalize_email(email)]
        return True


class InMemoryObjectStore:
    """Mints a distinct fake signed URL on every call."""

    def __init__(self, base_url: str = 'http://localhost:54321/storage/v1') -> None:
        self._base_url = base_url.rstrip('/')
        self.issued: list[tuple[str, int]] = []

    async def create_signed_url(self, raw_path: str, ttl_seconds: int = 3600) -> str:
        self.issued.append((raw_path, ttl_seconds))
        token = secrets.token_urlsafe(16)
        return f'{self._base_url}/object/sign/{raw_path.lstrip("/")}?token={token}&ttl={ttl_seconds}'


class InMemoryTokenRefresher:
    """Refresher that never reaches Google; refreshes always fail."""

    async def refresh(self, refresh_token: str) -> RefreshedToken:
        raise ValueError('token refresh unavailable in local mode')


class InMemoryDrivePermissions:
    """Drive stand-in: files and their anyone-permissions kept in dicts."""

    def __init__(self) -> None:
        self.permissions: dict[str, dict[str, str]] = {}
        self.create_calls = 0

    async def grant_anyone_reader(self, access_token: str, file_id: str) -> str | None:
        perms = self.permissions.setdefault(file_id, {})
        for pid, role in perms.items():
            if role in ('reader', 'writer'):
                return pid
        self.create_calls += 1
        pid = f'perm_{uuid.uuid4().hex[:8]}'
        perms[pid] = 'reader'
        return pid

    async def check_permission(
        self, access_token: str, file_id: str, permission_id: str,
    ) -> PermissionStatus:
        role = self.permissions.get(file_id, {}).get(permission_id)
        if role is None:
            return PermissionStatus(exists=False, confirmed_absent=True)
        return PermissionStatus(exists=True, role=role)

    async def revoke_permission(self, access_token: str, file_id: str, permission_id: str) -> bool:
        self.permissions.get(file_id, {}).pop(permission_id, None)
        return True

    async def get_web_view_link(self, access_token: str, file_id: str) -> str | None:
        return f'https://drive.google.com/file/d/{file_id}/view'
