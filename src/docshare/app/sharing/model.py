"""Share-grant domain model with token-hash persistence.

Implements the data model for per-recipient document sharing:

  - One ShareGrant per recipient over a fixed set of documents.
  - Only token_hash is persisted; the plaintext token travels in the share
    link and is never stored.
  - Status moves PENDING -> SUCCESS/FAILED at issuance and any
    non-REVOKED status -> REVOKED on explicit revocation.
  - The permission ledger (Drive file id -> Drive permission id) is an
    advisory cache. Access checks always re-query the provider.

Security invariant:
  Tokens carry 256 bits of randomness from ``secrets``. Validation hashes
  the presented token and looks the hash up.

This module provides:
  1. ``ShareGrant`` / ``AuditEntry`` / ``DocumentRecord`` /
     ``ProviderCredential`` domain objects with row (de)serialization.
  2. ``ShareStatus`` lifecycle enum.
  3. ``generate_share_token`` / ``hash_token`` token helpers.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# ── Constants ─────────────────────────────────────────────────────────

TOKEN_BYTES = 32  # 256-bit tokens.

RECIPIENT_TYPES = frozenset({'advisor', 'accountant', 'other'})
DEFAULT_RECIPIENT_TYPE = 'other'


class ShareStatus(str, Enum):
    PENDING = 'PENDING'
    SUCCESS = 'SUCCESS'
    FAILED = 'FAILED'
    REVOKED = 'REVOKED'


# Statuses whose token still opens the access flow. A FAILED grant only
# means the notification email was not delivered.
ACCESSIBLE_STATUSES = frozenset({
    ShareStatus.PENDING,
    ShareStatus.SUCCESS,
    ShareStatus.FAILED,
})


# ── Token operations ──────────────────────────────────────────────────


def generate_share_token() -> str:
    """Generate a cryptographically random URL-safe share token.

    The plaintext is placed in the share link exactly once; only its hash
    is persisted.
    """
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(plaintext: str) -> str:
    """SHA-256 hex digest stored in ``document_shares.token_hash``."""
    return hashlib.sha256(plaintext.encode('utf-8')).hexdigest()


def normalize_email(email: str | None) -> str:
    return (email or '').strip().lower()


def emails_match(a: str | None, b: str | None) -> bool:
    left, right = normalize_email(a), normalize_email(b)
    return bool(left) and secrets.compare_digest(
        left.encode('utf-8'), right.encode('utf-8'),
    )


def normalize_recipient_type(value: Any) -> str:
    kind = str(value or DEFAULT_RECIPIENT_TYPE).strip().lower()
    return kind or DEFAULT_RECIPIENT_TYPE


# ── Timestamp helpers ─────────────────────────────────────────────────


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse a PostgREST/ISO-8601 timestamp into an aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _optional_timestamp(value: Any) -> datetime | None:
    return parse_timestamp(value) if value else None


# ── Domain objects ────────────────────────────────────────────────────


@dataclass
class ShareGrant:
    """One recipient's access to a fixed set of documents.

    Attributes:
        id: Row identity (assigned by the repository).
        owner_id: User who owns every shared document.
        document_ids: Documents covered by the grant; fixed at creation.
        recipient_email: Address the link was issued to.
        recipient_type: advisor | accountant | other.
        recipient_metadata: Free-form recipient details from the UI.
        allow_download: Whether the recipient UI may offer downloads.
        expires_at: Hard expiry checked on every access.
        token_hash: SHA-256 of the bearer token.
        status: Lifecycle status.
        permission_ledger: Drive file id -> Drive permission id.
        created_at: Creation timestamp.
    """

    id: str
    owner_id: str
    document_ids: tuple[str, ...]
    recipient_email: str
    recipient_type: str
    expires_at: datetime
    token_hash: str
    allow_download: bool = False
    recipient_metadata: dict[str, Any] = field(default_factory=dict)
    status: ShareStatus = ShareStatus.PENDING
    permission_ledger: dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def share_type(self) -> str:
        return 'single' if len(self.document_ids) == 1 else 'multiple'

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at < (now or utcnow())

    @property
    def is_revoked(self) -> bool:
        return self.status is ShareStatus.REVOKED

    @property
    def is_accessible(self) -> bool:
        return self.status in ACCESSIBLE_STATUSES

    def to_row(self) -> dict[str, Any]:
        row = {
            'user_id': self.owner_id,
            'document_ids': list(self.document_ids),
            'recipient_email': self.recipient_email,
            'recipient_type': self.recipient_type,
            'recipient_metadata': dict(self.recipient_metadata),
            'allow_download': self.allow_download,
            'expires_at': self.expires_at.isoformat(),
            'token_hash': self.token_hash,
            'share_type': self.share_type,
            'status': self.status.value,
            'drive_permission_ids': dict(self.permission_ledger),
        }
        if self.id:
            row['id'] = self.id
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ShareGrant:
        return cls(
            id=str(row['id']),
            owner_id=str(row['user_id']),
            document_ids=tuple(str(d) for d in row.get('document_ids') or ()),
            recipient_email=row['recipient_email'],
            recipient_type=row.get('recipient_type') or DEFAULT_RECIPIENT_TYPE,
            recipient_metadata=dict(row.get('recipient_metadata') or {}),
            allow_download=bool(row.get('allow_download')),
            expires_at=parse_timestamp(row['expires_at']),
            token_hash=row.get('token_hash', ''),
            status=ShareStatus(row.get('status') or ShareStatus.PENDING.value),
            permission_ledger={
                str(k): str(v)
                for k, v in (row.get('drive_permission_ids') or {}).items()
            },
            created_at=_optional_timestamp(row.get('created_at')) or utcnow(),
        )


@dataclass
class AuditEntry:
    """Append-only record of one issuance, stamped once at OTP verification."""

    share_id: str
    owner_id: str
    recipient_email: str
    recipient_type: str
    share_type: str
    email_status: str
    access_expires_at: datetime
    recipient_metadata: dict[str, Any] = field(default_factory=dict)
    otp_verified_at: datetime | None = None
    id: str = ''

    @classmethod
    def for_grant(cls, grant: ShareGrant) -> AuditEntry:
        return cls(
            share_id=grant.id,
            owner_id=grant.owner_id,
            recipient_email=grant.recipient_email,
            recipient_type=grant.recipient_type,
            recipient_metadata=dict(grant.recipient_metadata),
            share_type=grant.share_type,
            email_status=grant.status.value,
            access_expires_at=grant.expires_at,
        )

    def to_row(self) -> dict[str, Any]:
        return {
            'share_id': self.share_id,
            'user_id': self.owner_id,
            'recipient_email': self.recipient_email,
            'recipient_type': self.recipient_type,
            'recipient_metadata': dict(self.recipient_metadata),
            'share_type': self.share_type,
            'email_status': self.email_status,
            'access_expires_at': self.access_expires_at.isoformat(),
            'otp_verified_at': (
                self.otp_verified_at.isoformat() if self.otp_verified_at else None
            ),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> AuditEntry:
        return cls(
            id=str(row.get('id', '')),
            share_id=str(row['share_id']),
            owner_id=str(row.get('user_id', '')),
            recipient_email=row['recipient_email'],
            recipient_type=row.get('recipient_type') or DEFAULT_RECIPIENT_TYPE,
            recipient_metadata=dict(row.get('recipient_metadata') or {}),
            share_type=row.get('share_type', ''),
            email_status=row.get('email_status', ''),
            access_expires_at=parse_timestamp(row['access_expires_at']),
            otp_verified_at=_optional_timestamp(row.get('otp_verified_at')),
        )


@dataclass(frozen=True, slots=True)
class DocumentRecord:
    """Read-only view of a vault document as the sharing core needs it."""

    id: str
    owner_id: str
    file_path: str | None
    share_enabled: bool
    file_name: str = ''
    file_type: str | None = None
    main_category: str | None = None
    sub_category: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> DocumentRecord:
        return cls(
            id=str(row['id']),
            owner_id=str(row.get('user_id', '')),
            file_path=row.get('file_path'),
            share_enabled=bool(row.get('share_enabled')),
            file_name=row.get('file_name') or '',
            file_type=row.get('file_type'),
            main_category=row.get('main_category'),
            sub_category=row.get('sub_category'),
        )


@dataclass(frozen=True, slots=True)
class ProviderCredential:
    """A user's stored Google OAuth token pair."""

    user_id: str
    access_token: str
    refresh_token: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ProviderCredential:
        expiry = row.get('token_expiry')
        return cls(
            user_id=str(row['user_id']),
            access_token=row.get('access_token') or '',
            refresh_token=row.get('refresh_token') or '',
            # A missing expiry forces a refresh on first use.
            expires_at=(
                parse_timestamp(expiry)
                if expiry
                else datetime.min.replace(tzinfo=timezone.utc)
            ),
        )
