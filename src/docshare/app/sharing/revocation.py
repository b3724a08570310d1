"""Owner-initiated share revocation and listing.

Revocation is local-first: Drive permission cleanup is best-effort, and the
status flip to REVOKED is what ends access. Access checks re-verify Drive
liveness independently, so a permission left behind on Drive cannot be used
through this grant.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .errors import ShareNotFoundError, ShareValidationError
from .model import ShareGrant, utcnow

logger = logging.getLogger(__name__)

SHARE_NOT_FOUND_MESSAGE = 'Share not found'


@dataclass(frozen=True, slots=True)
class RevocationResult:
    share_id: str
    already_revoked: bool = False
    cleanup_failed_file_ids: list[str] = field(default_factory=list)


def share_listing_entry(grant: ShareGrant, now: datetime | None = None) -> dict[str, Any]:
    """Owner-facing summary of one grant. Never includes the token hash."""
    return {
        'shareId': grant.id,
        'recipientEmail': grant.recipient_email,
        'recipientType': grant.recipient_type,
        'documentIds': list(grant.document_ids),
        'allowDownload': grant.allow_download,
        'expiresAt': grant.expires_at.isoformat(),
        'status': grant.status.value,
        'shareType': grant.share_type,
        'isExpired': grant.is_expired(now),
        'drivePermissionCount': len(grant.permission_ledger),
        'createdAt': grant.created_at.isoformat(),
    }


class ShareRevocationService:
    def __init__(self, *, shares, synchronizer) -> None:
        self._shares = shares
        self._sync = synchronizer

    async def revoke(self, owner_id: str, share_id: str | None) -> RevocationResult:
        """Revoke ``share_id`` on behalf of ``owner_id``.

        Raises:
            ShareValidationError: No share id supplied.
            ShareNotFoundError: Unknown share or owned by someone else.
        """
        if not share_id or not str(share_id).strip():
            raise ShareValidationError('Share ID is required')

        grant = await self._shares.get(str(share_id).strip())
        if grant is None or grant.owner_id != owner_id:
            # Same answer for "missing" and "not yours".
            raise ShareNotFoundError(SHARE_NOT_FOUND_MESSAGE)
        if grant.is_revoked:
            return RevocationResult(share_id=grant.id, already_revoked=True)

        failed = await self._sync.revoke_ledger(owner_id, grant.permission_ledger)
        await self._shares.mark_revoked(grant.id)
        logger.info(
            'Share %s revoked by owner=%s drive_cleanup_failures=%d',
            grant.id,
            owner_id,
            len(failed),
        )
        return RevocationResult(share_id=grant.id, cleanup_failed_file_ids=failed)

    async def list_shares(self, owner_id: str) -> list[dict[str, Any]]:
        now = utcnow()
        grants = await self._shares.list_for_owner(owner_id)
        return [share_listing_entry(g, now) for g in grants]
