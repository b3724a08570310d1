"""Supabase-backed ShareGrant and audit-log repositories.

Persist share grants in ``document_shares`` and audit entries in
``share_audit_log`` via PostgREST.

Security invariants:
  - Plaintext share tokens are never stored; only ``token_hash``.
  - Grants are never deleted; revocation flips ``status`` to REVOKED and
    clears ``drive_permission_ids``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ..sharing.model import AuditEntry, ShareGrant, ShareStatus
from .errors import SupabaseError
from .supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


class SupabaseShareGrantRepository:
    """ShareGrantRepository backed by ``document_shares``."""

    TABLE = "document_shares"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def create(self, grant: ShareGrant) -> ShareGrant:
        rows = await self._client.insert(self.TABLE, grant.to_row())
        if not rows:
            raise RuntimeError("insert into document_shares returned no row")
        return ShareGrant.from_row(rows[0])

    async def _get_one(self, column: str, value: str) -> ShareGrant | None:
        rows = await self._client.select(
            self.TABLE, filters={column: ("eq", value)}, limit=1,
        )
        return ShareGrant.from_row(rows[0]) if rows else None

    async def get(self, share_id: str) -> ShareGrant | None:
        try:
            return await self._get_one("id", share_id)
        except SupabaseError as exc:
            # Malformed UUIDs are rejected by Postgres (22P02), not matched.
            if exc.status_code == 400:
                return None
            raise

    async def get_by_token_hash(self, token_hash: str) -> ShareGrant | None:
        return await self._get_one("token_hash", token_hash)

    async def list_for_owner(self, owner_id: str) -> list[ShareGrant]:
        rows = await self._client.select(
            self.TABLE,
            filters={"user_id": ("eq", owner_id)},
            order="created_at.desc",
        )
        return [ShareGrant.from_row(r) for r in rows]

    async def _patch(self, share_id: str, data: dict[str, Any]) -> None:
        rows = await self._client.update(
            self.TABLE, filters={"id": ("eq", share_id)}, data=data,
        )
        if not rows:
            logger.warning("document_shares update matched no row id=%s", share_id)

    async def set_status(self, share_id: str, status: ShareStatus) -> None:
        await self._patch(share_id, {"status": status.value})

    async def update_ledger(self, share_id: str, ledger: dict[str, str]) -> None:
        await self._patch(share_id, {"drive_permission_ids": dict(ledger)})

    async def mark_revoked(self, share_id: str) -> None:
        await self._patch(
            share_id,
            {"status": ShareStatus.REVOKED.value, "drive_permission_ids": {}},
        )


class SupabaseAuditLogRepository:
    """AuditLogRepository backed by ``share_audit_log``."""

    TABLE = "share_audit_log"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def append(self, entry: AuditEntry) -> AuditEntry:
        rows = await self._client.insert(self.TABLE, entry.to_row())
        return AuditEntry.from_row(rows[0]) if rows else entry

    async def mark_otp_verified(self, share_id: str, verified_at: datetime) -> None:
        # Only the first verification is recorded.
        await self._client.update(
            self.TABLE,
            filters={
                "share_id": ("eq", share_id),
                "otp_verified_at": ("is", None),
            },
            data={"otp_verified_at": verified_at.isoformat()},
        )
