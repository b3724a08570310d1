"""Supabase-backed document and Google credential repositories."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from ..sharing.model import DocumentRecord, ProviderCredential
from .supabase_client import SupabaseClient

_DOCUMENT_COLUMNS = (
    "id,user_id,file_name,file_path,file_type,main_category,sub_category,share_enabled"
)


class SupabaseDocumentRepository:
    """DocumentRepository backed by ``documents``."""

    TABLE = "documents"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_many(self, document_ids: Sequence[str]) -> list[DocumentRecord]:
        ids = list(dict.fromkeys(document_ids))
        if not ids:
            return []
        rows = await self._client.select(
            self.TABLE,
            filters={"id": ("in", ids)},
            columns=_DOCUMENT_COLUMNS,
        )
        return [DocumentRecord.from_row(r) for r in rows]


class SupabaseCredentialStore:
    """CredentialStore backed by ``google_drive_tokens`` (one row per user)."""

    TABLE = "google_drive_tokens"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_credential(self, user_id: str) -> ProviderCredential | None:
        rows = await self._client.select(
            self.TABLE,
            filters={"user_id": ("eq", user_id)},
            columns="user_id,access_token,refresh_token,token_expiry",
            limit=1,
        )
        return ProviderCredential.from_row(rows[0]) if rows else None

    async def save_access_token(
        self, user_id: str, access_token: str, expires_at: datetime,
    ) -> None:
        await self._client.update(
            self.TABLE,
            filters={"user_id": ("eq", user_id)},
            data={"access_token": access_token, "token_expiry": expires_at.isoformat()},
        )
