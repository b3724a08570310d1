"""Signed-URL issuance for the platform storage bucket.

Every call mints a new URL through Supabase Storage; nothing is cached, so
each view or download gets its own time-limited link.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from ..db.supabase_client import get_shared_async_client, raise_for_supabase_error

logger = logging.getLogger(__name__)

DEFAULT_SIGNED_URL_TTL = 3600


class SupabaseObjectStore:
    """Issues signed URLs via ``POST /storage/v1/object/sign/{bucket}/{path}``."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        bucket: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")
        if not bucket:
            raise ValueError("bucket is required")

        self._storage_url = f"{supabase_url.rstrip('/')}/storage/v1"
        self._service_role_key = service_role_key
        self._bucket = bucket
        self._timeout = float(timeout_seconds)
        self._client = http_client or get_shared_async_client()

    async def create_signed_url(
        self,
        raw_path: str,
        ttl_seconds: int = DEFAULT_SIGNED_URL_TTL,
    ) -> str:
        """Return a fresh signed URL for ``raw_path`` valid for ``ttl_seconds``.

        Raises:
            SupabaseError: Storage rejected the request.
        """
        object_path = quote(raw_path.lstrip("/"), safe="/")
        resp = await self._client.request(
            "POST",
            f"{self._storage_url}/object/sign/{self._bucket}/{object_path}",
            json={"expiresIn": int(ttl_seconds)},
            headers={
                "apikey": self._service_role_key,
                "Authorization": f"Bearer {self._service_role_key}",
            },
            timeout=self._timeout,
        )
        raise_for_supabase_error(resp)

        payload = resp.json()
        signed = payload.get("signedURL") or payload.get("signedUrl")
        if not signed:
            raise ValueError("storage response did not include a signed URL")
        if signed.startswith("http"):
            return signed
        return f"{self._storage_url}{signed}"
