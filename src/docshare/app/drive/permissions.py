"""Async Google Drive v3 permission client.

Provides list, grant, check, revoke and view-link operations for a single
Drive file. The client never raises for provider-side failures: each
operation returns the conservative value the sharing flows rely on.

  - list failure -> empty list (never assume broad access)
  - grant failure -> None (sharing degraded, caller continues)
  - check failure -> exists=False (fail closed)
  - revoke of an already-missing permission -> success
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..db.supabase_client import get_shared_async_client

logger = logging.getLogger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"

# Roles that already let anyone holding the link open the file.
_LINK_READABLE_ROLES = frozenset({"reader", "writer"})


@dataclass(frozen=True, slots=True)
class DrivePermission:
    id: str
    type: str
    role: str
    email: str | None = None


@dataclass(frozen=True, slots=True)
class PermissionStatus:
    """Result of a single-permission lookup.

    ``confirmed_absent`` is only set when Drive answered 404; any other
    failure reports ``exists=False`` without claiming the permission is gone.
    """

    exists: bool
    role: str | None = None
    confirmed_absent: bool = False


class DrivePermissionClient:
    """Drive permission CRUD authenticated with a caller-supplied access token."""

    def __init__(
        self,
        *,
        base_url: str = DRIVE_FILES_URL,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = http_client or get_shared_async_client()
        self._timeout = float(timeout_seconds)

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str,
        *,
        params: dict[str, str] | None = None,
        json: Any | None = None,
    ) -> httpx.Response:
        return await self._client.request(
            method,
            f"{self._base_url}/{path}",
            params=params,
            json=json,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=self._timeout,
        )

    async def list_permissions(
        self, access_token: str, file_id: str,
    ) -> list[DrivePermission]:
        try:
            resp = await self._request(
                "GET",
                f"{file_id}/permissions",
                access_token,
                params={"fields": "permissions(id,type,role,emailAddress)"},
            )
            if resp.status_code >= 400:
                logger.warning(
                    "Drive list permissions failed file=%s status=%d",
                    file_id,
                    resp.status_code,
                )
                return []
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Drive list permissions error file=%s: %s", file_id, exc)
            return []

        result: list[DrivePermission] = []
        for item in (payload.get("permissions") or []) if isinstance(payload, dict) else []:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            result.append(
                DrivePermission(
                    id=str(item["id"]),
                    type=str(item.get("type", "")),
                    role=str(item.get("role", "")),
                    email=item.get("emailAddress"),
                )
            )
        return result

    async def grant_anyone_reader(
        self, access_token: str, file_id: str,
    ) -> str | None:
        """Ensure an "anyone with the link" permission exists; return its id.

        An existing anyone/reader-or-writer permission is reused, so repeated
        calls issue a single create.
        """
        for perm in await self.list_permissions(access_token, file_id):
            if perm.type == "anyone" and perm.role in _LINK_READABLE_ROLES:
                logger.info(
                    "Drive file=%s already has anyone permission=%s", file_id, perm.id,
                )
                return perm.id

        try:
            resp = await self._request(
                "POST",
                f"{file_id}/permissions",
                access_token,
                json={"type": "anyone", "role": "reader"},
            )
            if resp.status_code >= 400:
                logger.warning(
                    "Drive grant failed file=%s status=%d", file_id, resp.status_code,
                )
                return None
            permission_id = resp.json().get("id")
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("Drive grant error file=%s: %s", file_id, exc)
            return None

        if not permission_id:
            return None
        logger.info("Drive granted anyone reader file=%s permission=%s", file_id, permission_id)
        return str(permission_id)

    async def check_permission(
        self, access_token: str, file_id: str, permission_id: str,
    ) -> PermissionStatus:
        try:
            resp = await self._request(
                "GET",
                f"{file_id}/permissions/{permission_id}",
                access_token,
                params={"fields": "id,role,type"},
            )
        except httpx.HTTPError as exc:
            logger.warning("Drive permission check error file=%s: %s", file_id, exc)
            return PermissionStatus(exists=False)

        if resp.status_code == 404:
            return PermissionStatus(exists=False, confirmed_absent=True)
        if resp.status_code >= 400:
            logger.warning(
                "Drive permission check failed file=%s status=%d",
                file_id,
                resp.status_code,
            )
            return PermissionStatus(exists=False)

        try:
            payload = resp.json()
        except ValueError:
            return PermissionStatus(exists=False)
        if not isinstance(payload, dict) or str(payload.get("id", "")) != permission_id:
            return PermissionStatus(exists=False)
        return PermissionStatus(exists=True, role=payload.get("role"))

    async def revoke_permission(
        self, access_token: str, file_id: str, permission_id: str,
    ) -> bool:
        try:
            resp = await self._request(
                "DELETE", f"{file_id}/permissions/{permission_id}", access_token,
            )
        except httpx.HTTPError as exc:
            logger.warning("Drive revoke error file=%s: %s", file_id, exc)
            return False

        if resp.status_code < 300:
            logger.info("Drive removed permission=%s file=%s", permission_id, file_id)
            return True
        if resp.status_code == 404:
            logger.info("Drive permission=%s already gone file=%s", permission_id, file_id)
            return True
        logger.warning(
            "Drive revoke failed file=%s permission=%s status=%d",
            file_id,
            permission_id,
            resp.status_code,
        )
        return False

    async def get_web_view_link(
        self, access_token: str, file_id: str,
    ) -> str | None:
        try:
            resp = await self._request(
                "GET",
                file_id,
                access_token,
                params={"fields": "webViewLink,webContentLink,name"},
            )
            if resp.status_code >= 400:
                logger.warning(
                    "Drive file lookup failed file=%s status=%d", file_id, resp.status_code,
                )
                return None
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Drive file lookup error file=%s: %s", file_id, exc)
            return None

        if not isinstance(payload, dict):
            return None
        return payload.get("webViewLink") or payload.get("webContentLink") or None
