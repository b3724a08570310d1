"""Permission ledger synchronization against live Drive state.

The ledger stored on a ShareGrant (Drive file id -> permission id) is an
advisory cache. Drive is the source of truth: every access re-checks the
ledgered permission and drops entries Drive reports as gone (404), which
covers owners removing link sharing from Drive's own UI.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Protocol

from ..storage.credentials import (
    CredentialError,
    CredentialStore,
    TokenRefresher,
    access_token_for_user,
)
from .permissions import PermissionStatus

logger = logging.getLogger(__name__)


class DrivePermissions(Protocol):
    async def grant_anyone_reader(self, access_token: str, file_id: str) -> str | None: ...

    async def check_permission(
        self, access_token: str, file_id: str, permission_id: str,
    ) -> PermissionStatus: ...

    async def revoke_permission(
        self, access_token: str, file_id: str, permission_id: str,
    ) -> bool: ...

    async def get_web_view_link(self, access_token: str, file_id: str) -> str | None: ...


class LedgerWriter(Protocol):
    async def update_ledger(self, share_id: str, ledger: dict[str, str]) -> None: ...


@dataclass
class LedgerGrantResult:
    """Outcome of granting link access for a set of Drive files."""

    ledger: dict[str, str] = field(default_factory=dict)
    failed_file_ids: list[str] = field(default_factory=list)
    warning: str | None = None


class PermissionSynchronizer:
    """Grants, verifies and removes Drive permissions on behalf of an owner."""

    def __init__(
        self,
        drive: DrivePermissions,
        *,
        credentials: CredentialStore,
        refresher: TokenRefresher,
    ) -> None:
        self._drive = drive
        self._credentials = credentials
        self._refresher = refresher

    @property
    def drive(self) -> DrivePermissions:
        return self._drive

    async def access_token(self, owner_id: str) -> str:
        """Valid Drive access token for ``owner_id``.

        Raises:
            CredentialError: Drive not connected or refresh failed.
        """
        return await access_token_for_user(
            owner_id, store=self._credentials, refresher=self._refresher,
        )

    async def grant_for_files(
        self, owner_id: str, file_ids: Iterable[str],
    ) -> LedgerGrantResult:
        """Grant anyone-with-link read access once per file.

        Never raises: a missing credential or a failed grant degrades to a
        warning and an incomplete ledger.
        """
        unique_ids = list(dict.fromkeys(file_ids))
        result = LedgerGrantResult()
        if not unique_ids:
            return result

        try:
            token = await self.access_token(owner_id)
        except CredentialError as exc:
            logger.warning("Skipping Drive grants for owner=%s: %s", owner_id, exc.reason)
            result.failed_file_ids = unique_ids
            result.warning = (
                'Google Drive is not connected; Drive documents were shared '
                'without direct link access. Reconnect Google Drive and share again.'
            )
            return result

        for file_id in unique_ids:
            permission_id = await self._drive.grant_anyone_reader(token, file_id)
            if permission_id:
                result.ledger[file_id] = permission_id
            else:
                result.failed_file_ids.append(file_id)

        if result.failed_file_ids:
            result.warning = (
                f'Could not enable link access for {len(result.failed_file_ids)} '
                'Google Drive document(s); recipients may not be able to open them.'
            )
        return result

    async def check_ledgered(
        self,
        access_token: str,
        ledger: Mapping[str, str],
        file_id: str,
    ) -> PermissionStatus:
        permission_id = ledger.get(file_id)
        if not permission_id:
            # Nothing was ever granted for this file.
            return PermissionStatus(exists=False)
        return await self._drive.check_permission(access_token, file_id, permission_id)

    async def reconcile(
        self,
        share_id: str,
        ledger: dict[str, str],
        file_ids: Iterable[str],
        *,
        access_token: str,
        writer: LedgerWriter,
    ) -> dict[str, PermissionStatus]:
        """Check each file's ledgered permission and drop confirmed-absent ones.

        ``ledger`` is updated in place and persisted only when it changed.
        """
        statuses: dict[str, PermissionStatus] = {}
        stale: list[str] = []
        for file_id in dict.fromkeys(file_ids):
            status = await self.check_ledgered(access_token, ledger, file_id)
            statuses[file_id] = status
            if status.confirmed_absent and file_id in ledger:
                stale.append(file_id)

        if stale:
            for file_id in stale:
                logger.warning(
                    "Drive permission gone for share=%s file=%s; removing ledger entry",
                    share_id,
                    file_id,
                )
                ledger.pop(file_id, None)
            await writer.update_ledger(share_id, dict(ledger))
        return statuses

    async def revoke_ledger(
        self, owner_id: str, ledger: Mapping[str, str],
    ) -> list[str]:
        """Remove every ledgered permission. Returns file ids that failed.

        Best-effort: credential problems and provider errors are logged, not
        raised.
        """
        if not ledger:
            return []
        try:
            token = await self.access_token(owner_id)
        except CredentialError as exc:
            logger.warning(
                "Cannot remove Drive permissions for owner=%s: %s", owner_id, exc.reason,
            )
            return list(ledger)

        failed: list[str] = []
        for file_id, permission_id in ledger.items():
            if not await self._drive.revoke_permission(token, file_id, permission_id):
                failed.append(file_id)
        if failed:
            logger.warning(
                "Drive permission cleanup incomplete for owner=%s files=%s", owner_id, failed,
            )
        return failed
