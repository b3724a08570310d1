"""Google Drive permission synchronization."""

from .permissions import (
    DRIVE_FILES_URL,
    DrivePermission,
    DrivePermissionClient,
    PermissionStatus,
)
from .sync import LedgerGrantResult, PermissionSynchronizer

__all__ = [
    'DRIVE_FILES_URL',
    'DrivePermission',
    'DrivePermissionClient',
    'LedgerGrantResult',
    'PermissionStatus',
    'PermissionSynchronizer',
]
