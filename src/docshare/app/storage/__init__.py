"""Storage backend adapter: platform bucket vs. Google Drive."""

from .credentials import (
    CredentialError,
    GoogleTokenRefresher,
    RefreshedToken,
    access_token_for_user,
    get_valid_access_token,
)
from .locator import (
    DRIVE_SCHEME,
    ExternalLocator,
    InternalLocator,
    StorageLocator,
    resolve_locator,
)
from .object_store import SupabaseObjectStore

__all__ = [
    'CredentialError',
    'DRIVE_SCHEME',
    'ExternalLocator',
    'GoogleTokenRefresher',
    'InternalLocator',
    'RefreshedToken',
    'StorageLocator',
    'SupabaseObjectStore',
    'access_token_for_user',
    'get_valid_access_token',
    'resolve_locator',
]
