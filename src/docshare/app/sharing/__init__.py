"""Per-recipient document sharing: model, errors and services."""

from .errors import (
    ShareAuthError,
    ShareError,
    ShareExpiredError,
    ShareForbiddenError,
    ShareNotFoundError,
    ShareValidationError,
)
from .model import (
    AuditEntry,
    DocumentRecord,
    ProviderCredential,
    ShareGrant,
    ShareStatus,
    generate_share_token,
    hash_token,
)

__all__ = [
    'AuditEntry',
    'DocumentRecord',
    'ProviderCredential',
    'ShareAuthError',
    'ShareError',
    'ShareExpiredError',
    'ShareForbiddenError',
    'ShareGrant',
    'ShareNotFoundError',
    'ShareStatus',
    'ShareValidationError',
    'generate_share_token',
    'hash_token',
]
