"""Supabase persistence for the sharing service."""

from .document_repo import SupabaseCredentialStore, SupabaseDocumentRepository
from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)
from .share_repo import SupabaseAuditLogRepository, SupabaseShareGrantRepository
from .supabase_client import SupabaseClient

__all__ = [
    "SupabaseAuditLogRepository",
    "SupabaseAuthError",
    "SupabaseClient",
    "SupabaseConflictError",
    "SupabaseCredentialStore",
    "SupabaseDocumentRepository",
    "SupabaseError",
    "SupabaseNotFoundError",
    "SupabaseShareGrantRepository",
]
