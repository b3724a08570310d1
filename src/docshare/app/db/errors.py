"""Supabase client error hierarchy.

These errors stay small and dependency-free so repositories can raise them
without leaking httpx.Response objects (or the service-role key).
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class SupabaseError(Exception):
    """Base Supabase error for PostgREST, Storage and Auth requests."""

    status_code: int
    message: str
    code: str | None = None
    details: str | None = None

    def __str__(self) -> str:
        bits: list[str] = [f"SupabaseError(status={self.status_code})", self.message]
        if self.code:
            bits.append(f"code={self.code}")
        if self.details:
            bits.append(f"details={self.details}")
        return " ".join(bits)


class SupabaseAuthError(SupabaseError):
    """401/403 errors (bad key, RLS denial, rejected OTP)."""


class SupabaseNotFoundError(SupabaseError):
    """404 errors (missing table, row or storage object)."""


class SupabaseConflictError(SupabaseError):
    """409 conflicts (unique violations such as a duplicate token hash)."""


def error_class_for_status(status_code: int) -> type[SupabaseError]:
    if status_code in (401, 403):
        return SupabaseAuthError
    if status_code == 404:
        return SupabaseNotFoundError
    if status_code == 409:
        return SupabaseConflictError
    return SupabaseError
