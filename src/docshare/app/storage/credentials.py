"""Google OAuth credential lifecycle.

``get_valid_access_token`` is an explicit check-then-refresh step that every
Drive operation calls before touching the provider. A stored token is used
until its expiry; after that exactly one refresh is attempted. A failed
refresh raises ``CredentialError`` so the caller can report
"reconnect required" at the call site that needed the token.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import httpx

from ..db.supabase_client import get_shared_async_client
from ..sharing.model import ProviderCredential, utcnow

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


class CredentialError(Exception):
    """The owner's Google credential is missing or cannot be refreshed."""

    def __init__(self, user_id: str, reason: str) -> None:
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"Google credential unavailable for {user_id}: {reason}")


@dataclass(frozen=True, slots=True)
class RefreshedToken:
    access_token: str
    expires_at: datetime


class TokenRefresher(Protocol):
    async def refresh(self, refresh_token: str) -> RefreshedToken: ...


class CredentialStore(Protocol):
    async def get_credential(self, user_id: str) -> ProviderCredential | None: ...

    async def save_access_token(
        self, user_id: str, access_token: str, expires_at: datetime,
    ) -> None: ...


class GoogleTokenRefresher:
    """Calls Google's token endpoint with the ``refresh_token`` grant."""

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        token_url: str = GOOGLE_TOKEN_URL,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._client = http_client or get_shared_async_client()
        self._timeout = float(timeout_seconds)

    async def refresh(self, refresh_token: str) -> RefreshedToken:
        """Exchange a refresh token for a new access token.

        Raises:
            ValueError: Google returned an error payload or no token.
            httpx.HTTPError: Transport failure.
        """
        resp = await self._client.post(
            self._token_url,
            data={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            timeout=self._timeout,
        )
        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if resp.status_code >= 400 or payload.get("error") or not payload.get("access_token"):
            reason = (
                payload.get("error_description")
                or payload.get("error")
                or f"HTTP {resp.status_code}"
            )
            raise ValueError(f"token refresh failed: {reason}")

        expires_in = int(payload.get("expires_in") or 3600)
        return RefreshedToken(
            access_token=payload["access_token"],
            expires_at=utcnow() + timedelta(seconds=expires_in),
        )


async def get_valid_access_token(
    credential: ProviderCredential,
    now: datetime,
    *,
    refresher: TokenRefresher,
    store: CredentialStore,
) -> str:
    """Return a usable access token, refreshing once if the stored one expired.

    Raises:
        CredentialError: No refresh token, or the single refresh failed.
    """
    if not credential.is_expired(now):
        return credential.access_token

    if not credential.refresh_token:
        raise CredentialError(credential.user_id, "no refresh token stored")

    try:
        refreshed = await refresher.refresh(credential.refresh_token)
    except (ValueError, httpx.HTTPError) as exc:
        logger.warning(
            "Google token refresh failed for user=%s: %s", credential.user_id, exc,
        )
        raise CredentialError(credential.user_id, str(exc)) from exc

    await store.save_access_token(
        credential.user_id, refreshed.access_token, refreshed.expires_at,
    )
    return refreshed.access_token


async def access_token_for_user(
    user_id: str,
    *,
    store: CredentialStore,
    refresher: TokenRefresher,
    now: datetime | None = None,
) -> str:
    """Load the user's stored credential and return a valid access token.

    Raises:
        CredentialError: Drive is not connected or the refresh failed.
    """
    credential = await store.get_credential(user_id)
    if credential is None or not (credential.access_token or credential.refresh_token):
        raise CredentialError(user_id, "google drive not connected")
    return await get_valid_access_token(
        credential, now or utcnow(), refresher=refresher, store=store,
    )
