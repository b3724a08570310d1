"""Tests for the Google credential check-then-refresh routine."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from docshare.app.inmemory import InMemoryCredentialStore
from docshare.app.sharing.model import ProviderCredential
from docshare.app.storage.credentials import (
    CredentialError,
    GoogleTokenRefresher,
    RefreshedToken,
    access_token_for_user,
    get_valid_access_token,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _CountingRefresher:
    def __init__(self, fail: bool = False) -> None:
        self.calls: list[str] = []
        self.fail = fail

    async def refresh(self, refresh_token: str) -> RefreshedToken:
        self.calls.append(refresh_token)
        if self.fail:
            raise ValueError('invalid_grant')
        return RefreshedToken('ya29.fresh', NOW + timedelta(hours=1))


def _store_with(expires_at: datetime) -> tuple[InMemoryCredentialStore, ProviderCredential]:
    store = InMemoryCredentialStore()
    cred = ProviderCredential('owner-1', 'ya29.stored', '1//refresh', expires_at)
    store.put(cred)
    return store, cred


@pytest.mark.asyncio
async def test_unexpired_token_is_returned_without_refresh():
    store, cred = _store_with(NOW + timedelta(minutes=5))
    refresher = _CountingRefresher()

    token = await get_valid_access_token(cred, NOW, refresher=refresher, store=store)

    assert token == 'ya29.stored'
    assert refresher.calls == []


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_once_and_persisted():
    store, cred = _store_with(NOW - timedelta(seconds=1))
    refresher = _CountingRefresher()

    token = await get_valid_access_token(cred, NOW, refresher=refresher, store=store)

    assert token == 'ya29.fresh'
    assert refresher.calls == ['1//refresh']
    saved = await store.get_credential('owner-1')
    assert saved.access_token == 'ya29.fresh'
    assert saved.expires_at == NOW + timedelta(hours=1)


@pytest.mark.asyncio
async def test_failed_refresh_raises_credential_error_and_keeps_store():
    store, cred = _store_with(NOW)
    refresher = _CountingRefresher(fail=True)

    with pytest.raises(CredentialError) as excinfo:
        await get_valid_access_token(cred, NOW, refresher=refresher, store=store)

    assert excinfo.value.user_id == 'owner-1'
    assert len(refresher.calls) == 1
    assert (await store.get_credential('owner-1')).access_token == 'ya29.stored'


@pytest.mark.asyncio
async def test_missing_credential_means_not_connected():
    with pytest.raises(CredentialError, match='not connected'):
        await access_token_for_user(
            'nobody', store=InMemoryCredentialStore(), refresher=_CountingRefresher(),
        )


@pytest.mark.asyncio
async def test_google_refresher_posts_refresh_grant():
    seen: dict = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen['url'] = str(request.url)
        seen['form'] = parse_qs(request.content.decode())
        return httpx.Response(200, json={'access_token': 'ya29.new', 'expires_in': 1800})

    refresher = GoogleTokenRefresher(
        client_id='cid',
        client_secret='csecret',
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    refreshed = await refresher.refresh('1//refresh')

    assert refreshed.access_token == 'ya29.new'
    assert seen['url'] == 'https://oauth2.googleapis.com/token'
    assert seen['form']['grant_type'] == ['refresh_token']
    assert seen['form']['refresh_token'] == ['1//refresh']
    assert seen['form']['client_id'] == ['cid']


@pytest.mark.asyncio
async def test_google_refresher_error_payload_raises():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={
            'error': 'invalid_grant', 'error_description': 'Token has been revoked.',
        })

    refresher = GoogleTokenRefresher(
        client_id='cid',
        client_secret='csecret',
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    with pytest.raises(ValueError, match='revoked'):
        await refresher.refresh('1//refresh')
