"""Tests for the share-grant domain model and token helpers."""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone

import pytest

from docshare.app.sharing.model import (
    ACCESSIBLE_STATUSES,
    ProviderCredential,
    ShareGrant,
    ShareStatus,
    emails_match,
    generate_share_token,
    hash_token,
    normalize_recipient_type,
    parse_timestamp,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _grant(**overrides) -> ShareGrant:
    fields = dict(
        id='shr-1',
        owner_id='owner-1',
        document_ids=('doc-a',),
        recipient_email='advisor@example.com',
        recipient_type='advisor',
        expires_at=NOW + timedelta(days=1),
        token_hash='h',
    )
    fields.update(overrides)
    return ShareGrant(**fields)


class TestShareTokens:
    def test_ten_thousand_tokens_are_unique(self):
        tokens = {generate_share_token() for _ in range(10_000)}
        assert len(tokens) == 10_000

    def test_token_has_at_least_256_bits(self):
        # 32 random bytes -> 43 url-safe base64 characters.
        assert len(generate_share_token()) >= 43

    def test_hash_is_sha256_hex(self):
        token = generate_share_token()
        assert hash_token(token) == hashlib.sha256(token.encode()).hexdigest()
        assert hash_token(token) != token


class TestEmailMatching:
    @pytest.mark.parametrize('presented', [
        'Advisor@Example.com',
        'ADVISOR@EXAMPLE.COM',
        '  advisor@example.com ',
    ])
    def test_case_and_whitespace_insensitive(self, presented):
        assert emails_match(presented, 'advisor@example.com')

    def test_different_address_does_not_match(self):
        assert not emails_match('other@example.com', 'advisor@example.com')

    def test_empty_never_matches(self):
        assert not emails_match('', '')
        assert not emails_match(None, 'advisor@example.com')

    def test_non_ascii_addresses_compare(self):
        assert emails_match('Jürgen@Example.de', 'jürgen@example.de')


class TestShareGrant:
    def test_share_type_follows_document_count(self):
        assert _grant().share_type == 'single'
        assert _grant(document_ids=('a', 'b')).share_type == 'multiple'

    def test_expiry_is_strictly_before_now(self):
        assert _grant(expires_at=NOW - timedelta(seconds=1)).is_expired(NOW)
        assert not _grant(expires_at=NOW).is_expired(NOW)

    def test_revoked_is_not_accessible(self):
        assert ShareStatus.REVOKED not in ACCESSIBLE_STATUSES
        assert not _grant(status=ShareStatus.REVOKED).is_accessible
        assert _grant(status=ShareStatus.FAILED).is_accessible

    def test_row_never_contains_plaintext_token(self):
        token = generate_share_token()
        row = _grant(token_hash=hash_token(token)).to_row()
        assert token not in str(row)
        assert row['token_hash'] == hash_token(token)
        assert row['share_type'] == 'single'

    def test_from_row_parses_postgrest_shapes(self):
        grant = ShareGrant.from_row({
            'id': 'shr-9',
            'user_id': 'owner-1',
            'document_ids': ['doc-a', 'doc-b'],
            'recipient_email': 'a@b.c',
            'recipient_type': None,
            'expires_at': '2026-03-02T12:00:00Z',
            'token_hash': 'abc',
            'status': 'FAILED',
            'drive_permission_ids': {'file-1': 'perm-1'},
            'created_at': '2026-03-01T12:00:00+00:00',
        })
        assert grant.document_ids == ('doc-a', 'doc-b')
        assert grant.recipient_type == 'other'
        assert grant.status is ShareStatus.FAILED
        assert grant.permission_ledger == {'file-1': 'perm-1'}
        assert grant.expires_at == datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class TestHelpers:
    @pytest.mark.parametrize('raw,expected', [
        ('Advisor', 'advisor'),
        ('ACCOUNTANT', 'accountant'),
        (None, 'other'),
        ('', 'other'),
    ])
    def test_recipient_type_normalization(self, raw, expected):
        assert normalize_recipient_type(raw) == expected

    def test_naive_timestamp_is_treated_as_utc(self):
        assert parse_timestamp('2026-03-01T12:00:00') == NOW

    def test_credential_without_expiry_is_expired(self):
        cred = ProviderCredential.from_row({
            'user_id': 'owner-1', 'access_token': 'a', 'refresh_token': 'r',
        })
        assert cred.is_expired(NOW)

    def test_credential_expiring_now_is_expired(self):
        cred = ProviderCredential('owner-1', 'a', 'r', NOW)
        assert cred.is_expired(NOW)
        assert not cred.is_expired(NOW - timedelta(seconds=1))
