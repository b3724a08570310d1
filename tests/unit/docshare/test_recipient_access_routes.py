"""Tests for POST /api/v1/shares/access (recipient access protocol)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from docshare.app.db.errors import SupabaseNotFoundError
from docshare.app.drive.permissions import PermissionStatus
from docshare.app.security.recipient_session import issue_recipient_token
from docshare.app.sharing.errors import INVALID_LINK_MESSAGE
from docshare.app.sharing.model import ProviderCredential, ShareStatus

from sharing_harness import RECIPIENT, SESSION_SECRET, drive_doc, internal_doc

ACCESS = '/api/v1/shares/access'
PAST = datetime.now(timezone.utc) - timedelta(minutes=1)


# =====================================================================
# validate
# =====================================================================


class TestValidate:
    @pytest.mark.asyncio
    async def test_valid_token_returns_summary_only(self, harness):
        token, _ = await harness.seed_grant(document_ids=('doc-a', 'doc-b'), allow_download=True)

        async with harness.client() as c:
            r = await c.post(ACCESS, json={'action': 'validate', 'token': token})

        assert r.status_code == 200
        data = r.json()
        assert data['valid'] is True
        assert data['recipientEmail'] == RECIPIENT
        assert data['documentCount'] == 2
        assert data['allowDownload'] is True
        assert 'documents' not in data
        assert 'doc-a' not in r.text

    @pytest.mark.asyncio
    async def test_unknown_token_is_404(self, harness):
        async with harness.client() as c:
            r = await c.post(ACCESS, json={'action': 'validate', 'token': 'nope'})
        assert r.status_code == 404
        assert r.json() == {'error': INVALID_LINK_MESSAGE}

    @pytest.mark.asyncio
    @pytest.mark.parametrize('status', list(ShareStatus))
    async def test_expiry_wins_over_every_status(self, harness, status):
        token, _ = await harness.seed_grant(expires_at=PAST, status=status)

        async with harness.client() as c:
            r = await c.post(ACCESS, json={'action': 'validate', 'token': token})

        assert r.status_code == 410
        assert r.json()['error'] == 'This share link has expired'

    @pytest.mark.asyncio
    async def test_revoked_grant_is_invalid(self, harness):
        token, _ = await harness.seed_grant(status=ShareStatus.REVOKED)

        async with harness.client() as c:
            r = await c.post(ACCESS, json={'action': 'validate', 'token': token})

        assert r.status_code == 404
        assert r.json() == {'error': INVALID_LINK_MESSAGE}

    @pytest.mark.asyncio
    async def test_failed_email_grant_still_opens(self, harness):
        token, _ = await harness.seed_grant(status=ShareStatus.FAILED)

        async with harness.client() as c:
            r = await c.post(ACCESS, json={'action': 'validate', 'token': token})

        assert r.status_code == 200

    @pytest.mark.asyncio
    async def test_missing_token_is_400(self, harness):
        async with harness.client() as c:
            r = await c.post(ACCESS, json={'action': 'validate'})
        assert r.status_code == 400
        assert r.json() == {'error': 'Token is required'}

    @pytest.mark.asyncio
    async def test_unknown_action_is_400(self, harness):
        token, _ = await harness.seed_grant()
        async with harness.client() as c:
            r = await c.post(ACCESS, json={'action': 'download-all', 'token': token})
        assert r.status_code == 400
        assert r.json() == {'error': 'Invalid action'}

    @pytest.mark.asyncio
    async def test_preflight_is_empty_200(self, harness):
        async with harness.client() as c:
            r = await c.options(ACCESS)
        assert r.status_code == 200
        assert r.content == b''


# =====================================================================
# send-otp / verify-otp
# =====================================================================


class TestOtp:
    @pytest.mark.asyncio
    async def test_email_match_is_case_insensitive(self, harness):
        token, _ = await harness.seed_grant(recipient_email='Advisor@Example.com')

        async with harness.client() as c:
            r = await c.post(ACCESS, json={
                'action': 'send-otp', 'token': token, 'email': 'ADVISOR@example.COM',
            })

        assert r.status_code == 200
        assert r.json()['success'] is True
        assert 'advisor@example.com' in harness.otp.codes

    @pytest.mark.asyncio
    async def test_wrong_email_is_403_and_sends_nothing(self, harness):
        token, _ = await harness.seed_grant()

        async with harness.client() as c:
            r = await c.post(ACCESS, json={
                'action': 'send-otp', 'token': token, 'email': 'attacker@example.com',
            })

        assert r.status_code == 403
        assert harness.otp.codes == {}

    @pytest.mark.asyncio
    async def test_otp_dispatch_failure_is_500(self, harness):
        token, _ = await harness.seed_grant()
        harness.otp.fail_send = True

        async with harness.client() as c:
            r = await c.post(ACCESS, json={
                'action': 'send-otp', 'token': token, 'email': RECIPIENT,
            })

        assert r.status_code == 500
        assert r.json() == {'error': 'Failed to send verification code'}

    @pytest.mark.asyncio
    async def test_wrong_code_is_401(self, harness):
        token, _ = await harness.seed_grant()

        async with harness.client() as c:
            await c.post(ACCESS, json={'action': 'send-otp', 'token': token, 'email': RECIPIENT})
            r = await c.post(ACCESS, json={
                'action': 'verify-otp', 'token': token, 'email': RECIPIENT, 'otp': 'x00000',
            })

        assert r.status_code == 401

    @pytest.mark.asyncio
    async def test_verify_with_wrong_email_is_403(self, harness):
        token, _ = await harness.seed_grant()

        async with harness.client() as c:
            await c.post(ACCESS, json={'action': 'send-otp', 'token': token, 'email': RECIPIENT})
            code = harness.otp.codes[RECIPIENT]
            r = await c.post(ACCESS, json={
                'action': 'verify-otp', 'token': token, 'email': 'x@y.z', 'otp': code,
            })

        assert r.status_code == 403

    @pytest.mark.asyncio
    async def test_verify_returns_session_and_documents(self, harness):
        token, grant = await harness.seed_grant(document_ids=('doc-a', 'doc-b'))

        async with harness.client() as c:
            data = await harness.verified_session(c, token)

        assert data['verified'] is True
        assert data['accessToken']
        assert [d['id'] for d in data['documents']] == ['doc-a', 'doc-b']
        first = data['documents'][0]
        assert first['fileName'] == 'doc-a.pdf'
        assert first['mainCategory'] == 'Income'
        assert first['isDriveFile'] is False
        assert 'drivePermissionActive' not in first

        # Seeded grants have no audit row; the best-effort stamp is a no-op.
        assert harness.audit.for_share(grant.id) == []

    @pytest.mark.asyncio
    async def test_verify_stamps_audit_entry(self, harness):
        async with harness.client() as c:
            r = await c.post('/api/v1/shares', headers=harness.owner_headers(), json={
                'documentIds': ['doc-a'],
                'expiresAt': (datetime.now(timezone.utc) + timedelta(days=1)).isoformat(),
                'recipients': [{'email': RECIPIENT}],
            })
            token = r.json()['shareLink'].rsplit('/', 1)[1]
            await harness.verified_session(c, token)

        [entry] = harness.audit.entries
        assert entry.otp_verified_at is not None

    @pytest.mark.asyncio
    async def test_code_cannot_be_replayed(self, harness):
        token, _ = await harness.seed_grant()

        async with harness.client() as c:
            await c.post(ACCESS, json={'action': 'send-otp', 'token': token, 'email': RECIPIENT})
            code = harness.otp.codes[RECIPIENT]
            body = {'action': 'verify-otp', 'token': token, 'email': RECIPIENT, 'otp': code}
            first = await c.post(ACCESS, json=body)
            second = await c.post(ACCESS, json=body)

        assert first.status_code == 200
        assert second.status_code == 401

    @pytest.mark.asyncio
    async def test_disabled_document_is_refiltered_at_verify(self, harness):
        token, _ = await harness.seed_grant(document_ids=('doc-a', 'doc-b'))
        harness.documents.set_share_enabled('doc-b', False)

        async with harness.client() as c:
            data = await harness.verified_session(c, token)

        assert [d['id'] for d in data['documents']] == ['doc-a']


# =====================================================================
# get-url
# =====================================================================


class TestGetUrl:
    @pytest.mark.asyncio
    async def test_each_request_gets_a_fresh_signed_url(self, harness):
        token, _ = await harness.seed_grant()

        async with harness.client() as c:
            session = (await harness.verified_session(c, token))['accessToken']
            body = {
                'action': 'get-url', 'token': token,
                'accessToken': session, 'documentId': 'doc-a',
            }
            first = await c.post(ACCESS, json=body)
            second = await c.post(ACCESS, json=body)

        assert first.status_code == second.status_code == 200
        assert first.json()['signedUrl'] != second.json()['signedUrl']
        assert harness.objects.issued == [('owner-1/doc-a.pdf', 3600)] * 2

    @pytest.mark.asyncio
    async def test_document_outside_grant_is_404(self, harness):
        token, _ = await harness.seed_grant(document_ids=('doc-a',))

        async with harness.client() as c:
            session = (await harness.verified_session(c, token))['accessToken']
            r = await c.post(ACCESS, json={
                'action': 'get-url', 'token': token,
                'accessToken': session, 'documentId': 'doc-b',
            })

        assert r.status_code == 404
        assert harness.objects.issued == []

    @pytest.mark.asyncio
    async def test_document_disabled_after_verify_is_403(self, harness):
        token, _ = await harness.seed_grant(document_ids=('doc-a', 'doc-b'))

        async with harness.client() as c:
            session = (await harness.verified_session(c, token))['accessToken']
            harness.documents.set_share_enabled('doc-b', False)
            r = await c.post(ACCESS, json={
                'action': 'get-url', 'token': token,
                'accessToken': session, 'documentId': 'doc-b',
            })

        assert r.status_code == 403

    @pytest.mark.asyncio
    @pytest.mark.parametrize('failure', [
        SupabaseNotFoundError(status_code=404, message='Object not found'),
        ValueError('storage response did not include a signed URL'),
    ])
    async def test_unsignable_object_is_403_not_500(self, harness, monkeypatch, failure):
        token, _ = await harness.seed_grant()

        async def failing_sign(raw_path, ttl_seconds=3600):
            raise failure

        async with harness.client() as c:
            session = (await harness.verified_session(c, token))['accessToken']
            monkeypatch.setattr(harness.objects, 'create_signed_url', failing_sign)
            r = await c.post(ACCESS, json={
                'action': 'get-url', 'token': token,
                'accessToken': session, 'documentId': 'doc-a',
            })

        assert r.status_code == 403
        assert r.json() == {'error': 'This document is no longer available'}

    @pytest.mark.asyncio
    async def test_invalid_session_is_401(self, harness):
        token, _ = await harness.seed_grant()

        async with harness.client() as c:
            r = await c.post(ACCESS, json={
                'action': 'get-url', 'token': token,
                'accessToken': 'forged', 'documentId': 'doc-a',
            })

        assert r.status_code == 401

    @pytest.mark.asyncio
    async def test_session_for_another_grant_is_401(self, harness):
        token_a, _ = await harness.seed_grant()
        _, grant_b = await harness.seed_grant()
        foreign = issue_recipient_token(SESSION_SECRET, email=RECIPIENT, share_id=grant_b.id)

        async with harness.client() as c:
            r = await c.post(ACCESS, json={
                'action': 'get-url', 'token': token_a,
                'accessToken': foreign, 'documentId': 'doc-a',
            })

        assert r.status_code == 401

    @pytest.mark.asyncio
    async def test_session_for_another_email_is_401(self, harness):
        token, grant = await harness.seed_grant()
        other = issue_recipient_token(SESSION_SECRET, email='x@y.z', share_id=grant.id)

        async with harness.client() as c:
            r = await c.post(ACCESS, json={
                'action': 'get-url', 'token': token,
                'accessToken': other, 'documentId': 'doc-a',
            })

        assert r.status_code == 401

    @pytest.mark.asyncio
    async def test_revoked_grant_blocks_existing_session(self, harness):
        token, grant = await harness.seed_grant()

        async with harness.client() as c:
            session = (await harness.verified_session(c, token))['accessToken']
            await harness.shares.mark_revoked(grant.id)
            r = await c.post(ACCESS, json={
                'action': 'get-url', 'token': token,
                'accessToken': session, 'documentId': 'doc-a',
            })

        assert r.status_code == 404


# =====================================================================
# Google Drive documents
# =====================================================================


class TestDriveAccess:
    async def _drive_grant(self, h):
        h.connect_drive()
        permission_id = await h.drive.grant_anyone_reader('ya29.valid', 'file-1')
        token, grant = await h.seed_grant(
            document_ids=('doc-d', 'doc-a'), ledger={'file-1': permission_id},
        )
        return token, grant, permission_id

    @pytest.mark.asyncio
    async def test_live_permission_returns_drive_link(self, make_harness):
        h = make_harness(documents=[drive_doc('doc-d', 'file-1'), internal_doc('doc-a')])
        token, _, _ = await self._drive_grant(h)

        async with h.client() as c:
            data = await h.verified_session(c, token)
            r = await c.post(ACCESS, json={
                'action': 'get-url', 'token': token,
                'accessToken': data['accessToken'], 'documentId': 'doc-d',
            })

        drive_entry = data['documents'][0]
        assert drive_entry['isDriveFile'] is True
        assert drive_entry['drivePermissionActive'] is True
        assert r.status_code == 200
        assert r.json() == {
            'signedUrl': 'https://drive.google.com/file/d/file-1/view',
            'isDriveFile': True,
        }

    @pytest.mark.asyncio
    async def test_permission_removed_mid_session(self, make_harness):
        h = make_harness(documents=[drive_doc('doc-d', 'file-1'), internal_doc('doc-a')])
        token, grant, permission_id = await self._drive_grant(h)

        async with h.client() as c:
            session = (await h.verified_session(c, token))['accessToken']
            # Owner turns off link sharing from Drive's own UI.
            del h.drive.permissions['file-1'][permission_id]
            r = await c.post(ACCESS, json={
                'action': 'get-url', 'token': token,
                'accessToken': session, 'documentId': 'doc-d',
            })

        assert r.status_code == 403
        data = r.json()
        assert data['permissionRevoked'] is True
        assert data['error']
        assert 'signedUrl' not in data
        assert (await h.shares.get(grant.id)).permission_ledger == {}

    @pytest.mark.asyncio
    async def test_removed_permission_is_flagged_at_verify(self, make_harness):
        h = make_harness(documents=[drive_doc('doc-d', 'file-1'), internal_doc('doc-a')])
        token, grant, permission_id = await self._drive_grant(h)
        del h.drive.permissions['file-1'][permission_id]

        async with h.client() as c:
            data = await h.verified_session(c, token)

        flags = {d['id']: d.get('drivePermissionActive') for d in data['documents']}
        assert flags == {'doc-d': False, 'doc-a': None}
        assert (await h.shares.get(grant.id)).permission_ledger == {}

    @pytest.mark.asyncio
    async def test_inconclusive_drive_check_fails_closed(self, make_harness, monkeypatch):
        h = make_harness(documents=[drive_doc('doc-d', 'file-1'), internal_doc('doc-a')])
        token, grant, permission_id = await self._drive_grant(h)

        async def inconclusive_check(access_token, file_id, permission_id):
            # Drive answered 500: not confirmed absent, but not usable either.
            return PermissionStatus(exists=False)

        monkeypatch.setattr(h.drive, 'check_permission', inconclusive_check)

        async with h.client() as c:
            data = await h.verified_session(c, token)
            r = await c.post(ACCESS, json={
                'action': 'get-url', 'token': token,
                'accessToken': data['accessToken'], 'documentId': 'doc-d',
            })

        flags = {d['id']: d.get('drivePermissionActive') for d in data['documents']}
        assert flags == {'doc-d': False, 'doc-a': None}
        assert r.status_code == 403
        body = r.json()
        assert body == {'error': 'This document cannot be opened right now'}
        assert 'signedUrl' not in body
        assert 'permissionRevoked' not in body
        assert (await h.shares.get(grant.id)).permission_ledger == {'file-1': permission_id}

    @pytest.mark.asyncio
    async def test_disconnected_owner_is_503(self, make_harness):
        h = make_harness(documents=[drive_doc('doc-d', 'file-1'), internal_doc('doc-a')])
        token, _, _ = await self._drive_grant(h)

        async with h.client() as c:
            session = (await h.verified_session(c, token))['accessToken']
            # Stored token expired and refresh is unavailable.
            h.credentials.put(ProviderCredential(
                user_id='owner-1',
                access_token='ya29.old',
                refresh_token='1//revoked',
                expires_at=PAST,
            ))
            r = await c.post(ACCESS, json={
                'action': 'get-url', 'token': token,
                'accessToken': session, 'documentId': 'doc-d',
            })

        assert r.status_code == 503
        assert 'reconnect' in r.json()['error'].lower()
