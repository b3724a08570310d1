"""Tests for create_app() and DocShareSettings."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from docshare.app import DocShareSettings, create_app
from docshare.app.inmemory import InMemoryShareGrantRepository
from docshare.app.main import AppDependencies
from docshare.app.sharing.audit import redact_token

VALID_NON_LOCAL = dict(
    environment='production',
    supabase_url='https://proj.supabase.co',
    supabase_service_role_key='svc',
    supabase_anon_key='anon',
    session_secret='s' * 32,
    google_client_id='cid',
    google_client_secret='csecret',
    resend_api_key='re_key',
)


class TestSettings:
    def test_local_defaults_are_valid(self):
        settings = DocShareSettings()
        assert settings.is_local
        assert settings.validate() == []
        assert settings.storage_bucket == 'user-documents'
        assert settings.signed_url_ttl_seconds == 3600

    def test_non_local_requires_credentials(self):
        errors = DocShareSettings(environment='production').validate()
        joined = '\n'.join(errors)
        for name in ('supabase_url', 'resend_api_key', 'google_client_id', 'session_secret'):
            assert name in joined

    def test_short_session_secret_rejected(self):
        settings = DocShareSettings(**{**VALID_NON_LOCAL, 'session_secret': 'short'})
        assert any('session_secret' in e for e in settings.validate())

    def test_non_positive_ttl_rejected(self):
        assert DocShareSettings(signed_url_ttl_seconds=0).validate()

    def test_from_env(self):
        settings = DocShareSettings.from_env({
            'ENVIRONMENT': 'staging',
            'SUPABASE_URL': 'https://proj.supabase.co',
            'CORS_ORIGINS': 'https://a.example, https://b.example',
            'SIGNED_URL_TTL_SECONDS': '600',
            'APP_URL': 'https://vault.example',
        })
        assert settings.environment == 'staging'
        assert settings.cors_origins == ('https://a.example', 'https://b.example')
        assert settings.signed_url_ttl_seconds == 600
        assert settings.app_url == 'https://vault.example'

    def test_from_env_defaults(self):
        settings = DocShareSettings.from_env({})
        assert settings.is_local
        assert settings.cors_origins == ('*',)


class TestCreateApp:
    def test_invalid_settings_refuse_to_start(self):
        with pytest.raises(ValueError, match='validation failed'):
            create_app(DocShareSettings(environment='production'))

    def test_local_app_uses_inmemory_deps(self):
        app = create_app(DocShareSettings())
        assert isinstance(app.state.deps, AppDependencies)
        assert isinstance(app.state.deps.shares, InMemoryShareGrantRepository)

    def test_override_is_used(self):
        repo = InMemoryShareGrantRepository()
        app = create_app(DocShareSettings(), shares=repo)
        assert app.state.deps.shares is repo

    def test_non_local_builds_supabase_deps(self):
        from docshare.app.db import SupabaseShareGrantRepository
        from docshare.app.drive import DrivePermissionClient

        app = create_app(DocShareSettings(**VALID_NON_LOCAL))
        assert isinstance(app.state.deps.shares, SupabaseShareGrantRepository)
        assert isinstance(app.state.deps.drive, DrivePermissionClient)

    def test_health_and_request_id(self):
        with TestClient(create_app(DocShareSettings())) as client:
            r = client.get('/health', headers={'X-Request-ID': 'req-123'})
        assert r.status_code == 200
        assert r.json() == {'status': 'ok', 'environment': 'local'}
        assert r.headers['x-request-id'] == 'req-123'

    @pytest.mark.parametrize('path', [
        '/api/v1/shares', '/api/v1/shares/access', '/api/v1/shares/revoke',
    ])
    def test_options_is_empty_200(self, path):
        with TestClient(create_app(DocShareSettings())) as client:
            r = client.options(path)
        assert r.status_code == 200
        assert r.content == b''

    def test_cors_preflight_allowed(self):
        with TestClient(create_app(DocShareSettings())) as client:
            r = client.options('/api/v1/shares/access', headers={
                'Origin': 'https://vault.example',
                'Access-Control-Request-Method': 'POST',
                'Access-Control-Request-Headers': 'content-type',
            })
        assert r.status_code == 200
        assert r.headers['access-control-allow-origin'] in ('*', 'https://vault.example')

    def test_owner_routes_require_bearer(self):
        with TestClient(create_app(DocShareSettings())) as client:
            assert client.get('/api/v1/shares').status_code == 401
            assert client.post('/api/v1/shares', json={}).status_code == 401


class TestRedaction:
    def test_token_reduced_to_prefix(self):
        assert redact_token('abcdefghijklmnop') == 'abcdefgh...'

    @pytest.mark.parametrize('value', [None, '', 'short'])
    def test_short_or_missing_tokens_fully_redacted(self, value):
        assert redact_token(value) == '<redacted>'
