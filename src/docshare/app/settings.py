"""Document-sharing service configuration.

DocShareSettings is the single configuration object accepted by create_app().
It is a plain frozen dataclass (not env-coupled) so tests can inject config
without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_DEFAULT_EMAIL_FROM = "TAXBEBO <onboarding@resend.dev>"
_DEFAULT_APP_URL = "http://localhost:5173"
_DEFAULT_BUCKET = "user-documents"
_DEFAULT_SIGNED_URL_TTL = 3600
_DEFAULT_SESSION_TTL = 3600
_DEFAULT_CORS: tuple[str, ...] = ("*",)

_NON_LOCAL_REQUIRED = (
    ("supabase_url", "supabase_url is required"),
    ("supabase_service_role_key", "supabase_service_role_key is required"),
    ("google_client_id", "google_client_id is required"),
    ("google_client_secret", "google_client_secret is required"),
    ("resend_api_key", "resend_api_key is required"),
)


@dataclass(frozen=True, slots=True)
class DocShareSettings:
    """Configuration for the document-sharing FastAPI application.

    All fields have defaults for local development. Non-local environments
    must supply real Supabase, Google OAuth and Resend credentials plus a
    session secret of at least 32 characters.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    """Supabase project URL (e.g. https://xyz.supabase.co)."""

    supabase_service_role_key: str = ""
    """Service-role key for PostgREST, Storage and Auth admin calls. Never log this."""

    supabase_anon_key: str = ""
    """Anon key used for the public Auth OTP endpoints."""

    supabase_jwt_secret: str = ""
    """HS256 secret for owner JWTs when JWKS is not used (local dev only)."""

    # ── Recipient sessions ─────────────────────────────────────────
    session_secret: str = ""
    """Signs recipient session tokens. Must be >=32 chars in non-local."""

    recipient_session_ttl_seconds: int = _DEFAULT_SESSION_TTL

    # ── Google Drive ───────────────────────────────────────────────
    google_client_id: str = ""
    google_client_secret: str = ""

    # ── Email ──────────────────────────────────────────────────────
    resend_api_key: str = ""
    email_from: str = _DEFAULT_EMAIL_FROM

    # ── Links / storage ────────────────────────────────────────────
    app_url: str = _DEFAULT_APP_URL
    """Base for share links when the request carries no Origin header."""

    storage_bucket: str = _DEFAULT_BUCKET
    signed_url_ttl_seconds: int = _DEFAULT_SIGNED_URL_TTL

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = _DEFAULT_CORS

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if self.signed_url_ttl_seconds <= 0:
            errors.append("signed_url_ttl_seconds must be positive")
        if self.recipient_session_ttl_seconds <= 0:
            errors.append("recipient_session_ttl_seconds must be positive")
        if not self.is_local:
            for attr, message in _NON_LOCAL_REQUIRED:
                if not getattr(self, attr):
                    errors.append(f"{self.environment}: {message}")
            if not self.session_secret or len(self.session_secret) < 32:
                errors.append(
                    f"{self.environment}: session_secret must be >= 32 characters"
                )
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> DocShareSettings:
        """Build settings from environment variables.

        Tests should construct DocShareSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = (
            tuple(o.strip() for o in cors_raw.split(",") if o.strip())
            if cors_raw
            else _DEFAULT_CORS
        )

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            supabase_anon_key=env.get("SUPABASE_ANON_KEY", ""),
            supabase_jwt_secret=env.get("SUPABASE_JWT_SECRET", ""),
            session_secret=env.get("SESSION_SECRET", ""),
            recipient_session_ttl_seconds=int(
                env.get("RECIPIENT_SESSION_TTL_SECONDS", _DEFAULT_SESSION_TTL)
            ),
            google_client_id=env.get("GOOGLE_CLIENT_ID", ""),
            google_client_secret=env.get("GOOGLE_CLIENT_SECRET", ""),
            resend_api_key=env.get("RESEND_API_KEY", ""),
            email_from=env.get("EMAIL_FROM", _DEFAULT_EMAIL_FROM),
            app_url=env.get("APP_URL", _DEFAULT_APP_URL),
            storage_bucket=env.get("STORAGE_BUCKET", _DEFAULT_BUCKET),
            signed_url_ttl_seconds=int(
                env.get("SIGNED_URL_TTL_SECONDS", _DEFAULT_SIGNED_URL_TTL)
            ),
            cors_origins=cors,
        )
