"""Document-sharing FastAPI application factory.

The create_app() factory is the single entry point for building the ASGI
application. It wires middleware (request-ID, CORS), the share routers and
injects repository/provider implementations via dependency injection.

Usage:
    # Local development (in-memory repositories and providers)
    from docshare.app import create_app, DocShareSettings
    app = create_app(DocShareSettings())

    # Non-local (Supabase, Google Drive, Resend built from settings)
    app = create_app(DocShareSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, shares=repo, email_sender=fake, ...)
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from .drive.permissions import DrivePermissionClient
from .drive.sync import PermissionSynchronizer
from .protocols import (
    AuditLogRepository,
    CredentialStore,
    DocumentRepository,
    DrivePermissions,
    EmailSender,
    ObjectStore,
    OtpProvider,
    ShareGrantRepository,
    TokenRefresher,
)
from .security.token_verify import TokenVerifier, create_token_verifier
from .settings import DocShareSettings
from .sharing.access import ShareAccessService
from .sharing.errors import ShareError
from .sharing.issuance import ShareIssuanceService
from .sharing.revocation import ShareRevocationService
from .sharing.routes import (
    create_share_access_router,
    create_share_router,
    share_error_handler,
)

logger = logging.getLogger(__name__)

# Local-only signing secrets; non-local settings validation rejects them.
LOCAL_JWT_SECRET = "docshare-local-owner-jwt-secret-not-for-production"
LOCAL_SESSION_SECRET = "docshare-local-recipient-session-secret-not-for-prod"


@dataclass(frozen=True)
class AppDependencies:
    """Container for all injected repository/provider instances.

    Stored on ``app.state.deps`` so tests can reach the fakes.
    """

    shares: ShareGrantRepository
    audit: AuditLogRepository
    documents: DocumentRepository
    credentials: CredentialStore
    token_refresher: TokenRefresher
    drive: DrivePermissions
    email_sender: EmailSender
    otp: OtpProvider
    object_store: ObjectStore


def _build_inmemory_deps() -> AppDependencies:
    """Construct all-InMemory dependencies for local development."""
    from .inmemory import (
        InMemoryAuditLogRepository,
        InMemoryCredentialStore,
        InMemoryDocumentRepository,
        InMemoryDrivePermissions,
        InMemoryEmailSender,
        InMemoryObjectStore,
        InMemoryOtpProvider,
        InMemoryShareGrantRepository,
        InMemoryTokenRefresher,
    )

    return AppDependencies(
        shares=InMemoryShareGrantRepository(),
        audit=InMemoryAuditLogRepository(),
        documents=InMemoryDocumentRepository(),
        credentials=InMemoryCredentialStore(),
        token_refresher=InMemoryTokenRefresher(),
        drive=InMemoryDrivePermissions(),
        email_sender=InMemoryEmailSender(),
        otp=InMemoryOtpProvider(),
        object_store=InMemoryObjectStore(),
    )


def _build_supabase_deps(settings: DocShareSettings) -> AppDependencies:
    """Construct Supabase/Google/Resend dependencies from settings."""
    from .db import (
        SupabaseAuditLogRepository,
        SupabaseClient,
        SupabaseCredentialStore,
        SupabaseDocumentRepository,
        SupabaseShareGrantRepository,
    )
    from .identity import SupabaseOtpProvider
    from .notifications import ResendEmailSender
    from .storage import GoogleTokenRefresher, SupabaseObjectStore

    client = SupabaseClient(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
    )
    return AppDependencies(
        shares=SupabaseShareGrantRepository(client),
        audit=SupabaseAuditLogRepository(client),
        documents=SupabaseDocumentRepository(client),
        credentials=SupabaseCredentialStore(client),
        token_refresher=GoogleTokenRefresher(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
        ),
        drive=DrivePermissionClient(),
        email_sender=ResendEmailSender(
            api_key=settings.resend_api_key,
            sender=settings.email_from,
        ),
        otp=SupabaseOtpProvider(
            supabase_url=settings.supabase_url,
            api_key=settings.supabase_anon_key or settings.supabase_service_role_key,
        ),
        object_store=SupabaseObjectStore(
            supabase_url=settings.supabase_url,
            service_role_key=settings.supabase_service_role_key,
            bucket=settings.storage_bucket,
        ),
    )


def _build_token_verifier(settings: DocShareSettings) -> TokenVerifier:
    if settings.is_local and not (settings.supabase_jwt_secret or settings.supabase_url):
        return create_token_verifier(jwt_secret=LOCAL_JWT_SECRET)
    return create_token_verifier(
        supabase_url=settings.supabase_url or None,
        jwt_secret=settings.supabase_jwt_secret or None,
    )


# ── Middleware ──────────────────────────────────────────────────────


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Generate or propagate X-Request-ID on every request."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: DocShareSettings | None = None,
    *,
    shares: ShareGrantRepository | None = None,
    audit: AuditLogRepository | None = None,
    documents: DocumentRepository | None = None,
    credentials: CredentialStore | None = None,
    token_refresher: TokenRefresher | None = None,
    drive: DrivePermissions | None = None,
    email_sender: EmailSender | None = None,
    otp: OtpProvider | None = None,
    object_store: ObjectStore | None = None,
    token_verifier: TokenVerifier | None = None,
) -> FastAPI:
    """Create a configured document-sharing FastAPI application.

    Args:
        settings: Application settings. Defaults to ``from_env()``.
        shares..object_store: Repository/provider overrides. When None,
            local mode uses InMemory implementations and non-local mode
            builds Supabase/Google/Resend clients from settings.
        token_verifier: Owner JWT verifier override.

    Returns:
        Configured FastAPI application ready for uvicorn.run().

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = DocShareSettings.from_env()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Document sharing settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    defaults = (
        _build_inmemory_deps() if settings.is_local else _build_supabase_deps(settings)
    )
    deps = AppDependencies(
        shares=shares or defaults.shares,
        audit=audit or defaults.audit,
        documents=documents or defaults.documents,
        credentials=credentials or defaults.credentials,
        token_refresher=token_refresher or defaults.token_refresher,
        drive=drive or defaults.drive,
        email_sender=email_sender or defaults.email_sender,
        otp=otp or defaults.otp,
        object_store=object_store or defaults.object_store,
    )

    session_secret = settings.session_secret or (
        LOCAL_SESSION_SECRET if settings.is_local else ""
    )
    synchronizer = PermissionSynchronizer(
        deps.drive,
        credentials=deps.credentials,
        refresher=deps.token_refresher,
    )
    issuance = ShareIssuanceService(
        shares=deps.shares,
        audit=deps.audit,
        documents=deps.documents,
        email_sender=deps.email_sender,
        synchronizer=synchronizer,
        app_url=settings.app_url,
    )
    access = ShareAccessService(
        shares=deps.shares,
        audit=deps.audit,
        documents=deps.documents,
        otp=deps.otp,
        object_store=deps.object_store,
        synchronizer=synchronizer,
        session_secret=session_secret,
        session_ttl_seconds=settings.recipient_session_ttl_seconds,
        signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
    )
    revocation = ShareRevocationService(shares=deps.shares, synchronizer=synchronizer)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Document sharing startup (environment=%s)", settings.environment)
        yield
        logger.info("Document sharing shutdown")

    app = FastAPI(
        title="Document Sharing",
        description="Per-recipient document sharing with email OTP access",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings
    app.state.token_verifier = token_verifier or _build_token_verifier(settings)

    # ── Middleware stack (applied in reverse order) ──────────────

    wildcard = "*" in settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=not wildcard,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(ShareError, share_error_handler)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
        }

    app.include_router(create_share_router(issuance, revocation))
    app.include_router(create_share_access_router(access))

    return app


# For uvicorn, use --factory flag:
#   uvicorn docshare.app.main:create_app --factory
# This avoids executing create_app() at import time.
