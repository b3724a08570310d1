"""Recipient access protocol for share tokens.

A recipient moves through four steps, each a separate public request:

  validate    token -> non-sensitive summary (or Invalid 404 / Expired 410)
  send-otp    token + email -> one-time code sent to the recipient address
  verify-otp  token + email + code -> recipient session + live document list
  get-url     token + session + document id -> fresh signed URL / Drive link

Every step re-validates the token. Expiry is checked before status, so an
expired grant reports Expired even if it was also revoked.

Document state is never snapshotted at issuance: ``share_enabled`` and Drive
permission liveness are re-read on every verify-otp and get-url.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence

from ..db.errors import SupabaseError
from ..drive.permissions import PermissionStatus
from ..security.recipient_session import (
    RecipientSessionError,
    issue_recipient_token,
    verify_recipient_token,
)
from ..storage.credentials import CredentialError
from ..storage.locator import ExternalLocator, InternalLocator, resolve_locator
from .audit import record_otp_verified, redact_token
from .errors import (
    EMAIL_MISMATCH_MESSAGE,
    INVALID_CODE_MESSAGE,
    INVALID_LINK_MESSAGE,
    INVALID_SESSION_MESSAGE,
    OtpDeliveryError,
    ProviderCredentialError,
    ProviderPermissionRevoked,
    ShareAuthError,
    ShareExpiredError,
    ShareForbiddenError,
    ShareNotFoundError,
    ShareValidationError,
)
from .model import DocumentRecord, ShareGrant, emails_match, hash_token, utcnow

logger = logging.getLogger(__name__)

DOCUMENT_NOT_IN_SHARE_MESSAGE = 'Document not found in this share'
DOCUMENT_UNAVAILABLE_MESSAGE = 'This document is no longer available'
DRIVE_UNAVAILABLE_MESSAGE = 'This document cannot be opened right now'
OTP_SENT_MESSAGE = 'Verification code sent to your email'


# ── Response types ───────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ShareSummary:
    recipient_email: str
    document_count: int
    expires_at: datetime
    allow_download: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            'valid': True,
            'recipientEmail': self.recipient_email,
            'documentCount': self.document_count,
            'expiresAt': self.expires_at.isoformat(),
            'allowDownload': self.allow_download,
        }


@dataclass(frozen=True, slots=True)
class SharedDocument:
    id: str
    file_name: str
    file_type: str | None
    main_category: str | None
    sub_category: str | None
    is_drive_file: bool
    drive_permission_active: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            'id': self.id,
            'fileName': self.file_name,
            'fileType': self.file_type,
            'mainCategory': self.main_category,
            'subCategory': self.sub_category,
            'isDriveFile': self.is_drive_file,
        }
        if self.is_drive_file:
            body['drivePermissionActive'] = bool(self.drive_permission_active)
        return body


@dataclass(frozen=True, slots=True)
class VerifiedAccess:
    access_token: str
    allow_download: bool
    documents: list[SharedDocument]

    def to_dict(self) -> dict[str, Any]:
        return {
            'verified': True,
            'allowDownload': self.allow_download,
            'accessToken': self.access_token,
            'documents': [d.to_dict() for d in self.documents],
        }


@dataclass(frozen=True, slots=True)
class DocumentUrl:
    signed_url: str
    is_drive_file: bool = False

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {'signedUrl': self.signed_url}
        if self.is_drive_file:
            body['isDriveFile'] = True
        return body


# ── Service ──────────────────────────────────────────────────────────


class ShareAccessService:
    """Drives the token -> OTP -> session -> URL flow for recipients."""

    def __init__(
        self,
        *,
        shares,
        audit,
        documents,
        otp,
        object_store,
        synchronizer,
        session_secret: str,
        session_ttl_seconds: int = 3600,
        signed_url_ttl_seconds: int = 3600,
    ) -> None:
        self._shares = shares
        self._audit = audit
        self._documents = documents
        self._otp = otp
        self._objects = object_store
        self._sync = synchronizer
        self._session_secret = session_secret
        self._session_ttl = session_ttl_seconds
        self._signed_url_ttl = signed_url_ttl_seconds

    # ── validate ─────────────────────────────────────────────────────

    async def resolve(self, token: str | None, now: datetime | None = None) -> ShareGrant:
        """Look a token up and enforce expiry, then status.

        Raises:
            ShareValidationError: No token supplied.
            ShareExpiredError: ``expires_at`` is in the past.
            ShareNotFoundError: Unknown token or revoked grant.
        """
        if not token or not token.strip():
            raise ShareValidationError('Token is required')

        grant = await self._shares.get_by_token_hash(hash_token(token.strip()))
        if grant is None:
            logger.info('Share token not found token=%s', redact_token(token))
            raise ShareNotFoundError(INVALID_LINK_MESSAGE)
        if grant.is_expired(now):
            raise ShareExpiredError()
        if not grant.is_accessible:
            logger.info('Share %s rejected: status=%s', grant.id, grant.status.value)
            raise ShareNotFoundError(INVALID_LINK_MESSAGE)
        return grant

    async def validate(self, token: str | None) -> ShareSummary:
        grant = await self.resolve(token)
        return ShareSummary(
            recipient_email=grant.recipient_email,
            document_count=len(grant.document_ids),
            expires_at=grant.expires_at,
            allow_download=grant.allow_download,
        )

    # ── send-otp ─────────────────────────────────────────────────────

    async def send_otp(self, token: str | None, email: str | None) -> str:
        """Send a one-time code to the grant's recipient address.

        Raises:
            ShareForbiddenError: ``email`` does not match the recipient.
            OtpDeliveryError: The identity provider could not send the code.
        """
        grant = await self.resolve(token)
        if not email:
            raise ShareValidationError('Email is required')
        if not emails_match(email, grant.recipient_email):
            raise ShareForbiddenError(EMAIL_MISMATCH_MESSAGE)

        try:
            await self._otp.send_otp(grant.recipient_email)
        except Exception as exc:
            logger.exception('OTP dispatch failed for share=%s', grant.id)
            raise OtpDeliveryError() from exc
        logger.info('OTP sent for share=%s', grant.id)
        return OTP_SENT_MESSAGE

    # ── verify-otp ───────────────────────────────────────────────────

    async def verify_otp(
        self, token: str | None, email: str | None, code: str | None,
    ) -> VerifiedAccess:
        """Check the code, mint a recipient session and list live documents.

        Raises:
            ShareForbiddenError: ``email`` does not match the recipient.
            ShareAuthError: Wrong or expired code.
        """
        grant = await self.resolve(token)
        if not email or not code:
            raise ShareValidationError('Email and OTP are required')
        if not emails_match(email, grant.recipient_email):
            raise ShareForbiddenError(EMAIL_MISMATCH_MESSAGE)
        if not await self._otp.verify_otp(grant.recipient_email, code.strip()):
            raise ShareAuthError(INVALID_CODE_MESSAGE)

        access_token = issue_recipient_token(
            self._session_secret,
            email=grant.recipient_email,
            share_id=grant.id,
            ttl_seconds=self._session_ttl,
        )
        await record_otp_verified(self._audit, grant.id, utcnow())

        documents = await self._live_documents(grant)
        logger.info(
            'OTP verified for share=%s documents=%d', grant.id, len(documents),
        )
        return VerifiedAccess(
            access_token=access_token,
            allow_download=grant.allow_download,
            documents=documents,
        )

    async def _current_documents(
        self, grant: ShareGrant, document_ids: Sequence[str],
    ) -> list[DocumentRecord]:
        records = await self._documents.get_many(list(document_ids))
        by_id = {
            d.id: d for d in records
            if d.share_enabled and d.owner_id == grant.owner_id
        }
        return [by_id[d] for d in document_ids if d in by_id]

    async def _live_documents(self, grant: ShareGrant) -> list[SharedDocument]:
        records = await self._current_documents(grant, grant.document_ids)

        located: list[tuple[DocumentRecord, Any]] = []
        for record in records:
            try:
                located.append((record, resolve_locator(record.file_path)))
            except ValueError:
                logger.warning('Skipping document %s without storage path', record.id)

        drive_ids = [
            loc.file_id for _, loc in located if isinstance(loc, ExternalLocator)
        ]
        statuses = await self._drive_statuses(grant, drive_ids)

        shared: list[SharedDocument] = []
        for record, locator in located:
            is_drive = isinstance(locator, ExternalLocator)
            active = None
            if is_drive:
                status = statuses.get(locator.file_id)
                active = bool(status and status.exists)
            shared.append(SharedDocument(
                id=record.id,
                file_name=record.file_name,
                file_type=record.file_type,
                main_category=record.main_category,
                sub_category=record.sub_category,
                is_drive_file=is_drive,
                drive_permission_active=active,
            ))
        return shared

    async def _drive_statuses(
        self, grant: ShareGrant, file_ids: list[str],
    ) -> dict[str, PermissionStatus]:
        if not file_ids:
            return {}
        try:
            access_token = await self._sync.access_token(grant.owner_id)
        except CredentialError as exc:
            logger.warning(
                'Drive status unknown for share=%s: %s', grant.id, exc.reason,
            )
            return {}
        return await self._sync.reconcile(
            grant.id,
            grant.permission_ledger,
            file_ids,
            access_token=access_token,
            writer=self._shares,
        )

    # ── get-url ──────────────────────────────────────────────────────

    async def issue_document_url(
        self,
        token: str | None,
        session_token: str | None,
        document_id: str | None,
    ) -> DocumentUrl:
        """Return a fresh URL for one document of the grant.

        Raises:
            ShareAuthError: Missing/invalid session or session for another
                recipient or grant.
            ShareNotFoundError: ``document_id`` is not part of the grant.
            ShareForbiddenError: Document no longer shareable, could not be
                signed, or is not reachable on Drive.
            ProviderPermissionRevoked: The Drive permission was removed.
            ProviderCredentialError: The owner's Drive credential is unusable.
        """
        grant = await self.resolve(token)
        if not session_token or not document_id:
            raise ShareValidationError('Access token and document ID are required')

        try:
            session = verify_recipient_token(self._session_secret, session_token)
        except RecipientSessionError as exc:
            logger.info('Recipient session rejected for share=%s: %s', grant.id, exc)
            raise ShareAuthError(INVALID_SESSION_MESSAGE) from exc
        if session.share_id != grant.id or not emails_match(
            session.email, grant.recipient_email,
        ):
            raise ShareAuthError(INVALID_SESSION_MESSAGE)

        if document_id not in grant.document_ids:
            raise ShareNotFoundError(DOCUMENT_NOT_IN_SHARE_MESSAGE)

        current = await self._current_documents(grant, [document_id])
        if not current:
            raise ShareForbiddenError(DOCUMENT_UNAVAILABLE_MESSAGE)
        try:
            locator = resolve_locator(current[0].file_path)
        except ValueError as exc:
            raise ShareForbiddenError(DOCUMENT_UNAVAILABLE_MESSAGE) from exc

        if isinstance(locator, InternalLocator):
            try:
                url = await self._objects.create_signed_url(
                    locator.raw_path, self._signed_url_ttl,
                )
            except (SupabaseError, ValueError) as exc:
                logger.warning(
                    'Signing failed share=%s document=%s: %s', grant.id, document_id, exc,
                )
                raise ShareForbiddenError(DOCUMENT_UNAVAILABLE_MESSAGE) from exc
            logger.info('Signed URL issued share=%s document=%s', grant.id, document_id)
            return DocumentUrl(signed_url=url)

        return await self._drive_document_url(grant, locator)

    async def _drive_document_url(
        self, grant: ShareGrant, locator: ExternalLocator,
    ) -> DocumentUrl:
        try:
            access_token = await self._sync.access_token(grant.owner_id)
        except CredentialError as exc:
            logger.warning('Drive credential unusable for share=%s: %s', grant.id, exc.reason)
            raise ProviderCredentialError() from exc

        had_entry = locator.file_id in grant.permission_ledger
        statuses = await self._sync.reconcile(
            grant.id,
            grant.permission_ledger,
            [locator.file_id],
            access_token=access_token,
            writer=self._shares,
        )
        status = statuses[locator.file_id]
        if not status.exists:
            if status.confirmed_absent or not had_entry:
                raise ProviderPermissionRevoked()
            # Drive did not answer conclusively.
            raise ShareForbiddenError(DRIVE_UNAVAILABLE_MESSAGE)

        link = await self._sync.drive.get_web_view_link(access_token, locator.file_id)
        if not link:
            raise ShareForbiddenError(DRIVE_UNAVAILABLE_MESSAGE)
        return DocumentUrl(signed_url=link, is_drive_file=True)
