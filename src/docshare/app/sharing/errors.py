"""Sharing error taxonomy.

Every failure the share endpoints report maps to one ``ShareError`` subclass
carrying its HTTP status and wire ``error`` message. Routes translate these
into JSON bodies in a single place (``routes.share_error_response``).

Recipient-facing auth failures always use the same generic messages so a
caller cannot tell an unknown token from a wrong email.
"""

from __future__ import annotations

from typing import Any


class ShareError(Exception):
    """Base error: HTTP status plus the public ``error`` message."""

    status_code = 500
    default_message = 'Internal error'

    def __init__(self, message: str | None = None, **extra: Any) -> None:
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_body(self) -> dict[str, Any]:
        return {'error': self.message, **self.extra}


class ShareValidationError(ShareError):
    status_code = 400
    default_message = 'Missing required fields'

    def __init__(
        self,
        message: str | None = None,
        *,
        invalid_document_ids: list[str] | None = None,
    ) -> None:
        extra: dict[str, Any] = {}
        if invalid_document_ids is not None:
            extra['invalidDocumentIds'] = invalid_document_ids
        super().__init__(message, **extra)
        self.invalid_document_ids = invalid_document_ids or []


class ShareAuthError(ShareError):
    status_code = 401
    default_message = 'Unauthorized'


class ShareForbiddenError(ShareError):
    status_code = 403
    default_message = 'Access denied'


class ShareNotFoundError(ShareError):
    status_code = 404
    default_message = 'Not found'


class ShareExpiredError(ShareError):
    status_code = 410
    default_message = 'This share link has expired'


class ProviderPermissionRevoked(ShareForbiddenError):
    """The Drive permission behind a shared file no longer exists."""

    default_message = 'Access to this document has been revoked by the owner'

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message)
        self.extra = {'permissionRevoked': True}


class ProviderCredentialError(ShareError):
    """The owner's Google credential is missing or could not be refreshed."""

    status_code = 503
    default_message = (
        'Google Drive is disconnected. The document owner must reconnect '
        'Google Drive.'
    )


class OtpDeliveryError(ShareError):
    status_code = 500
    default_message = 'Failed to send verification code'


# Wire messages shared by the access protocol.
INVALID_LINK_MESSAGE = 'Invalid or expired share link'
EMAIL_MISMATCH_MESSAGE = 'Email does not match the share recipient'
INVALID_CODE_MESSAGE = 'Invalid or expired verification code'
INVALID_SESSION_MESSAGE = 'Invalid or expired access session'
