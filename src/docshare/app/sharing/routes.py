"""Share issuance, recipient access, revocation and listing endpoints.

  POST    /api/v1/shares          → issue grants (owner auth)
  GET     /api/v1/shares          → list the owner's grants (owner auth)
  POST    /api/v1/shares/revoke   → revoke a grant (owner auth)
  POST    /api/v1/shares/access   → recipient access protocol (public)

Error contract:
  - Every failure is a ``ShareError`` rendered as ``{error, ...}`` with its
    status code by ``share_error_handler``.
  - Malformed bodies are 400, not FastAPI's 422.
  - Unexpected exceptions are logged and reported as 500 ``{error}``.

This module provides:
  ``create_share_router`` and ``create_share_access_router``: router
  factories with injected services.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from ..security.auth_guard import get_owner_identity
from ..security.token_verify import AuthIdentity
from .access import ShareAccessService
from .errors import ShareError, ShareValidationError
from .issuance import Recipient, ShareIssuanceService
from .revocation import ShareRevocationService
from .schemas import IssueSharesRequest, RevokeShareRequest, ShareAccessRequest

logger = logging.getLogger(__name__)

SHARES_PATH = '/api/v1/shares'
ACCESS_PATH = '/api/v1/shares/access'
REVOKE_PATH = '/api/v1/shares/revoke'

ALL_RECIPIENTS_FAILED_MESSAGE = 'Failed to share with any recipient'

_Model = TypeVar('_Model', bound=BaseModel)
_T = TypeVar('_T')


# ── Error rendering ──────────────────────────────────────────────────


def share_error_response(exc: ShareError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def share_error_handler(request: Request, exc: ShareError) -> JSONResponse:
    """Render ShareError subclasses as ``{error, ...}`` JSON."""
    level = logging.WARNING if exc.status_code >= 500 else logging.INFO
    logger.log(
        level,
        'Share request failed: %s %s -> %d %s',
        request.method,
        request.url.path,
        exc.status_code,
        exc.message,
    )
    return share_error_response(exc)


async def _guarded(operation: str, call: Callable[[], Awaitable[_T]]) -> _T:
    """Run ``call``; anything that is not a ShareError becomes a 500."""
    try:
        return await call()
    except ShareError:
        raise
    except Exception as exc:
        logger.exception('Unexpected error during %s', operation)
        raise ShareError(f'Failed to {operation}') from exc


async def _parse_body(request: Request, model: type[_Model]) -> _Model:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise ShareValidationError('Invalid JSON body') from exc
    if not isinstance(payload, dict):
        raise ShareValidationError('Invalid JSON body')
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = '.'.join(str(p) for p in first.get('loc', ())) or 'body'
        raise ShareValidationError(f'Invalid {field}: {first.get("msg", "")}') from exc


def _options_ok() -> Response:
    return Response(status_code=200)


# ── Owner routes ─────────────────────────────────────────────────────


def create_share_router(
    issuance: ShareIssuanceService,
    revocation: ShareRevocationService,
) -> APIRouter:
    """Create the owner-facing share management router.

    Args:
        issuance: Grant issuance service.
        revocation: Revocation and listing service.

    Returns:
        FastAPI router with issue, list and revoke routes.
    """
    router = APIRouter(tags=['shares'])

    @router.options(SHARES_PATH, include_in_schema=False)
    async def shares_preflight():
        return _options_ok()

    @router.options(REVOKE_PATH, include_in_schema=False)
    async def revoke_preflight():
        return _options_ok()

    @router.post(SHARES_PATH)
    async def issue_shares(
        request: Request,
        identity: AuthIdentity = Depends(get_owner_identity),
    ):
        """Issue one share grant per recipient and email each link.

        Returns 200 when at least one recipient was reached, 500 when every
        recipient failed.
        """
        body = await _parse_body(request, IssueSharesRequest)
        recipients = [
            Recipient(email=r.email, type=r.type, metadata=dict(r.metadata or {}))
            for r in body.normalized_recipients()
        ]
        origin = request.headers.get('origin')

        result = await _guarded('create share', lambda: issuance.issue_shares(
            identity.user_id,
            body.document_ids,
            recipients,
            allow_download=body.allow_download,
            expires_at=body.expires_at,
            link_base=origin,
        ))

        if result.all_failed:
            return JSONResponse(
                status_code=500,
                content={'error': ALL_RECIPIENTS_FAILED_MESSAGE, **result.to_dict()},
            )
        return result.to_dict()

    @router.get(SHARES_PATH)
    async def list_shares(identity: AuthIdentity = Depends(get_owner_identity)):
        """List the caller's share grants, newest first."""
        shares = await _guarded(
            'list shares', lambda: revocation.list_shares(identity.user_id),
        )
        return {'shares': shares}

    @router.post(REVOKE_PATH)
    async def revoke_share(
        request: Request,
        identity: AuthIdentity = Depends(get_owner_identity),
    ):
        """Revoke a grant. 404 for unknown and foreign shares alike."""
        body = await _parse_body(request, RevokeShareRequest)
        result = await _guarded(
            'revoke share', lambda: revocation.revoke(identity.user_id, body.share_id),
        )
        if result.already_revoked:
            logger.info('Share %s was already revoked', result.share_id)
        elif result.cleanup_failed_file_ids:
            logger.warning(
                'Share %s revoked; Drive permissions left on files=%s',
                result.share_id,
                ','.join(result.cleanup_failed_file_ids),
            )
        return {'success': True}

    return router


# ── Recipient access route ───────────────────────────────────────────


def create_share_access_router(access: ShareAccessService) -> APIRouter:
    """Create the public recipient access router.

    All steps share one endpoint and are selected by ``action``.
    """
    router = APIRouter(tags=['share-access'])

    async def _validate(body: ShareAccessRequest) -> dict[str, Any]:
        summary = await access.validate(body.token)
        return summary.to_dict()

    async def _send_otp(body: ShareAccessRequest) -> dict[str, Any]:
        message = await access.send_otp(body.token, body.email)
        return {'success': True, 'message': message}

    async def _verify_otp(body: ShareAccessRequest) -> dict[str, Any]:
        verified = await access.verify_otp(body.token, body.email, body.otp)
        return verified.to_dict()

    async def _get_url(body: ShareAccessRequest) -> dict[str, Any]:
        url = await access.issue_document_url(
            body.token, body.access_token, body.document_id,
        )
        return url.to_dict()

    actions: dict[str, Callable[[ShareAccessRequest], Awaitable[dict[str, Any]]]] = {
        'validate': _validate,
        'send-otp': _send_otp,
        'verify-otp': _verify_otp,
        'get-url': _get_url,
    }

    @router.options(ACCESS_PATH, include_in_schema=False)
    async def access_preflight():
        return _options_ok()

    @router.post(ACCESS_PATH)
    async def share_access(request: Request):
        """Dispatch one step of the recipient access protocol."""
        body = await _parse_body(request, ShareAccessRequest)
        if not body.token or not body.token.strip():
            raise ShareValidationError('Token is required')

        handler = actions.get(body.action)
        if handler is None:
            raise ShareValidationError('Invalid action')
        return await _guarded('process share access', lambda: handler(body))

    return router
