"""Owner authentication dependency.

Share management routes depend on ``get_owner_identity``; the recipient
access endpoint is public and never uses it. The verifier is read from
``app.state.token_verifier`` so tests can inject a static-secret verifier.
"""

from __future__ import annotations

import logging

from starlette.requests import Request

from ..sharing.errors import ShareAuthError
from .token_verify import AuthIdentity, TokenVerificationError, TokenVerifier, extract_bearer_token

logger = logging.getLogger(__name__)


def get_owner_identity(request: Request) -> AuthIdentity:
    """FastAPI dependency returning the verified document owner.

    Raises:
        ShareAuthError: Missing, malformed or unverifiable bearer token.
    """
    token = extract_bearer_token(request)
    if not token:
        raise ShareAuthError()

    verifier: TokenVerifier = request.app.state.token_verifier
    try:
        identity = verifier.verify(token)
    except TokenVerificationError as exc:
        logger.info('Owner token rejected: %s', exc.code)
        raise ShareAuthError() from exc

    request.state.auth_identity = identity
    return identity
