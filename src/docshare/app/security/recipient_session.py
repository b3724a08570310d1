"""Recipient session tokens.

After OTP verification the recipient receives a short-lived HS256 JWT bound
to their email and to the share grant. Every document-URL request presents
it; no server-side session state exists.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

import jwt

SESSION_TOKEN_TYPE = 'share_recipient'
DEFAULT_SESSION_TTL_SECONDS = 3600
_ALGORITHM = 'HS256'


@dataclass(frozen=True, slots=True)
class RecipientSession:
    email: str
    share_id: str
    expires_at: int


class RecipientSessionError(Exception):
    """The presented recipient session token is invalid or expired."""


def issue_recipient_token(
    secret: str,
    *,
    email: str,
    share_id: str,
    ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
    now: int | None = None,
) -> str:
    if not secret:
        raise ValueError('session secret is required')
    issued = int(now if now is not None else time.time())
    payload = {
        'sub': email.strip().lower(),
        'share_id': share_id,
        'type': SESSION_TOKEN_TYPE,
        'iat': issued,
        'exp': issued + int(ttl_seconds),
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def verify_recipient_token(secret: str, token: str | None) -> RecipientSession:
    """Decode and validate a recipient session token.

    Raises:
        RecipientSessionError: Bad signature, expiry, or wrong token type.
    """
    if not token:
        raise RecipientSessionError('missing token')
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[_ALGORITHM],
            options={'require': ['sub', 'exp', 'type']},
        )
    except jwt.InvalidTokenError as exc:
        raise RecipientSessionError(str(exc)) from exc

    if claims.get('type') != SESSION_TOKEN_TYPE or not claims.get('share_id'):
        raise RecipientSessionError('not a recipient session token')
    return RecipientSession(
        email=str(claims['sub']),
        share_id=str(claims['share_id']),
        expires_at=int(claims['exp']),
    )
