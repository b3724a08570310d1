"""Owner authentication and recipient sessions."""

from .recipient_session import (
    RecipientSession,
    RecipientSessionError,
    issue_recipient_token,
    verify_recipient_token,
)
from .token_verify import (
    AuthIdentity,
    StaticKeyProvider,
    TokenVerificationError,
    TokenVerifier,
    create_token_verifier,
    extract_bearer_token,
)

__all__ = [
    'AuthIdentity',
    'RecipientSession',
    'RecipientSessionError',
    'StaticKeyProvider',
    'TokenVerificationError',
    'TokenVerifier',
    'create_token_verifier',
    'extract_bearer_token',
    'issue_recipient_token',
    'verify_recipient_token',
]
