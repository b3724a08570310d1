"""Owner JWT verification for Supabase-issued access tokens.

Document owners call the issuance, listing and revocation endpoints with
``Authorization: Bearer <supabase access token>``. Tokens are verified by:
  1. Resolving the signing key (JWKS for RS256, static secret for HS256).
  2. Checking signature, audience and expiry.
  3. Extracting the owner identity (user_id, email).

Configuration:
  - ``SUPABASE_URL``: enables JWKS discovery at
    ``/auth/v1/.well-known/jwks.json``.
  - ``SUPABASE_JWT_SECRET``: HS256 fallback for local development.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import jwt
from jwt import PyJWKClient, PyJWKClientError
from starlette.requests import Request

# ── Constants ─────────────────────────────────────────────────────────

DEFAULT_AUDIENCE = 'authenticated'
JWKS_CACHE_TTL_SECONDS = 300
BEARER_PREFIX = 'bearer '

# PyJWT exception -> (error code, include exception text)
_DECODE_ERRORS: tuple[tuple[type[jwt.InvalidTokenError], str, bool], ...] = (
    (jwt.ExpiredSignatureError, 'token_expired', False),
    (jwt.InvalidAudienceError, 'invalid_audience', False),
    (jwt.DecodeError, 'decode_error', True),
    (jwt.InvalidTokenError, 'invalid_token', True),
)

# ── Types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class AuthIdentity:
    """Verified document owner.

    Attributes:
        user_id: Supabase auth.users UUID (``sub`` claim).
        email: Lower-cased email claim (may be empty).
        raw_claims: Full decoded payload.
    """

    user_id: str
    email: str = ''
    raw_claims: dict[str, Any] = field(default_factory=dict)


class TokenVerificationError(Exception):
    """Raised when a bearer token cannot be verified."""

    def __init__(self, code: str, detail: str = '') -> None:
        self.code = code
        self.detail = detail
        super().__init__(f'{code}: {detail}' if detail else code)


class KeyProvider(Protocol):
    def get_signing_key(self, token: str) -> Any: ...


class JWKSKeyProvider:
    """Resolves RS256 keys from the Supabase JWKS endpoint (cached)."""

    def __init__(self, jwks_url: str, cache_ttl: int = JWKS_CACHE_TTL_SECONDS) -> None:
        self._client = PyJWKClient(jwks_url, cache_jwk_set=True, lifespan=cache_ttl)

    def get_signing_key(self, token: str) -> Any:
        try:
            return self._client.get_signing_key_from_jwt(token).key
        except PyJWKClientError as exc:
            raise TokenVerificationError('jwks_fetch_error', str(exc)) from exc


class StaticKeyProvider:
    """Static HS256 secret (local development and tests)."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def get_signing_key(self, token: str) -> str:
        return self._secret


class TokenVerifier:
    """Verifies owner JWTs and returns the identity they carry."""

    def __init__(
        self,
        key_provider: KeyProvider,
        audience: str = DEFAULT_AUDIENCE,
        algorithms: list[str] | None = None,
    ) -> None:
        self._key_provider = key_provider
        self._audience = audience
        self._algorithms = algorithms or ['RS256']

    def verify(self, token: str) -> AuthIdentity:
        """Return the identity for ``token``.

        Raises:
            TokenVerificationError: On any verification failure.
        """
        if not token or not token.strip():
            raise TokenVerificationError('empty_token')

        key = self._key_provider.get_signing_key(token)
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=self._algorithms,
                audience=self._audience,
                options={'require': ['sub', 'exp', 'aud']},
            )
        except jwt.InvalidTokenError as exc:
            for exc_type, code, with_detail in _DECODE_ERRORS:
                if isinstance(exc, exc_type):
                    raise TokenVerificationError(
                        code, str(exc) if with_detail else '',
                    ) from exc
            raise

        user_id = claims.get('sub')
        if not user_id:
            raise TokenVerificationError('missing_sub_claim')

        return AuthIdentity(
            user_id=str(user_id),
            email=str(claims.get('email') or '').lower(),
            raw_claims=claims,
        )


def extract_bearer_token(request: Request) -> str | None:
    """Return the Bearer credential from the Authorization header, if any."""
    auth_header = request.headers.get('authorization', '')
    if auth_header.lower().startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):].strip() or None
    return None


def create_token_verifier(
    supabase_url: str | None = None,
    jwt_secret: str | None = None,
    audience: str = DEFAULT_AUDIENCE,
) -> TokenVerifier:
    """Build a verifier: HS256 when a secret is given, else JWKS (RS256).

    Raises:
        ValueError: If neither a URL nor a secret is provided.
    """
    if jwt_secret:
        return TokenVerifier(
            key_provider=StaticKeyProvider(jwt_secret),
            audience=audience,
            algorithms=['HS256'],
        )
    if supabase_url:
        jwks_url = f'{supabase_url.rstrip("/")}/auth/v1/.well-known/jwks.json'
        return TokenVerifier(
            key_provider=JWKSKeyProvider(jwks_url),
            audience=audience,
            algorithms=['RS256'],
        )
    raise ValueError(
        'Either supabase_url (for JWKS) or jwt_secret (for HS256) is required'
    )
