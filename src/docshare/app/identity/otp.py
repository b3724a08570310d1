"""Recipient email OTP through Supabase Auth.

Recipients prove control of the shared-to address with a one-time code.
``send_otp`` calls ``POST /auth/v1/otp``; ``verify_otp`` calls
``POST /auth/v1/verify`` with ``type=email``. Verification only answers
yes/no; the service issues its own recipient session afterwards.
"""

from __future__ import annotations

import logging

import httpx

from ..db.errors import SupabaseError
from ..db.supabase_client import get_shared_async_client, raise_for_supabase_error

logger = logging.getLogger(__name__)


class SupabaseOtpProvider:
    """Email OTP send/verify against the Supabase Auth REST API."""

    def __init__(
        self,
        *,
        supabase_url: str,
        api_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        self._auth_url = f"{supabase_url.rstrip('/')}/auth/v1"
        self._api_key = api_key
        self._client = http_client or get_shared_async_client()
        self._timeout = float(timeout_seconds)

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
        }

    async def send_otp(self, email: str) -> None:
        """Send a one-time code to ``email``.

        Raises:
            SupabaseError: Auth rejected the request.
            httpx.HTTPError: Transport failure.
        """
        resp = await self._client.post(
            f"{self._auth_url}/otp",
            json={"email": email, "create_user": True},
            headers=self._headers(),
            timeout=self._timeout,
        )
        raise_for_supabase_error(resp)

    async def verify_otp(self, email: str, code: str) -> bool:
        """Return True when ``code`` is the current OTP for ``email``.

        Any failure, including transport errors, is a failed verification.
        """
        try:
            resp = await self._client.post(
                f"{self._auth_url}/verify",
                json={"type": "email", "email": email, "token": code},
                headers=self._headers(),
                timeout=self._timeout,
            )
            raise_for_supabase_error(resp)
        except SupabaseError as exc:
            logger.info("OTP verification rejected status=%d", exc.status_code)
            return False
        except httpx.HTTPError as exc:
            logger.warning("OTP verification transport error: %s", exc)
            return False
        return True
