"""Share notification email via the Resend HTTP API.

A send counts as delivered only when Resend answers with a message id;
anything else (HTTP error, missing id, transport failure) is reported as
not accepted so the grant is marked FAILED.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import datetime

import httpx

from ..db.supabase_client import get_shared_async_client

logger = logging.getLogger(__name__)

RESEND_EMAILS_URL = "https://api.resend.com/emails"
SHARE_EMAIL_SUBJECT = "Documents shared with you via TAXBEBO"


@dataclass(frozen=True, slots=True)
class EmailResult:
    accepted: bool
    message_id: str | None = None
    error: str | None = None


def render_share_email(*, share_link: str, document_count: int, expires_at: datetime) -> str:
    link = html.escape(share_link, quote=True)
    expiry = expires_at.strftime("%d %b %Y")
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h2 style="color: #1a1a2e;">Documents Shared With You</h2>
  <p>Someone has shared <strong>{document_count} document(s)</strong> with you via TAXBEBO.</p>
  <p><strong>Access expires:</strong> {expiry}</p>
  <div style="margin: 24px 0;">
    <a href="{link}" style="background: #6366f1; color: white; padding: 12px 24px; border-radius: 6px; text-decoration: none; display: inline-block;">
      View Documents
    </a>
  </div>
  <p style="color: #666; font-size: 14px;">
    You will need to verify your email with a one-time code before accessing the documents.
  </p>
  <hr style="border: none; border-top: 1px solid #eee; margin: 24px 0;" />
  <p style="color: #999; font-size: 12px;">
    If you didn't expect this email, you can safely ignore it.
  </p>
</div>
""".strip()


class ResendEmailSender:
    """Sends share notifications through ``POST https://api.resend.com/emails``."""

    def __init__(
        self,
        *,
        api_key: str,
        sender: str,
        endpoint: str = RESEND_EMAILS_URL,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._api_key = api_key
        self._sender = sender
        self._endpoint = endpoint
        self._client = http_client or get_shared_async_client()
        self._timeout = float(timeout_seconds)

    async def send_share_notification(
        self,
        *,
        to: str,
        share_link: str,
        document_count: int,
        expires_at: datetime,
    ) -> EmailResult:
        body = {
            "from": self._sender,
            "to": [to],
            "subject": SHARE_EMAIL_SUBJECT,
            "html": render_share_email(
                share_link=share_link,
                document_count=document_count,
                expires_at=expires_at,
            ),
        }
        try:
            resp = await self._client.post(
                self._endpoint,
                json=body,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("Share email transport error: %s", exc)
            return EmailResult(accepted=False, error=str(exc))

        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        message_id = payload.get("id") if isinstance(payload, dict) else None

        if resp.status_code >= 400 or not message_id:
            reason = (
                payload.get("message") if isinstance(payload, dict) else None
            ) or f"HTTP {resp.status_code}"
            logger.warning("Share email rejected status=%d: %s", resp.status_code, reason)
            return EmailResult(accepted=False, error=str(reason))

        logger.info("Share email accepted id=%s", message_id)
        return EmailResult(accepted=True, message_id=str(message_id))
