"""Share audit recording and log redaction.

Audit rows are written once per issued grant and stamped once when the
recipient passes OTP verification. Writes are best-effort: a failed audit
write is logged and never fails the share operation it describes.

Security invariant:
  Plaintext tokens never appear in logs; only an 8-character prefix is
  kept for correlation.
"""

from __future__ import annotations

import logging
from datetime import datetime

from .model import AuditEntry, ShareGrant

logger = logging.getLogger(__name__)

TOKEN_PREFIX_LENGTH = 8


def redact_token(token: str | None) -> str:
    """Return ``<prefix>...`` or ``<redacted>`` for missing/short tokens."""
    if not token or len(token) < TOKEN_PREFIX_LENGTH:
        return '<redacted>'
    return f'{token[:TOKEN_PREFIX_LENGTH]}...'


async def record_issuance(audit_repo, grant: ShareGrant) -> AuditEntry | None:
    """Append the issuance audit row for ``grant`` (best-effort)."""
    entry = AuditEntry.for_grant(grant)
    try:
        return await audit_repo.append(entry)
    except Exception:
        logger.exception('Audit append failed for share=%s', grant.id)
        return None


async def record_otp_verified(audit_repo, share_id: str, verified_at: datetime) -> None:
    """Stamp the first OTP verification time (best-effort)."""
    try:
        await audit_repo.mark_otp_verified(share_id, verified_at)
    except Exception:
        logger.exception('Audit OTP stamp failed for share=%s', share_id)
