"""Share issuance: one grant per recipient over a fixed document set.

Flow for a single request:
  1. Validate ownership and per-document ``share_enabled`` up front. Any
     violation rejects the whole request before a row is written.
  2. Grant Drive link access once per Drive-backed document. The resulting
     ledger is copied onto every recipient's grant.
  3. Per recipient (concurrently): create the grant, email the link, set
     SUCCESS or FAILED, append an audit row.

A failure for one recipient never aborts the others. The plaintext token
exists only in the link handed to the email sender.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from ..storage.locator import ExternalLocator, resolve_locator
from .audit import record_issuance, redact_token
from .errors import ShareValidationError
from .model import (
    DocumentRecord,
    ShareGrant,
    ShareStatus,
    generate_share_token,
    hash_token,
    normalize_recipient_type,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

NOT_OWNED_MESSAGE = 'One or more documents not found or not owned by you'
SHARING_DISABLED_MESSAGE = 'Some documents do not have sharing enabled'


@dataclass(frozen=True, slots=True)
class Recipient:
    email: str
    type: str = 'other'
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class RecipientResult:
    email: str
    share_id: str
    status: ShareStatus
    share_link: str = ''
    # False when the stored row could not be moved off PENDING.
    status_recorded: bool = True

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            'email': self.email,
            'shareId': self.share_id,
            'shareLink': self.share_link,
            'status': self.status.value,
        }
        if not self.status_recorded:
            body['statusRecorded'] = False
        return body


@dataclass
class IssuanceResult:
    results: list[RecipientResult]
    drive_warning: str | None = None

    @property
    def success(self) -> bool:
        return any(r.status is ShareStatus.SUCCESS for r in self.results)

    @property
    def all_failed(self) -> bool:
        return all(r.status is ShareStatus.FAILED for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            'success': self.success,
            'results': [r.to_dict() for r in self.results],
        }
        if self.results:
            # Single-recipient clients read the first result at top level.
            first = self.results[0]
            body.update(
                shareId=first.share_id,
                status=first.status.value,
                shareLink=first.share_link,
            )
        if self.drive_warning:
            body['driveWarning'] = self.drive_warning
        return body


def share_link_for(base_url: str, token: str) -> str:
    return f'{base_url.rstrip("/")}/shared/{token}'


class ShareIssuanceService:
    """Creates share grants and notifies recipients."""

    def __init__(
        self,
        *,
        shares,
        audit,
        documents,
        email_sender,
        synchronizer,
        app_url: str,
    ) -> None:
        self._shares = shares
        self._audit = audit
        self._documents = documents
        self._email = email_sender
        self._sync = synchronizer
        self._app_url = app_url

    async def issue_shares(
        self,
        owner_id: str,
        document_ids: Sequence[str],
        recipients: Sequence[Recipient],
        *,
        allow_download: bool,
        expires_at: datetime | None,
        link_base: str | None = None,
    ) -> IssuanceResult:
        """Issue one grant per recipient.

        Raises:
            ShareValidationError: Missing fields, unowned/missing documents,
                or documents with sharing disabled. Nothing is written.
        """
        doc_ids = [d for d in dict.fromkeys(str(d).strip() for d in document_ids) if d]
        if not doc_ids or not recipients or expires_at is None:
            raise ShareValidationError()

        documents = await self._validate_documents(owner_id, doc_ids)

        drive_file_ids = [
            locator.file_id
            for locator in (self._locator_or_none(d) for d in documents)
            if isinstance(locator, ExternalLocator)
        ]
        grant_result = await self._sync.grant_for_files(owner_id, drive_file_ids)

        base = link_base or self._app_url
        expiry = parse_timestamp(expires_at)
        results = await asyncio.gather(*(
            self._issue_one(
                owner_id,
                tuple(doc_ids),
                recipient,
                allow_download=allow_download,
                expires_at=expiry,
                ledger=grant_result.ledger,
                link_base=base,
            )
            for recipient in recipients
        ))
        outcome = IssuanceResult(results=list(results), drive_warning=grant_result.warning)
        logger.info(
            'Issued shares owner=%s documents=%d recipients=%d succeeded=%d',
            owner_id,
            len(doc_ids),
            len(results),
            sum(1 for r in results if r.status is ShareStatus.SUCCESS),
        )
        return outcome

    async def _validate_documents(
        self, owner_id: str, doc_ids: list[str],
    ) -> list[DocumentRecord]:
        found = await self._documents.get_many(doc_ids)
        owned = {d.id: d for d in found if d.owner_id == owner_id}

        missing = [d for d in doc_ids if d not in owned]
        if missing:
            raise ShareValidationError(NOT_OWNED_MESSAGE, invalid_document_ids=missing)

        disabled = [d for d in doc_ids if not owned[d].share_enabled]
        if disabled:
            raise ShareValidationError(
                SHARING_DISABLED_MESSAGE, invalid_document_ids=disabled,
            )
        return [owned[d] for d in doc_ids]

    @staticmethod
    def _locator_or_none(document: DocumentRecord):
        try:
            return resolve_locator(document.file_path)
        except ValueError:
            logger.warning('Document %s has no usable storage path', document.id)
            return None

    async def _issue_one(
        self,
        owner_id: str,
        document_ids: tuple[str, ...],
        recipient: Recipient,
        *,
        allow_download: bool,
        expires_at: datetime,
        ledger: dict[str, str],
        link_base: str,
    ) -> RecipientResult:
        email = recipient.email.strip()
        token = generate_share_token()
        draft = ShareGrant(
            id='',
            owner_id=owner_id,
            document_ids=document_ids,
            recipient_email=email,
            recipient_type=normalize_recipient_type(recipient.type),
            recipient_metadata=dict(recipient.metadata or {}),
            allow_download=allow_download,
            expires_at=expires_at,
            token_hash=hash_token(token),
            status=ShareStatus.PENDING,
            permission_ledger=dict(ledger),
        )
        try:
            grant = await self._shares.create(draft)
        except Exception:
            logger.exception('Failed to create share grant for recipient=%s', email)
            return RecipientResult(email=email, share_id='', status=ShareStatus.FAILED)

        link = share_link_for(link_base, token)
        try:
            sent = await self._email.send_share_notification(
                to=email,
                share_link=link,
                document_count=len(document_ids),
                expires_at=expires_at,
            )
            accepted = sent.accepted
        except Exception:
            logger.exception('Share email failed for share=%s', grant.id)
            accepted = False

        grant.status = ShareStatus.SUCCESS if accepted else ShareStatus.FAILED
        status_recorded = True
        try:
            await self._shares.set_status(grant.id, grant.status)
        except Exception:
            logger.exception(
                'Failed to record status=%s for share=%s; row left PENDING',
                grant.status.value,
                grant.id,
            )
            status_recorded = False

        await record_issuance(self._audit, grant)
        logger.info(
            'Share %s issued to %s token=%s status=%s',
            grant.id,
            email,
            redact_token(token),
            grant.status.value,
        )
        return RecipientResult(
            email=email,
            share_id=grant.id,
            status=grant.status,
            share_link=link,
            status_recorded=status_recorded,
        )
