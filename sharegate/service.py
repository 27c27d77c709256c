"""
Share access service: the three operations the HTTP layer calls.

    check_access    read only, evaluator only
    consume_access  evaluator, then the ledger's atomic commit
    revoke          deactivate a share link forever

Denials come back as values; only ``ValidationFault`` and
``InfrastructureFault`` are raised.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Literal, Optional

from fastapi import Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from . import ledger
from .blobs import get_blob_store
from .config import get_settings
from .db import get_db
from .errors import InfrastructureFault, ValidationFault
from .grants import AnyTarget, DenyReason, DirectCode, IndirectLink, evaluate
from .models import utcnow
from .records import FileRef, RequesterContext, ShareRecordStore

logger = logging.getLogger(__name__)

Clock = Callable[[], dt.datetime]


class ShareIdentifier(BaseModel):
    kind: Literal["code", "token"]
    value: str

    @classmethod
    def parse(cls, kind: str, value: str | None) -> "ShareIdentifier":
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValidationFault("Share identifier is required", field=kind)
        if len(cleaned) > get_settings().max_identifier_length:
            raise ValidationFault("Share identifier is too long", field=kind)
        if kind not in ("code", "token"):
            raise ValidationFault(f"Unknown identifier kind '{kind}'", field="kind")
        return cls(kind=kind, value=cleaned)


class AccessCheck(BaseModel):
    allowed: bool
    reason: Optional[DenyReason] = None
    target_summary: Optional[dict[str, Any]] = None


class AccessGrant(BaseModel):
    allowed: bool
    reason: Optional[DenyReason] = None
    file_ref: Optional[FileRef] = None
    audit_id: Optional[int] = None


def _summary(target: AnyTarget, ref: FileRef) -> dict[str, Any]:
    summary = {
        "fileId": ref.file_id,
        "originalName": ref.original_name,
        "fileSize": ref.file_size,
        "fileType": ref.file_type,
        "downloadCount": target.download_count,
        "downloadLimit": target.download_limit,
        "expiresAt": target.expires_at,
        "passwordProtected": target.has_password,
    }
    if isinstance(target, IndirectLink):
        summary["linkType"] = target.link_type
    return summary


class ShareAccessService:
    def __init__(self, db: Session, *, clock: Clock = utcnow, blobs=None):
        self.store = ShareRecordStore(db)
        self.clock = clock
        self._blobs = blobs

    @property
    def blobs(self):
        if self._blobs is None:
            self._blobs = get_blob_store()
        return self._blobs

    def _resolve(self, identifier: ShareIdentifier) -> tuple[AnyTarget | None, FileRef | None]:
        if identifier.kind == "code":
            target = self.store.resolve_by_code(identifier.value)
            if target is None:
                return None, None
            return target, self.store.file_ref(target.file_id)
        found = self.store.resolve_by_token(identifier.value)
        if found is None:
            return None, None
        return found

    def check_access(self, identifier: ShareIdentifier, password: str | None = None) -> AccessCheck:
        target, ref = self._resolve(identifier)
        decision = evaluate(target, self.clock(), password)
        if not decision.allowed:
            logger.debug(f"Access check denied for {identifier.kind}: {decision.reason.value}")
            return AccessCheck(allowed=False, reason=decision.reason)
        return AccessCheck(allowed=True, target_summary=_summary(target, ref))

    def consume_access(
        self,
        identifier: ShareIdentifier,
        password: str | None,
        requester: RequesterContext,
    ) -> AccessGrant:
        target, ref = self._resolve(identifier)
        decision = evaluate(target, self.clock(), password)
        if not decision.allowed:
            logger.debug(f"Download denied for {identifier.kind}: {decision.reason.value}")
            return AccessGrant(allowed=False, reason=decision.reason)

        # Do not count a download we cannot serve
        if ref is None or not self.blobs.exists(ref.storage_path):
            logger.warning(f"Blob missing for file {target.file_id}; refusing to count download")
            return AccessGrant(allowed=False, reason=DenyReason.NOT_FOUND)

        result = ledger.commit(self.store, target, requester, self.clock())
        if not result.committed:
            return AccessGrant(allowed=False, reason=result.decision.reason)
        return AccessGrant(allowed=True, file_ref=ref, audit_id=result.audit_id)

    def revoke(self, link_id: int) -> bool:
        """Deactivate a share link. There is no way back to active.

        Returns False when the link is unknown or already inactive.
        """
        changed = self.store.deactivate(link_id)
        self.store.commit()
        if changed:
            logger.info(f"Share link {link_id} revoked")
        return changed

    def revoke_target(self, target: AnyTarget) -> bool:
        if isinstance(target, DirectCode):
            raise ValidationFault("Only share links can be revoked", field="target")
        return self.revoke(target.target_id)

    def delete_file(self, file_id: int) -> bool:
        """Delete a file, its links and its audit history, then its blob."""
        ref = self.store.cascade_delete_by_file(file_id)
        if ref is None:
            return False
        self.store.commit()
        try:
            self.blobs.delete(ref.storage_path)
        except InfrastructureFault as e:
            logger.error(f"File {file_id} deleted but blob {ref.storage_path} was left behind: {e}")
            return True
        logger.info(f"Deleted file {file_id} and blob {ref.storage_path}")
        return True


def get_access_service(db: Session = Depends(get_db)) -> ShareAccessService:
    return ShareAccessService(db)
