from __future__ import annotations

import datetime as dt
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from pydantic import BaseModel
from sqlalchemy import delete, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import InfrastructureFault
from .grants import AnyTarget, DirectCode, IndirectLink
from .models import DownloadLog, File, SharedLink

logger = logging.getLogger(__name__)


class FileRef(BaseModel):
    """What the transport needs to stream a granted file from the blob store."""

    model_config = {"frozen": True}

    file_id: int
    storage_path: str
    original_name: str
    file_type: str
    file_size: int


class RequesterContext(BaseModel):
    ip: Optional[str] = None
    user_agent: Optional[str] = None


def _direct_code(row: File) -> DirectCode:
    return DirectCode(
        target_id=row.id,
        file_id=row.id,
        is_public=bool(row.is_public),
        password_hash=row.password_hash,
        expires_at=row.expires_at,
        download_limit=row.download_limit,
        download_count=row.download_count or 0,
    )


def _indirect_link(row: SharedLink) -> IndirectLink:
    return IndirectLink(
        target_id=row.id,
        file_id=row.file_id,
        link_type=row.link_type,
        recipient_email=row.recipient_email,
        is_active=bool(row.is_active),
        password_hash=row.password_hash,
        expires_at=row.expires_at,
        download_limit=row.download_limit,
        download_count=row.download_count or 0,
    )


def _file_ref(row: File) -> FileRef:
    return FileRef(
        file_id=row.id,
        storage_path=row.storage_path,
        original_name=row.original_name,
        file_type=row.file_type or "application/octet-stream",
        file_size=row.file_size or 0,
    )


def download_method_for(target: AnyTarget) -> str:
    if isinstance(target, DirectCode):
        return "code"
    return "email" if target.link_type == "email" else "link"


class ShareRecordStore:
    """Resolves share identifiers to target snapshots and applies guarded writes.

    Writes are staged on the session; the ledger decides when to commit.
    Every database error surfaces as ``InfrastructureFault``.
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error(f"Share store failed during {action}: {type(exc).__name__}")
            try:
                self.db.rollback()
            except SQLAlchemyError:
                logger.exception("Rollback after share store failure also failed")
            raise InfrastructureFault(f"{action} failed", component="persistence") from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def resolve_by_code(self, code: str) -> DirectCode | None:
        with self._guard("resolve_by_code"):
            row = self.db.query(File).filter(File.share_code == code).one_or_none()
        return _direct_code(row) if row else None

    def resolve_by_token(self, token: str) -> tuple[IndirectLink, FileRef] | None:
        with self._guard("resolve_by_token"):
            found = (
                self.db.query(SharedLink, File)
                .join(File, SharedLink.file_id == File.id)
                .filter(SharedLink.share_token == token)
                .one_or_none()
            )
        if not found:
            return None
        link, file = found
        return _indirect_link(link), _file_ref(file)

    def file_ref(self, file_id: int) -> FileRef | None:
        with self._guard("file_ref"):
            row = self.db.get(File, file_id)
        return _file_ref(row) if row else None

    def reload(self, target: AnyTarget) -> AnyTarget | None:
        """Fresh snapshot straight from the database, bypassing the identity map."""
        with self._guard("reload"):
            if isinstance(target, DirectCode):
                row = self.db.query(File).populate_existing().filter(File.id == target.target_id).one_or_none()
                return _direct_code(row) if row else None
            row = self.db.query(SharedLink).populate_existing().filter(SharedLink.id == target.target_id).one_or_none()
            return _indirect_link(row) if row else None

    # ------------------------------------------------------------------
    # Guarded writes (staged, not committed)
    # ------------------------------------------------------------------
    def conditional_increment(self, target: AnyTarget, now: dt.datetime) -> bool:
        """Bump the counter only while every state predicate still holds.

        This single UPDATE is what keeps ``download_count <= download_limit``
        under concurrent consumers; returns False when no row matched.
        """
        model = File if isinstance(target, DirectCode) else SharedLink
        predicates = [
            model.id == target.target_id,
            or_(model.download_limit.is_(None), model.download_count < model.download_limit),
            or_(model.expires_at.is_(None), model.expires_at >= now),
        ]
        if model is File:
            predicates.append(File.is_public.is_(True))
        else:
            predicates.append(SharedLink.is_active.is_(True))
        stmt = (
            update(model)
            .where(*predicates)
            .values(download_count=model.download_count + 1)
            .execution_options(synchronize_session=False)
        )
        with self._guard("conditional_increment"):
            result = self.db.execute(stmt)
        return result.rowcount == 1

    def insert_audit(self, target: AnyTarget, requester: RequesterContext, now: dt.datetime) -> DownloadLog:
        entry = DownloadLog(
            file_id=target.file_id,
            shared_link_id=target.target_id if isinstance(target, IndirectLink) else None,
            downloader_ip=requester.ip,
            downloader_user_agent=requester.user_agent,
            download_method=download_method_for(target),
            downloaded_at=now,
        )
        with self._guard("insert_audit"):
            self.db.add(entry)
            self.db.flush()
        return entry

    def deactivate(self, link_id: int) -> bool:
        stmt = (
            update(SharedLink)
            .where(SharedLink.id == link_id, SharedLink.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        with self._guard("deactivate"):
            result = self.db.execute(stmt)
        return result.rowcount == 1

    def cascade_delete_by_file(self, file_id: int) -> FileRef | None:
        """Remove a file with its links and audit history; returns its blob reference."""
        with self._guard("cascade_delete_by_file"):
            row = self.db.get(File, file_id)
            if row is None:
                return None
            ref = _file_ref(row)
            self.db.execute(
                delete(DownloadLog).where(DownloadLog.file_id == file_id).execution_options(synchronize_session=False)
            )
            self.db.execute(
                delete(SharedLink).where(SharedLink.file_id == file_id).execution_options(synchronize_session=False)
            )
            self.db.execute(delete(File).where(File.id == file_id).execution_options(synchronize_session=False))
            self.db.expunge(row)
        return ref

    # ------------------------------------------------------------------
    # Transaction control
    # ------------------------------------------------------------------
    def commit(self) -> None:
        with self._guard("commit"):
            self.db.commit()

    def rollback(self) -> None:
        with self._guard("rollback"):
            self.db.rollback()
