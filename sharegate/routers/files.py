from __future__ import annotations
import logging
import secrets
import string
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from ..blobs import BlobNotFound, get_blob_store
from ..config import get_settings
from ..credentials import hash_share_password
from ..db import get_db
from ..models import DownloadLog, File, SharedLink, User
from ..schemas import DeleteResponse, DownloadLogOut, FileCreate, FileOut, SharedLinkOut
from ..security import get_current_user
from ..service import ShareAccessService, get_access_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["files"])

SHARE_CODE_ALPHABET = string.ascii_uppercase + string.digits
SHARE_CODE_ATTEMPTS = 5


def _share_code() -> str:
    length = get_settings().share_code_length
    return ''.join(secrets.choice(SHARE_CODE_ALPHABET) for _ in range(length))


def _owned_file(db: Session, file_id: int, user: User) -> File:
    f = db.get(File, file_id)
    if not f or f.owner_id != user.id:
        raise HTTPException(status_code=404, detail="File not found")
    return f


@router.post("", response_model=FileOut)
def register_file(payload: FileCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Record an already-uploaded blob and its direct-share settings.

    The stored size always comes from the blob store; downloads send it as
    Content-Length after the download has been counted.
    """
    try:
        actual_size = get_blob_store().size(payload.storage_path)
    except BlobNotFound:
        raise HTTPException(status_code=400, detail="Object not found in blob store")
    if payload.file_size is not None and payload.file_size != actual_size:
        raise HTTPException(
            status_code=400,
            detail=f"fileSize {payload.file_size} does not match stored object size {actual_size}",
        )
    password_hash = hash_share_password(payload.password) if payload.password else None
    for attempt in range(SHARE_CODE_ATTEMPTS):
        f = File(
            owner_id=current_user.id,
            original_name=payload.original_name,
            file_size=actual_size,
            file_type=payload.file_type,
            storage_path=payload.storage_path,
            share_code=_share_code() if payload.generate_share_code else None,
            is_public=payload.is_public,
            password_hash=password_hash,
            download_limit=payload.download_limit,
            expires_at=payload.expires_at,
        )
        db.add(f)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(f"Share code collision on attempt {attempt + 1}, retrying")
            continue
        db.refresh(f)
        logger.info(f"Registered file {f.id} for user {current_user.id}")
        return f
    raise HTTPException(status_code=500, detail="Could not allocate a unique share code")


@router.get("", response_model=List[FileOut])
def list_files(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return db.query(File).filter(File.owner_id == current_user.id).order_by(File.created_at.desc()).all()


@router.get("/{file_id}", response_model=FileOut)
def get_file(file_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _owned_file(db, file_id, current_user)


@router.delete("/{file_id}", response_model=DeleteResponse)
def delete_file(
    file_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: ShareAccessService = Depends(get_access_service),
):
    _owned_file(db, file_id, current_user)
    return DeleteResponse(deleted=service.delete_file(file_id))


@router.get("/{file_id}/downloads", response_model=List[DownloadLogOut])
def file_downloads(file_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    _owned_file(db, file_id, current_user)
    return (
        db.query(DownloadLog)
        .filter(DownloadLog.file_id == file_id)
        .order_by(DownloadLog.downloaded_at.desc(), DownloadLog.id.desc())
        .all()
    )


@router.get("/{file_id}/links", response_model=List[SharedLinkOut])
def file_links(file_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    _owned_file(db, file_id, current_user)
    links = db.query(SharedLink).filter(SharedLink.file_id == file_id).order_by(SharedLink.id).all()
    return [SharedLinkOut.from_row(link) for link in links]
