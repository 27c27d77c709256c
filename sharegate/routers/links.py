from __future__ import annotations
import logging
import secrets
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from ..config import get_settings
from ..credentials import hash_share_password
from ..db import get_db
from ..mailer import EmailService
from ..models import File, SharedLink, User
from ..schemas import EmailShareCreate, EmailShareResponse, LinkType, RevokeResponse, SharedLinkCreate, SharedLinkOut
from ..security import get_current_user
from ..service import ShareAccessService, get_access_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shared-links", tags=["shared-links"])
system_router = APIRouter(prefix="/system", tags=["system"])

TOKEN_ATTEMPTS = 5


def _owned_file(db: Session, file_id: int, user: User) -> File:
    f = db.get(File, file_id)
    if not f or f.owner_id != user.id:
        raise HTTPException(status_code=404, detail="File not found")
    return f


def _create_link(db: Session, file: File, link_type: LinkType, *, recipient_email=None, password=None,
                 download_limit=None, expires_at=None, commit: bool = True) -> SharedLink:
    """Insert a link under a fresh token.

    With ``commit=False`` the row is only flushed, so the token cannot be
    used until the caller commits.
    """
    password_hash = hash_share_password(password) if password else None
    nbytes = get_settings().share_token_bytes
    for attempt in range(TOKEN_ATTEMPTS):
        link = SharedLink(
            file_id=file.id,
            link_type=link_type.value,
            share_token=secrets.token_urlsafe(nbytes),
            recipient_email=recipient_email,
            password_hash=password_hash,
            download_limit=download_limit,
            expires_at=expires_at,
        )
        db.add(link)
        try:
            if commit:
                db.commit()
            else:
                db.flush()
        except IntegrityError:
            db.rollback()
            logger.warning(f"Share token collision on attempt {attempt + 1}, retrying")
            continue
        if commit:
            db.refresh(link)
            logger.info(f"Created {link_type.value} link {link.id} for file {file.id}")
        return link
    raise HTTPException(status_code=500, detail="Could not allocate a unique share token")


def share_url(token: str) -> str:
    return f"{get_settings().app_url.rstrip('/')}/receive/{token}"


@router.post("", response_model=SharedLinkOut)
def create_link(payload: SharedLinkCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    f = _owned_file(db, payload.file_id, current_user)
    if payload.link_type is LinkType.email and not payload.recipient_email:
        raise HTTPException(status_code=400, detail="recipientEmail is required for email links")
    link = _create_link(
        db, f, payload.link_type,
        recipient_email=payload.recipient_email,
        password=payload.password,
        download_limit=payload.download_limit,
        expires_at=payload.expires_at,
    )
    return SharedLinkOut.from_row(link)


@router.post("/email", response_model=EmailShareResponse)
def create_email_link(payload: EmailShareCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Create an email link and send it.

    The link stays uncommitted while the email is sent, so its token is
    never usable unless delivery succeeded.
    """
    f = _owned_file(db, payload.file_id, current_user)
    file_id, file_name = f.id, f.original_name
    link = _create_link(
        db, f, LinkType.email,
        recipient_email=payload.recipient_email,
        password=payload.password,
        download_limit=payload.download_limit,
        expires_at=payload.expires_at,
        commit=False,
    )
    url = share_url(link.share_token)
    sent = EmailService.send_share_email(payload.recipient_email, current_user.email, file_name, url, payload.message)
    if not sent:
        db.rollback()
        configured = EmailService.is_configured()
        logger.warning(f"Dropped email link for file {file_id}; delivery to {payload.recipient_email} failed")
        return JSONResponse(
            status_code=502 if configured else 500,
            content={"detail": "Failed to send share email", "emailConfigured": configured},
        )
    db.commit()
    db.refresh(link)
    logger.info(f"Created email link {link.id} for file {file_id}")
    return EmailShareResponse(shared_link=SharedLinkOut.from_row(link), share_url=url, email_sent=True)


@router.post("/{link_id}/revoke", response_model=RevokeResponse)
def revoke_link(
    link_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: ShareAccessService = Depends(get_access_service),
):
    link = db.get(SharedLink, link_id)
    if not link or link.file.owner_id != current_user.id:
        raise HTTPException(status_code=404, detail="Share link not found")
    return RevokeResponse(revoked=service.revoke(link_id))


@system_router.get("/email-status")
def email_status(current_user: User = Depends(get_current_user)):
    configured = EmailService.is_configured()
    return {"configured": configured, "features": {"emailSharing": configured}}
