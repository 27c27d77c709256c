from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ..blobs import BlobNotFound
from ..grants import DenyReason
from ..records import RequesterContext
from ..schemas import DownloadRequest
from ..service import AccessCheck, AccessGrant, ShareAccessService, ShareIdentifier, get_access_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["public"])

_UNAVAILABLE = (404, "unavailable", "Share not found or access denied")

# Unknown, private and wrong-password answers are identical so callers
# cannot tell a protected share from a missing one.
DENIAL_RESPONSES: dict[DenyReason, tuple[int, str, str]] = {
    DenyReason.NOT_FOUND: _UNAVAILABLE,
    DenyReason.NOT_PUBLIC: _UNAVAILABLE,
    DenyReason.PASSWORD_INVALID: _UNAVAILABLE,
    DenyReason.INACTIVE: (410, "inactive", "Share link is no longer active"),
    DenyReason.EXPIRED: (410, "expired", "Share has expired"),
    DenyReason.LIMIT_REACHED: (410, "limit_reached", "Download limit reached"),
    DenyReason.PASSWORD_REQUIRED: (401, "password_required", "Password required"),
}


def denial_response(reason: DenyReason) -> JSONResponse:
    status_code, code, detail = DENIAL_RESPONSES[reason]
    content = {"detail": detail, "code": code}
    if reason is DenyReason.PASSWORD_REQUIRED:
        content["requiresPassword"] = True
    return JSONResponse(status_code=status_code, content=content)


def _requester(request: Request) -> RequesterContext:
    return RequesterContext(
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def _check_payload(check: AccessCheck):
    if not check.allowed:
        return denial_response(check.reason)
    return check.target_summary


def _stream(service: ShareAccessService, grant: AccessGrant):
    if not grant.allowed:
        return denial_response(grant.reason)
    ref = grant.file_ref
    try:
        chunks = service.blobs.read_bytes(ref.storage_path)
    except BlobNotFound:
        # The download is already counted; that is final
        logger.error(f"Blob {ref.storage_path} vanished after download {grant.audit_id} was committed")
        raise HTTPException(status_code=404, detail="File not found on server")
    return StreamingResponse(
        chunks,
        media_type=ref.file_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(ref.original_name)}",
            "Content-Length": str(ref.file_size),
        },
    )


@router.get("/public/files/{share_code}")
def public_file_info(
    share_code: str,
    password: Optional[str] = Query(default=None),
    service: ShareAccessService = Depends(get_access_service),
):
    identifier = ShareIdentifier.parse("code", share_code)
    return _check_payload(service.check_access(identifier, password))


@router.post("/public/files/{share_code}/download")
def public_file_download(
    share_code: str,
    request: Request,
    payload: Optional[DownloadRequest] = None,
    service: ShareAccessService = Depends(get_access_service),
):
    identifier = ShareIdentifier.parse("code", share_code)
    password = payload.password if payload else None
    grant = service.consume_access(identifier, password, _requester(request))
    return _stream(service, grant)


@router.get("/shared/{token}")
def shared_link_info(
    token: str,
    password: Optional[str] = Query(default=None),
    service: ShareAccessService = Depends(get_access_service),
):
    identifier = ShareIdentifier.parse("token", token)
    return _check_payload(service.check_access(identifier, password))


@router.post("/shared/{token}/download")
def shared_link_download(
    token: str,
    request: Request,
    payload: Optional[DownloadRequest] = None,
    service: ShareAccessService = Depends(get_access_service),
):
    identifier = ShareIdentifier.parse("token", token)
    password = payload.password if payload else None
    grant = service.consume_access(identifier, password, _requester(request))
    return _stream(service, grant)
