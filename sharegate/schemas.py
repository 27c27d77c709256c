from __future__ import annotations
import datetime as dt
from enum import Enum
from pydantic import BaseModel, Field, field_validator


def _camel(s: str) -> str:
    head, *rest = s.split('_')
    return head + ''.join(w.capitalize() for w in rest)


def _naive_utc(value: dt.datetime | None) -> dt.datetime | None:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return value


class CamelModel(BaseModel):
    model_config = {"populate_by_name": True, "alias_generator": _camel, "from_attributes": True}


class LinkType(str, Enum):
    public = "public"
    email = "email"
    code = "code"

# ---- Files

class FileCreate(CamelModel):
    original_name: str = Field(min_length=1, max_length=255)
    file_size: int | None = Field(default=None, ge=0)
    file_type: str = "application/octet-stream"
    storage_path: str = Field(min_length=1)
    generate_share_code: bool = False
    is_public: bool = False
    password: str | None = Field(default=None, min_length=1)
    download_limit: int | None = Field(default=None, ge=1)
    expires_at: dt.datetime | None = None

    normalize_expiry = field_validator("expires_at")(_naive_utc)


class FileOut(CamelModel):
    id: int
    original_name: str
    file_size: int
    file_type: str
    share_code: str | None = None
    is_public: bool
    is_locked: bool
    download_limit: int | None = None
    download_count: int
    expires_at: dt.datetime | None = None
    created_at: dt.datetime | None = None


class DownloadLogOut(CamelModel):
    id: int
    file_id: int
    shared_link_id: int | None = None
    downloader_ip: str | None = None
    downloader_user_agent: str | None = None
    download_method: str
    downloaded_at: dt.datetime

# ---- Share links

class SharedLinkCreate(CamelModel):
    file_id: int
    link_type: LinkType = LinkType.public
    recipient_email: str | None = None
    password: str | None = Field(default=None, min_length=1)
    download_limit: int | None = Field(default=None, ge=1)
    expires_at: dt.datetime | None = None

    normalize_expiry = field_validator("expires_at")(_naive_utc)


class EmailShareCreate(CamelModel):
    file_id: int
    recipient_email: str = Field(min_length=3)
    message: str | None = None
    password: str | None = Field(default=None, min_length=1)
    download_limit: int | None = Field(default=None, ge=1)
    expires_at: dt.datetime | None = None

    normalize_expiry = field_validator("expires_at")(_naive_utc)


class SharedLinkOut(CamelModel):
    id: int
    file_id: int
    link_type: str
    share_token: str
    recipient_email: str | None = None
    password_protected: bool = False
    download_limit: int | None = None
    download_count: int
    expires_at: dt.datetime | None = None
    is_active: bool
    created_at: dt.datetime | None = None

    @classmethod
    def from_row(cls, row) -> "SharedLinkOut":
        out = cls.model_validate(row)
        out.password_protected = row.password_hash is not None
        return out


class EmailShareResponse(CamelModel):
    shared_link: SharedLinkOut
    share_url: str
    email_sent: bool

# ---- Public access

class DownloadRequest(CamelModel):
    password: str | None = None


class RevokeResponse(CamelModel):
    revoked: bool


class DeleteResponse(CamelModel):
    deleted: bool
