from __future__ import annotations
import datetime as dt
from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from .db import Base


def utcnow() -> dt.datetime:
    """Naive UTC timestamp; every DateTime column in this schema is naive UTC."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)

    files = relationship("File", back_populates="owner", cascade="all, delete-orphan", passive_deletes=True)


class File(Base):
    """An uploaded blob plus its direct share-by-code settings."""

    __tablename__ = "files"
    __table_args__ = (
        CheckConstraint("download_count >= 0", name="ck_files_download_count_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    original_name = Column(String, nullable=False)
    file_size = Column(BigInteger, nullable=False, default=0)
    file_type = Column(String, nullable=False, default="application/octet-stream")
    storage_path = Column(String, nullable=False)

    # Direct share by code
    share_code = Column(String, unique=True, nullable=True, index=True)
    is_public = Column(Boolean, nullable=False, default=False)
    password_hash = Column(String, nullable=True)  # bcrypt, never the share code
    download_limit = Column(Integer, nullable=True)
    download_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="files")
    shared_links = relationship("SharedLink", back_populates="file", cascade="all, delete-orphan", passive_deletes=True)
    download_logs = relationship("DownloadLog", back_populates="file", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def is_locked(self) -> bool:
        return self.password_hash is not None


class SharedLink(Base):
    __tablename__ = "shared_links"
    __table_args__ = (
        CheckConstraint("download_count >= 0", name="ck_shared_links_download_count_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    file_id = Column(Integer, ForeignKey("files.id", ondelete="CASCADE"), nullable=False, index=True)
    link_type = Column(String, nullable=False)  # public | email | code
    share_token = Column(String, unique=True, nullable=False, index=True)
    recipient_email = Column(String, nullable=True)
    password_hash = Column(String, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    download_limit = Column(Integer, nullable=True)
    download_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)

    file = relationship("File", back_populates="shared_links")


class DownloadLog(Base):
    """Audit row written once per granted download; never updated."""

    __tablename__ = "download_logs"
    id = Column(Integer, primary_key=True)
    file_id = Column(Integer, ForeignKey("files.id", ondelete="CASCADE"), nullable=False, index=True)
    shared_link_id = Column(Integer, ForeignKey("shared_links.id", ondelete="SET NULL"), nullable=True, index=True)
    downloader_ip = Column(String, nullable=True)
    downloader_user_agent = Column(Text, nullable=True)
    download_method = Column(String, nullable=False)  # code | link | email
    downloaded_at = Column(DateTime, default=utcnow, nullable=False)

    file = relationship("File", back_populates="download_logs")
