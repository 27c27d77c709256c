"""
Access decisions for share targets.

``evaluate`` is pure: it reads the target snapshot and the supplied password
and returns a ``Decision``. It is called once to decide and again (through
``evaluate_state``) by the ledger after a lost race, so it must never touch
storage.

Check order is part of the contract because it controls what an
unauthenticated caller learns:

    NOT_FOUND > INACTIVE > NOT_PUBLIC > EXPIRED > LIMIT_REACHED
        > PASSWORD_REQUIRED > PASSWORD_INVALID > ALLOW

Expired or exhausted targets never prompt for a password.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel

from .credentials import verify_share_password


class DenyReason(str, Enum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    NOT_PUBLIC = "not_public"
    EXPIRED = "expired"
    LIMIT_REACHED = "limit_reached"
    PASSWORD_REQUIRED = "password_required"
    PASSWORD_INVALID = "password_invalid"


class Decision(BaseModel):
    model_config = {"frozen": True}

    allowed: bool
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(allowed=False, reason=reason)


class ShareTarget(BaseModel):
    """Fields shared by both ways of reaching a file."""

    model_config = {"frozen": True}

    target_id: int
    file_id: int
    password_hash: Optional[str] = None
    expires_at: Optional[dt.datetime] = None
    download_limit: Optional[int] = None
    download_count: int = 0

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None


class DirectCode(ShareTarget):
    kind: Literal["code"] = "code"
    is_public: bool = False


class IndirectLink(ShareTarget):
    kind: Literal["link"] = "link"
    link_type: str = "public"
    recipient_email: Optional[str] = None
    is_active: bool = True


AnyTarget = Union[DirectCode, IndirectLink]


def evaluate_state(target: AnyTarget | None, now: dt.datetime) -> Decision:
    """Steps that depend only on stored state, not on the caller's secret."""
    if target is None:
        return Decision.deny(DenyReason.NOT_FOUND)
    if isinstance(target, IndirectLink) and not target.is_active:
        return Decision.deny(DenyReason.INACTIVE)
    if isinstance(target, DirectCode) and not target.is_public:
        return Decision.deny(DenyReason.NOT_PUBLIC)
    if target.expires_at is not None and now > target.expires_at:
        return Decision.deny(DenyReason.EXPIRED)
    if target.download_limit is not None and target.download_count >= target.download_limit:
        return Decision.deny(DenyReason.LIMIT_REACHED)
    return Decision.allow()


def evaluate(target: AnyTarget | None, now: dt.datetime, supplied_password: str | None = None) -> Decision:
    decision = evaluate_state(target, now)
    if not decision.allowed:
        return decision
    if target.has_password:
        if not supplied_password:
            return Decision.deny(DenyReason.PASSWORD_REQUIRED)
        if not verify_share_password(supplied_password, target.password_hash):
            return Decision.deny(DenyReason.PASSWORD_INVALID)
    return decision
