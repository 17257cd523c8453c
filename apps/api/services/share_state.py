"""Lifecycle state derivation for external shares.

Expiry is never stored; it is recomputed from ``expires_at`` on every call.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from models.external_share import ExternalShare
from services.share_errors import ShareExpiredError, ShareInactiveError, ShareNotFoundError


STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
STATUS_EXPIRED = "expired"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_share_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    expiry = as_utc(expires_at)
    if expiry is None:
        return False
    return expiry < (now or utcnow())


def share_status(share: ExternalShare, now: Optional[datetime] = None) -> str:
    if is_share_expired(share.expires_at, now):
        return STATUS_EXPIRED
    if not share.is_active:
        return STATUS_INACTIVE
    return STATUS_ACTIVE


def ensure_share_accessible(share: Optional[ExternalShare], now: Optional[datetime] = None) -> ExternalShare:
    """Raise the viewer-facing error for a missing, disabled or expired share."""
    if share is None:
        raise ShareNotFoundError()
    if not share.is_active:
        raise ShareInactiveError()
    if is_share_expired(share.expires_at, now):
        raise ShareExpiredError()
    return share
