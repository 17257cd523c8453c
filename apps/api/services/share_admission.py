"""Password admission for external shares.

Order of checks for one verify call:

1. input shape (no storage access),
2. lockout marker for (share code, client IP),
3. share existence, active flag, expiry,
4. password comparison, updating the attempt ledger on mismatch,
5. on success: reset the ledger, bump view count, mint a share token.

Every outcome after step 2 is written to the access log on a best-effort basis.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.external_share import ExternalShare
from services.attempt_ledger import AttemptLedger
from services.crypto import verify_password_async
from services.kv_store import KeyValueStore
from services.session_token import create_share_token
from services.share_audit import record_share_access
from services.share_codes import is_valid_share_code, is_valid_share_password
from services.share_errors import (
    ShareAccessError,
    ShareExpiredError,
    ShareInactiveError,
    ShareLockedError,
    ShareNotFoundError,
    SharePasswordMismatchError,
    ShareValidationError,
)
from services.share_state import is_share_expired, utcnow


logger = logging.getLogger(__name__)


async def _load_share_by_code(db: AsyncSession, share_code: str) -> Optional[ExternalShare]:
    result = await db.execute(select(ExternalShare).where(ExternalShare.share_code == share_code))
    return result.scalar_one_or_none()


async def verify_share_password(
    *,
    share_code: str,
    password: Any,
    client_ip: str,
    db: AsyncSession,
    store: KeyValueStore,
    user_agent: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Admit a viewer to a share or raise a ``ShareAccessError``."""
    if not is_valid_share_code(share_code):
        raise ShareValidationError("Invalid share code.")
    if not is_valid_share_password(password):
        raise ShareValidationError("Password must be exactly 4 digits.")

    ledger = AttemptLedger(store)
    if await ledger.is_locked(share_code, client_ip):
        logger.info("Rejected locked-out verify share=%s ip=%s", share_code, client_ip)
        raise ShareLockedError()

    current_time = now or utcnow()
    share = await _load_share_by_code(db, share_code)
    share_id = share.id if share is not None else None

    async def audit(success: bool, outcome: str) -> None:
        await record_share_access(
            db,
            share_id=share_id,
            share_code=share_code,
            client_ip=client_ip,
            user_agent=user_agent,
            success=success,
            outcome=outcome,
        )

    failure: Optional[ShareAccessError] = None
    if share is None:
        failure = ShareNotFoundError()
    elif not share.is_active:
        failure = ShareInactiveError()
    elif is_share_expired(share.expires_at, current_time):
        failure = ShareExpiredError()
    if failure is not None:
        await audit(False, failure.code)
        raise failure

    password_hash = share.password_hash
    if not await verify_password_async(password_hash, password):
        result = await ledger.record_failure(share_code, client_ip)
        if result.locked:
            logger.warning(
                "Share verify lockout engaged share=%s ip=%s attempts=%s",
                share_code,
                client_ip,
                result.failed_attempts,
            )
        await audit(False, SharePasswordMismatchError.code)
        raise SharePasswordMismatchError(result.remaining_attempts)

    await ledger.reset(share_code, client_ip)
    await audit(True, "success")

    await db.execute(
        update(ExternalShare)
        .where(ExternalShare.id == share_id)
        .values(
            view_count=ExternalShare.view_count + 1,
            last_accessed_at=current_time,
        )
    )
    await db.commit()

    session = create_share_token(share_code, share_id, now=current_time)
    return {
        "token": session["token"],
        "expires_in": session["expires_in"],
        "share_code": share_code,
    }
