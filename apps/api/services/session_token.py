"""Signed token helpers for admin sessions and external-share viewers.

Both token kinds are HS256 JWTs signed with the same secret, so the ``type``
claim is what keeps them apart. Decoding yields a tagged union and each
checker accepts exactly one variant.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from jose import ExpiredSignatureError, JWTError, jwt

from config import settings
from services.share_errors import (
    ShareTokenError,
    ShareTokenExpiredError,
    ShareTokenScopeError,
)


SESSION_TOKEN_TYPE = "session"
SHARE_TOKEN_TYPE = "external_share"


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    email: Optional[str] = None
    kind: str = SESSION_TOKEN_TYPE


@dataclass(frozen=True)
class ShareClaims:
    share_code: str
    share_id: str
    expires_at: int
    kind: str = SHARE_TOKEN_TYPE


TokenClaims = Union[SessionClaims, ShareClaims]


def create_session_token(
    user_id: str,
    email: Optional[str] = None,
    expires_hours: Optional[int] = None,
) -> Dict[str, Any]:
    """Create a signed session token payload for API authentication."""
    now = datetime.now(timezone.utc)
    ttl_hours = int(expires_hours or settings.JWT_EXPIRATION_HOURS or 8)
    expires_at = now + timedelta(hours=max(ttl_hours, 1))
    claims: Dict[str, Any] = {
        "sub": user_id,
        "type": SESSION_TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if email:
        claims["email"] = email

    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return {
        "token": token,
        "expires_at": int(expires_at.timestamp()),
    }


def create_share_token(
    share_code: str,
    share_id: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Mint a non-renewable viewer token scoped to one share code."""
    issued_at = now or datetime.now(timezone.utc)
    ttl_seconds = int(settings.SHARE_TOKEN_TTL_SECONDS)
    expires_at = issued_at + timedelta(seconds=ttl_seconds)
    claims = {
        "share_code": share_code,
        "share_id": share_id,
        "type": SHARE_TOKEN_TYPE,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return {
        "token": token,
        "expires_in": ttl_seconds,
        "expires_at": int(expires_at.timestamp()),
    }


def decode_token(token: str) -> TokenClaims:
    """Verify signature and expiry, then map claims onto their variant.

    Raises ``ExpiredSignatureError`` for expired tokens and ``ValueError``
    for anything else that is not a well-formed token of a known kind.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise
    except JWTError as exc:
        raise ValueError("Invalid token.") from exc

    token_type = str(payload.get("type", "")).strip()
    if token_type == SESSION_TOKEN_TYPE:
        subject = str(payload.get("sub", "")).strip()
        if not subject:
            raise ValueError("Session token missing subject.")
        return SessionClaims(user_id=subject, email=str(payload.get("email", "")) or None)

    if token_type == SHARE_TOKEN_TYPE:
        share_code = str(payload.get("share_code", "")).strip()
        share_id = str(payload.get("share_id", "")).strip()
        if not share_code or not share_id:
            raise ValueError("Share token missing scope.")
        return ShareClaims(share_code=share_code, share_id=share_id, expires_at=int(payload["exp"]))

    raise ValueError("Unknown token type.")


def decode_session_token(token: str) -> SessionClaims:
    """Decode and validate a signed admin session token."""
    try:
        claims = decode_token(token)
    except ExpiredSignatureError as exc:
        raise ValueError("Invalid or expired session token.") from exc
    if not isinstance(claims, SessionClaims):
        raise ValueError("Invalid session token type.")
    return claims


def decode_share_token(token: str, share_code: str) -> ShareClaims:
    """Validate a viewer token against the share code in the request path."""
    try:
        claims = decode_token(token)
    except ExpiredSignatureError as exc:
        raise ShareTokenExpiredError() from exc
    except ValueError as exc:
        raise ShareTokenError() from exc

    if not isinstance(claims, ShareClaims):
        raise ShareTokenError("Token is not a share token.")
    if claims.share_code != share_code:
        raise ShareTokenScopeError()
    return claims
