"""Authentication dependencies for admin sessions and share viewers."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Path
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.user import User
from services.session_token import ShareClaims, decode_session_token, decode_share_token
from services.share_errors import ShareTokenMissingError


auth_scheme = HTTPBearer(auto_error=False)

ADMIN_ROLE = "ADMIN"


@dataclass
class AuthContext:
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> AuthContext:
    """Resolve authenticated user from Bearer session token."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing Bearer session token.")

    try:
        claims = decode_session_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    return AuthContext(user_id=claims.user_id, email=claims.email)


async def require_admin(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """Allow only active ADMIN accounts through."""
    result = await db.execute(select(User).where(User.id == auth.user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found.")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled.")
    if user.role != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin access required.")
    return AuthContext(user_id=user.id, email=user.email, role=user.role)


async def get_share_claims(
    share_code: str = Path(...),
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> ShareClaims:
    """Resolve a viewer token and bind it to the share code in the path."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise ShareTokenMissingError()
    return decode_share_token(credentials.credentials, share_code)
