"""Structured failures raised by the external-share subsystem.

Every error renders as ``{"detail": {"code": ..., "message": ..., ...}}`` so
clients can branch on ``code`` instead of parsing the message.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException


class ShareAccessError(HTTPException):
    status_code = 400
    code = "share_error"
    message = "External share request failed."

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        self.message = message or self.message
        self.extra = extra
        detail: Dict[str, Any] = {"code": self.code, "message": self.message}
        detail.update(extra)
        super().__init__(status_code=self.status_code, detail=detail)


class ShareValidationError(ShareAccessError):
    status_code = 400
    code = "invalid_input"
    message = "Invalid request."


class ShareNotFoundError(ShareAccessError):
    status_code = 404
    code = "share_not_found"
    message = "Share link does not exist."


class ShareInactiveError(ShareAccessError):
    status_code = 403
    code = "share_inactive"
    message = "This share link has been disabled. Contact the person who sent it."


class ShareExpiredError(ShareAccessError):
    status_code = 403
    code = "share_expired"
    message = "This share link has expired. Ask the sender for a new link."


class ShareLockedError(ShareAccessError):
    status_code = 429
    code = "share_locked"
    message = "Too many failed attempts. Access is temporarily blocked, try again in 30 minutes."


class SharePasswordMismatchError(ShareAccessError):
    status_code = 401
    code = "password_mismatch"
    message = "Password does not match."

    def __init__(self, remaining_attempts: int) -> None:
        self.remaining_attempts = remaining_attempts
        super().__init__(
            f"Password does not match. Remaining attempts: {remaining_attempts}.",
            remaining_attempts=remaining_attempts,
        )


class ShareTokenError(ShareAccessError):
    status_code = 401
    code = "token_invalid"
    message = "Invalid share token."


class ShareTokenMissingError(ShareTokenError):
    code = "token_missing"
    message = "Missing Bearer share token."


class ShareTokenExpiredError(ShareTokenError):
    code = "token_expired"
    message = "Share token has expired. Enter the password again."


class ShareTokenScopeError(ShareTokenError):
    status_code = 403
    code = "token_scope_mismatch"
    message = "Share token is not valid for this share."


class ProjectNotInShareError(ShareAccessError):
    status_code = 403
    code = "project_not_in_share"
    message = "This project is not part of the share."


class ProjectNotFoundError(ShareAccessError):
    status_code = 404
    code = "project_not_found"
    message = "Project not found."


class ShareCodeConflictError(ShareAccessError):
    status_code = 409
    code = "share_code_conflict"
    message = "This share URL is already in use."


class ShareContentConflictError(ShareAccessError):
    status_code = 409
    code = "share_content_conflict"
    message = "This project is already placed in that slot."


class ShareContentNotFoundError(ShareAccessError):
    status_code = 404
    code = "share_content_not_found"
    message = "Share content not found."


class ShareCodeGenerationError(ShareAccessError):
    status_code = 500
    code = "share_code_generation_failed"
    message = "Could not generate a unique share code. Try again."

