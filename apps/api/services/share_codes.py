"""Share code and password shape rules."""

from __future__ import annotations

import re
import secrets

from config import settings


SHARE_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
SHARE_CODE_PATTERN = re.compile(r"^[A-Za-z0-9]{4,20}$")
SHARE_PASSWORD_PATTERN = re.compile(r"^[0-9]{4}$")


def generate_share_code(length: int | None = None) -> str:
    size = int(length or settings.SHARE_CODE_LENGTH)
    return "".join(secrets.choice(SHARE_CODE_ALPHABET) for _ in range(size))


def is_valid_share_code(value: object) -> bool:
    return isinstance(value, str) and bool(SHARE_CODE_PATTERN.fullmatch(value))


def is_valid_share_password(value: object) -> bool:
    return isinstance(value, str) and bool(SHARE_PASSWORD_PATTERN.fullmatch(value))
