"""Per (share code, client IP) failure counters and lockout markers.

The failure window is fixed: its TTL starts at the first failure and is not
extended by later failures. The lockout marker is a separate key with its own
TTL, written once the failure count reaches the threshold.
"""

from __future__ import annotations

from dataclasses import dataclass

from config import settings
from services.kv_store import KeyValueStore


FAILURE_KEY_PREFIX = "share_auth_fail"
LOCKOUT_KEY_PREFIX = "share_auth_block"


def _failure_key(share_code: str, client_ip: str) -> str:
    return f"{FAILURE_KEY_PREFIX}:{share_code}:{client_ip}"


def _lockout_key(share_code: str, client_ip: str) -> str:
    return f"{LOCKOUT_KEY_PREFIX}:{share_code}:{client_ip}"


@dataclass(frozen=True)
class FailureResult:
    failed_attempts: int
    remaining_attempts: int
    locked: bool


class AttemptLedger:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        max_attempts: int | None = None,
        window_seconds: int | None = None,
        lockout_seconds: int | None = None,
    ) -> None:
        self.store = store
        self.max_attempts = int(max_attempts or settings.SHARE_MAX_FAILED_ATTEMPTS)
        self.window_seconds = int(window_seconds or settings.SHARE_ATTEMPT_WINDOW_SECONDS)
        self.lockout_seconds = int(lockout_seconds or settings.SHARE_LOCKOUT_SECONDS)

    async def is_locked(self, share_code: str, client_ip: str) -> bool:
        return await self.store.get(_lockout_key(share_code, client_ip)) == "1"

    async def failed_attempts(self, share_code: str, client_ip: str) -> int:
        raw = await self.store.get(_failure_key(share_code, client_ip))
        return int(raw) if raw else 0

    async def record_failure(self, share_code: str, client_ip: str) -> FailureResult:
        count = await self.store.incr(_failure_key(share_code, client_ip), self.window_seconds)
        locked = count >= self.max_attempts
        if locked:
            # Concurrent crossings may each write the same marker.
            await self.store.set(_lockout_key(share_code, client_ip), "1", self.lockout_seconds)
        return FailureResult(
            failed_attempts=count,
            remaining_attempts=max(0, self.max_attempts - count),
            locked=locked,
        )

    async def reset(self, share_code: str, client_ip: str) -> None:
        await self.store.delete(_failure_key(share_code, client_ip))
