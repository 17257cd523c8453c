"""Strict-TTL cache of rendered share timelines, keyed by share code.

Each share code has a generation counter. Entries live under
``share_contents:{code}:{generation}``; invalidation bumps the counter and
deletes the current entry. A read that started before a mutation writes its
result under the old generation, where no later read looks.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Optional, Tuple

from config import settings
from services.kv_store import KeyValueStore


logger = logging.getLogger(__name__)

TIMELINE_CACHE_PREFIX = "share_contents"
TIMELINE_GENERATION_PREFIX = "share_contents_gen"
MIN_GENERATION_TTL_SECONDS = 7 * 24 * 3600


def timeline_cache_key(share_code: str, generation: int = 0) -> str:
    return f"{TIMELINE_CACHE_PREFIX}:{share_code}:{generation}"


def timeline_generation_key(share_code: str) -> str:
    return f"{TIMELINE_GENERATION_PREFIX}:{share_code}"


def _cache_ttl() -> int:
    return max(int(settings.SHARE_TIMELINE_CACHE_TTL_SECONDS), 1)


def _generation_ttl() -> int:
    # Must outlive any entry written under the generation it guards.
    return max(MIN_GENERATION_TTL_SECONDS, 2 * _cache_ttl())


async def current_generation(store: KeyValueStore, share_code: str) -> int:
    raw = await store.get(timeline_generation_key(share_code))
    return int(raw) if raw else 0


async def current_timeline_key(store: KeyValueStore, share_code: str) -> str:
    return timeline_cache_key(share_code, await current_generation(store, share_code))


async def load_cached_timeline(
    store: KeyValueStore, share_code: str
) -> Tuple[Optional[int], Optional[Dict[str, Any]]]:
    """Return ``(generation, payload)``. Reads never touch the entry's TTL.

    ``generation`` is None when the store could not be read; callers then
    skip writing back.
    """
    try:
        generation = await current_generation(store, share_code)
        raw = await store.get(timeline_cache_key(share_code, generation))
    except Exception as exc:
        logger.warning("Timeline cache read failed for share=%s: %s", share_code, exc)
        return None, None
    if not raw:
        return generation, None
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.warning("Discarding malformed timeline cache entry for share=%s", share_code)
        return generation, None
    return generation, parsed if isinstance(parsed, dict) else None


async def store_cached_timeline(
    store: KeyValueStore,
    share_code: str,
    generation: Optional[int],
    payload: Dict[str, Any],
) -> None:
    if generation is None:
        return
    try:
        await store.set(
            timeline_cache_key(share_code, generation),
            json.dumps(payload, separators=(",", ":"), ensure_ascii=True, default=str),
            _cache_ttl(),
        )
    except Exception as exc:
        logger.warning("Timeline cache write failed for share=%s: %s", share_code, exc)


async def invalidate_share_timelines(store: KeyValueStore, share_codes: Iterable[Optional[str]]) -> int:
    """Retire cached timelines for every given code. Failures propagate."""
    removed = 0
    codes = sorted({code for code in share_codes if code})
    for share_code in codes:
        generation = await current_generation(store, share_code)
        await store.incr(timeline_generation_key(share_code), _generation_ttl())
        removed += await store.delete(timeline_cache_key(share_code, generation))
    if codes:
        logger.info("Invalidated timeline cache codes=%s removed=%s", codes, removed)
    return removed
