"""
Continuation Cache

Per-category handle on an in-flight completion-service conversation, so
successive generation calls for a category reuse context (and avoid repeats)
until a token ceiling is hit.

Entries live in Redis under openai:response:<category_id> with a 7-day TTL.
The cache is an optimisation only: read failures are a miss, write and
eviction failures are logged and ignored.
"""

import json
import logging
import os
from typing import Optional

import redis
from pydantic import BaseModel, ValidationError

log = logging.getLogger("generation.pipeline")

CONTINUATION_TOKEN_CEILING = int(os.getenv("CONTINUATION_TOKEN_CEILING", "128000"))
CONTINUATION_TTL_DAYS = int(os.getenv("CONTINUATION_TTL_DAYS", "7"))


class ContinuationHandle(BaseModel):
    category_id: int
    conversation_handle_id: str
    tokens_consumed: int


def _cache_key(category_id: int) -> str:
    return f"openai:response:{category_id}"


class ContinuationCache:
    """get / set / evict over a Redis-like client (get, set(ex=), delete)."""

    def __init__(
        self,
        client,
        token_ceiling: int = CONTINUATION_TOKEN_CEILING,
        ttl_seconds: int = CONTINUATION_TTL_DAYS * 24 * 3600,
    ):
        self.client = client
        self.token_ceiling = token_ceiling
        self.ttl_seconds = ttl_seconds

    def get(self, category_id: int) -> Optional[ContinuationHandle]:
        """Live handle for the category, or None (missing, unreadable, or over the ceiling)."""
        try:
            raw = self.client.get(_cache_key(category_id))
        except redis.RedisError as e:
            log.warning(f"[CACHE] read failed for category={category_id}: {e}")
            return None
        if not raw:
            return None

        try:
            handle = ContinuationHandle.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            log.warning(f"[CACHE] dropping unreadable entry for category={category_id}: {e}")
            self.evict(category_id)
            return None

        if handle.tokens_consumed > self.token_ceiling:
            log.info(
                f"[CACHE] category={category_id} over ceiling "
                f"({handle.tokens_consumed}>{self.token_ceiling}), starting fresh"
            )
            self.evict(category_id)
            return None
        return handle

    def set(self, category_id: int, conversation_handle_id: str, tokens_consumed: int) -> Optional[ContinuationHandle]:
        """
        Store the newest handle. A handle already past the ceiling is evicted
        instead of stored, so the next call starts a fresh conversation.
        """
        if tokens_consumed > self.token_ceiling:
            log.info(f"[CACHE] category={category_id} reached {tokens_consumed} tokens, retiring conversation")
            self.evict(category_id)
            return None

        handle = ContinuationHandle(
            category_id=category_id,
            conversation_handle_id=conversation_handle_id,
            tokens_consumed=tokens_consumed,
        )
        try:
            self.client.set(_cache_key(category_id), handle.model_dump_json(), ex=self.ttl_seconds)
        except redis.RedisError as e:
            log.warning(f"[CACHE] write failed for category={category_id}: {e}")
            return None
        return handle

    def evict(self, category_id: int) -> bool:
        """Delete the entry; True when something was removed."""
        try:
            return bool(self.client.delete(_cache_key(category_id)))
        except redis.RedisError as e:
            log.warning(f"[CACHE] eviction failed for category={category_id}: {e}")
            return False
