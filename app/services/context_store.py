"""Redis-backed cache of in-flight conversation context.

The cache is an optimisation only: a miss, an expired key or an unreachable
Redis all read as "no prior context" and callers rebuild from the message log.
"""

from typing import Optional
from uuid import UUID

import redis.asyncio as redis_async
from pydantic import ValidationError

from app.logging_config import get_logger
from app.schemas.context import ConversationContext

logger = get_logger("context_store")

DEFAULT_TTL_SECONDS = 7200
KEY_PREFIX = "storefront:conversation:"


class ContextStore:
    def __init__(self, redis_client, ttl_seconds: int = DEFAULT_TTL_SECONDS, key_prefix: str = KEY_PREFIX):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, redis_url: str, ttl_seconds: int = DEFAULT_TTL_SECONDS, socket_timeout: float = 0.5):
        client = redis_async.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
        )
        return cls(client, ttl_seconds=ttl_seconds)

    def _key(self, conversation_id: UUID | str) -> str:
        return f"{self.key_prefix}{conversation_id}"

    async def get(self, conversation_id: UUID | str) -> Optional[ConversationContext]:
        try:
            raw = await self.redis.get(self._key(conversation_id))
        except Exception as e:
            logger.warning(
                "Context cache read failed, treating as miss",
                extra={"context": {"conversation_id": str(conversation_id), "error": str(e)}},
            )
            return None

        if not raw:
            return None

        try:
            return ConversationContext.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "Discarding malformed cached context",
                extra={"context": {"conversation_id": str(conversation_id), "error": str(e)}},
            )
            return None

    async def put(
        self,
        conversation_id: UUID | str,
        context: ConversationContext,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        """Write the context and reset its expiry. Returns False if the cache is unreachable."""
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        try:
            await self.redis.set(self._key(conversation_id), context.model_dump_json(), ex=ttl)
            return True
        except Exception as e:
            logger.warning(
                "Context cache write failed",
                extra={"context": {"conversation_id": str(conversation_id), "error": str(e)}},
            )
            return False

    async def delete(self, conversation_id: UUID | str) -> None:
        try:
            await self.redis.delete(self._key(conversation_id))
        except Exception as e:
            logger.warning(
                "Context cache delete failed",
                extra={"context": {"conversation_id": str(conversation_id), "error": str(e)}},
            )

    async def close(self) -> None:
        close = getattr(self.redis, "aclose", None) or getattr(self.redis, "close", None)
        if close is not None:
            await close()
