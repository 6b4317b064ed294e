"""
Redis connection for the token revocation list.

Balances and ledger data never live here; losing Redis only means revoked
tokens stay usable until they expire.
"""

import logging
import redis.asyncio as redis
from creditcore.app.core.config import settings

logger = logging.getLogger(__name__)

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
    socket_timeout=settings.redis_socket_timeout,
)


async def ping_redis() -> bool:
    """Health probe used by /health."""
    try:
        return bool(await redis_client.ping())
    except redis.RedisError as e:
        logger.warning("Redis ping failed: %s", e)
        return False
