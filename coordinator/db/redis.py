"""Redis cache, metrics and event channel operations"""
import json
from typing import Optional, Dict
import redis.asyncio as redis


class RedisCache:
    """Redis cache and pub/sub manager"""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.client: Optional[redis.Redis] = None

    async def connect(self):
        """Connect to Redis"""
        self.client = await redis.from_url(self.redis_url,
                                           decode_responses=True)

    async def close(self):
        """Close Redis connection"""
        if self.client:
            await self.client.close()

    # Caching operations
    async def cache_document(self, collection: str, entity_id: str,
                             document_json: str) -> None:
        """Cache a serialized document under its collection hash"""
        await self.client.hset(f"cache:{collection}", entity_id, document_json)

    async def get_cached_document(self, collection: str,
                                  entity_id: str) -> Optional[Dict]:
        """Get cached document"""
        data = await self.client.hget(f"cache:{collection}", entity_id)
        return json.loads(data) if data else None

    async def invalidate_document(self, collection: str, entity_id: str) -> None:
        """Invalidate document cache"""
        await self.client.hdel(f"cache:{collection}", entity_id)

    # Event channels
    async def publish(self, channel: str, message: str) -> int:
        """Publish a message on a pub/sub channel"""
        return await self.client.publish(channel, message)

    # Metrics and monitoring
    async def increment_metric(self, metric: str, amount: int = 1) -> None:
        """Increment a counter metric"""
        await self.client.incrby(f"metric:{metric}", amount)

    async def get_metric(self, metric: str) -> int:
        """Get metric value"""
        value = await self.client.get(f"metric:{metric}")
        return int(value) if value else 0
