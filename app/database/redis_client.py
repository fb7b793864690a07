import redis
from app.config import settings


class RedisClient:
    _client: redis.Redis = None

    @classmethod
    def get_client(cls) -> redis.Redis:
        if cls._client is None:
            if not settings.redis_url:
                raise RuntimeError("REDIS_URL must be set when RBAC_CACHE_BACKEND=redis")
            cls._client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        return cls._client

    @classmethod
    def reset_client(cls):
        if cls._client is not None:
            cls._client.close()
        cls._client = None


def get_redis() -> redis.Redis:
    return RedisClient.get_client()
