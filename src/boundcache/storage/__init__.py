from .redis_cache import RedisCache, close_all_redis_clients, get_redis_client

__all__ = ["RedisCache", "get_redis_client", "close_all_redis_clients"]
