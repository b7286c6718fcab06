"""Job queue adapters."""

from src.providers.queue.memory_queue import InMemoryJobQueue
from src.providers.queue.redis_queue import RedisJobQueue

__all__ = ["InMemoryJobQueue", "RedisJobQueue"]
