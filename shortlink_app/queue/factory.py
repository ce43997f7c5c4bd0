"""
Builds the process-wide access event queue from settings.
"""

import logging
from enum import Enum
from typing import Optional

import redis

from .strategies import QueueStrategy, RedisStreamQueue, InMemoryQueue
from shortlink_app.config import settings

logger = logging.getLogger(__name__)


class QueueBackend(Enum):
    REDIS_STREAMS = "redis_streams"
    MEMORY = "memory"


class QueueFactory:
    """
    Caches one queue per process.

    A Redis backend that does not answer PING at startup degrades to the
    in-memory queue: redirects keep working, and access events only reach a
    worker running in the same process.
    """

    _instance: Optional[QueueStrategy] = None

    @classmethod
    def create(cls, backend: QueueBackend) -> QueueStrategy:
        if cls._instance is None:
            cls._instance = cls._build(backend)
        return cls._instance

    @classmethod
    def _build(cls, backend: QueueBackend) -> QueueStrategy:
        if backend == QueueBackend.MEMORY:
            logger.info("Using in-memory access event queue")
            return InMemoryQueue()

        if backend != QueueBackend.REDIS_STREAMS:
            raise ValueError(f"Unknown queue backend: {backend}")

        client = redis.from_url(
            settings.redis_url,
            socket_connect_timeout=2,
            # Leaves room for XREADGROUP's block window
            socket_timeout=5,
        )
        try:
            client.ping()
        except redis.RedisError as e:
            logger.warning("Redis at %s unreachable (%s); using in-memory queue", settings.redis_url, e)
            return InMemoryQueue()

        logger.info("Using Redis stream queue (group %s)", settings.queue_consumer_group)
        return RedisStreamQueue(client, settings.queue_consumer_group)

    @classmethod
    def clear_instance(cls):
        cls._instance = None
