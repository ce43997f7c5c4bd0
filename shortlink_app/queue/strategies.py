"""
Transports for access events between the resolution path and the
access-log worker.

- RedisStreamQueue: durable, shared between processes, at-least-once
- InMemoryQueue: single process, for development and tests
"""

import asyncio
import logging
import socket
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, Dict, List, Optional

from .models import AccessEvent

logger = logging.getLogger(__name__)


class QueueStrategy(ABC):
    """Named FIFO of AccessEvents with explicit acknowledgement"""

    @abstractmethod
    async def publish(self, queue_name: str, message: AccessEvent) -> bool:
        """Append one event; returns False when the backend refused it"""
        pass

    @abstractmethod
    async def consume(
        self,
        queue_name: str,
        batch_size: int = 100,
        block_time: int = 1000
    ) -> List[AccessEvent]:
        """
        Take up to ``batch_size`` events.

        Args:
            queue_name: Queue to read
            batch_size: Upper bound on returned events
            block_time: Milliseconds to wait for the first event

        Returns:
            Events in publish order; those needing acknowledgement carry ``message_id``
        """
        pass

    @abstractmethod
    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        """Mark consumed events as stored"""
        pass

    @abstractmethod
    async def get_queue_length(self, queue_name: str) -> int:
        pass


class RedisStreamQueue(QueueStrategy):
    """
    Access events on a Redis stream read through a consumer group.

    Events stay in the group's pending list until ``ack``, so a worker that
    dies between reading and storing does not lose them.

    Takes a blocking redis-py client. Every command runs in a worker thread,
    so the event loop keeps serving redirects while XREADGROUP waits.
    """

    def __init__(self, redis_client, consumer_group: str = "access_log_workers"):
        self.redis = redis_client
        self.consumer_group = consumer_group
        self.consumer_name = f"{socket.gethostname()}-{id(self)}"
        self._groups_ready = set()

    async def _call(self, command: str, *args, **kwargs):
        return await asyncio.to_thread(getattr(self.redis, command), *args, **kwargs)

    async def _ensure_group(self, queue_name: str) -> None:
        if queue_name in self._groups_ready:
            return

        try:
            await self._call("xgroup_create", name=queue_name, groupname=self.consumer_group,
                             id="0", mkstream=True)
            logger.info("Created consumer group %s on stream %s", self.consumer_group, queue_name)
        except Exception as e:
            if "BUSYGROUP" not in str(e):
                raise

        self._groups_ready.add(queue_name)

    async def publish(self, queue_name: str, message: AccessEvent) -> bool:
        try:
            await self._ensure_group(queue_name)
            await self._call("xadd", queue_name, {"data": message.model_dump_json()})
        except Exception as e:
            logger.warning("Redis publish to %s failed: %s", queue_name, e)
            return False
        return True

    async def consume(
        self,
        queue_name: str,
        batch_size: int = 100,
        block_time: int = 1000
    ) -> List[AccessEvent]:
        try:
            await self._ensure_group(queue_name)
            response = await self._call(
                "xreadgroup",
                groupname=self.consumer_group,
                consumername=self.consumer_name,
                streams={queue_name: ">"},
                count=batch_size,
                block=block_time,
            )
        except Exception as e:
            logger.warning("Redis read from %s failed: %s", queue_name, e)
            return []

        events = []
        for _stream, entries in response or []:
            for message_id, fields in entries:
                if isinstance(message_id, bytes):
                    message_id = message_id.decode("utf-8")
                event = self._decode(message_id, fields)
                if event is not None:
                    events.append(event)
        return events

    @staticmethod
    def _decode(message_id: str, fields: Dict) -> Optional[AccessEvent]:
        try:
            payload = fields.get(b"data") or fields.get("data")
            event = AccessEvent.model_validate_json(payload)
        except Exception as e:
            logger.warning("Dropping unreadable stream entry %s: %s", message_id, e)
            return None
        return event.model_copy(update={"message_id": message_id})

    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        if not message_ids:
            return True
        try:
            await self._call("xack", queue_name, self.consumer_group, *message_ids)
        except Exception as e:
            logger.warning("Redis ack on %s failed: %s", queue_name, e)
            return False
        return True

    async def get_queue_length(self, queue_name: str) -> int:
        try:
            return await self._call("xlen", queue_name)
        except Exception:
            return 0


class InMemoryQueue(QueueStrategy):
    """
    Deque per queue name, private to the process.

    Consuming removes events, so ``ack`` has nothing to do and ``block_time``
    is ignored.
    """

    def __init__(self):
        self._queues: Dict[str, Deque[AccessEvent]] = {}

    def _get_queue(self, queue_name: str) -> Deque[AccessEvent]:
        return self._queues.setdefault(queue_name, deque())

    async def publish(self, queue_name: str, message: AccessEvent) -> bool:
        self._get_queue(queue_name).append(message)
        return True

    async def consume(
        self,
        queue_name: str,
        batch_size: int = 100,
        block_time: int = 1000
    ) -> List[AccessEvent]:
        queue = self._get_queue(queue_name)
        return [queue.popleft() for _ in range(min(batch_size, len(queue)))]

    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        return True

    async def get_queue_length(self, queue_name: str) -> int:
        return len(self._get_queue(queue_name))
