"""
Access Log Worker

Drains access events from the queue and appends them to access log storage
in batches. Messages are acknowledged only after they were stored, so a
storage failure leaves them pending for the next attempt (Redis Streams).

Runs either embedded in the API process (lifespan task) or standalone:
    python -m shortlink_app.log_processor.access_log_worker
"""

import asyncio
import logging
import signal
import sys
from typing import List, Optional

from shortlink_app.config import settings
from shortlink_app.queue.models import AccessEvent
from shortlink_app.queue.strategies import QueueStrategy
from shortlink_app.storage.strategies import AccessLogStorage

logger = logging.getLogger(__name__)


class AccessLogWorker:
    """Batch consumer moving access events from the queue into storage"""

    def __init__(
        self,
        queue: QueueStrategy,
        storage: AccessLogStorage,
        queue_name: Optional[str] = None,
        batch_size: Optional[int] = None,
        poll_interval: Optional[float] = None
    ):
        """
        Args:
            queue: Queue strategy for consuming messages
            storage: Storage strategy for access logs
            queue_name: Queue to drain
            batch_size: Maximum events per storage write
            poll_interval: Seconds to wait when the queue is empty
        """
        self.queue = queue
        self.storage = storage
        self.queue_name = queue_name or settings.queue_name
        self.batch_size = batch_size or settings.queue_batch_size
        self.poll_interval = poll_interval if poll_interval is not None else settings.queue_worker_interval
        self.running = False
        self.processed_count = 0

    async def process_once(self) -> int:
        """
        Consume and store one batch.

        Returns:
            Number of events stored (0 when the queue was empty or storage failed)
        """
        messages = await self.queue.consume(
            queue_name=self.queue_name,
            batch_size=self.batch_size,
            block_time=1000
        )
        if not messages:
            return 0

        stored = await self._store(messages)
        if not stored:
            return 0

        message_ids = [msg.message_id for msg in messages if msg.message_id]
        if message_ids:
            await self.queue.ack(self.queue_name, message_ids)

        self.processed_count += len(messages)
        logger.debug("Stored %d access events (total %d)", len(messages), self.processed_count)
        return len(messages)

    async def _store(self, messages: List[AccessEvent]) -> bool:
        try:
            return await self.storage.store_entries(messages)
        except Exception:
            logger.warning("Storing %d access events failed", len(messages), exc_info=True)
            return False

    async def drain(self) -> int:
        """Process batches until the queue is empty; returns events stored"""
        total = 0
        while True:
            stored = await self.process_once()
            if not stored:
                return total
            total += stored

    async def start(self):
        """Run until ``stop`` is called or the task is cancelled"""
        self.running = True
        logger.info("Access log worker started (batch size %d)", self.batch_size)

        while self.running:
            try:
                stored = await self.process_once()
                if not stored:
                    await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Error processing access events")
                await asyncio.sleep(self.poll_interval)

        self.running = False
        logger.info("Access log worker stopped")

    def stop(self):
        """Stop the worker"""
        self.running = False


async def main():
    """Standalone entry point"""
    from shortlink_app.logging_config import setup_logging
    from shortlink_app.queue.factory import QueueFactory, QueueBackend
    from shortlink_app.storage.factory import AccessLogStorageFactory, AccessLogBackend

    setup_logging(settings.log_level, json_format=settings.log_format == "json")
    logger.info(
        "Environment: %s, queue backend: %s, storage backend: %s",
        settings.environment, settings.queue_backend, settings.access_log_backend
    )

    queue = QueueFactory.create(QueueBackend(settings.queue_backend))
    storage = AccessLogStorageFactory.create(AccessLogBackend(settings.access_log_backend))
    worker = AccessLogWorker(queue=queue, storage=storage)

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, worker.stop)

    try:
        await worker.start()
    except Exception:
        logger.exception("Fatal error in access log worker")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
