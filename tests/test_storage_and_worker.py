"""
Tests for access log storage backends and the access log worker.
"""
import asyncio
from datetime import datetime, timedelta

import pytest

from shortlink_app.log_processor.access_log_worker import AccessLogWorker
from shortlink_app.queue.models import AccessEvent
from shortlink_app.queue.strategies import InMemoryQueue
from shortlink_app.storage.strategies import InMemoryAccessLogStorage

DAY = datetime(2025, 3, 1, 12, 0)
QUEUE = "access"


def event(link_id="link-1", ip="203.0.113.7", when=DAY, country="Unknown",
          device="desktop", referrer=None, message_id=None):
    return AccessEvent(
        link_id=link_id,
        short_code="promo1",
        timestamp=when,
        ip_address=ip,
        user_agent="Mozilla/5.0",
        referrer=referrer,
        country=country,
        device_type=device,
        message_id=message_id,
    )


@pytest.fixture(params=["database", "memory"])
def storage(request):
    if request.param == "database":
        return request.getfixturevalue("access_storage")
    return InMemoryAccessLogStorage()


@pytest.fixture
def seeded(storage):
    events = [
        event(ip="203.0.113.7", country="Local", device="mobile", referrer="https://news.example"),
        event(ip="203.0.113.7", country="Local", device="mobile", referrer="https://news.example"),
        event(ip="198.51.100.2", device="tablet", referrer="https://blog.example", when=DAY - timedelta(days=1)),
        event(ip="192.0.2.1", device="desktop", referrer="", when=DAY - timedelta(days=40)),
        event(link_id="link-2", ip="192.0.2.50", device="desktop"),
    ]
    assert asyncio.run(storage.store_entries(events)) is True
    return storage


class TestAccessLogStorage:

    def test_counts(self, seeded):
        assert asyncio.run(seeded.count_accesses(["link-1"])) == 4
        assert asyncio.run(seeded.count_accesses(["link-1", "link-2"])) == 5
        assert asyncio.run(seeded.count_unique_ips(["link-1"])) == 3

    def test_no_links_means_no_data(self, seeded):
        assert asyncio.run(seeded.count_accesses([])) == 0
        assert asyncio.run(seeded.counts_by_country([])) == []

    def test_counts_by_country(self, seeded):
        rows = asyncio.run(seeded.counts_by_country(["link-1"], limit=10))

        assert rows == [{"country": "Local", "count": 2}, {"country": "Unknown", "count": 2}]

    def test_top_referrers_skip_empty(self, seeded):
        rows = asyncio.run(seeded.top_referrers(["link-1"], limit=1))

        assert rows == [{"referrer": "https://news.example", "count": 2}]

    def test_counts_by_device(self, seeded):
        devices = asyncio.run(seeded.counts_by_device(["link-1"]))

        assert devices == {"mobile": 2, "tablet": 1, "desktop": 1}

    def test_daily_counts_since(self, seeded):
        daily = asyncio.run(seeded.daily_counts(["link-1"], since=DAY - timedelta(days=29)))

        assert daily == {"2025-03-01": 2, "2025-02-28": 1}

    def test_list_entries_newest_first(self, seeded):
        rows, total = asyncio.run(seeded.list_entries("link-1", limit=2, offset=0))

        assert total == 4
        assert len(rows) == 2
        assert all(row["accessed_at"] == DAY for row in rows)
        assert rows[0]["id"] > rows[1]["id"]

        rest, _ = asyncio.run(seeded.list_entries("link-1", limit=10, offset=2))
        assert [row["accessed_at"] for row in rest] == [DAY - timedelta(days=1), DAY - timedelta(days=40)]

    def test_store_single_entry(self, storage):
        assert asyncio.run(storage.store_entry(event(link_id="solo"))) is True
        assert asyncio.run(storage.count_accesses(["solo"])) == 1


class AckTrackingQueue(InMemoryQueue):
    """In-memory queue that remembers acknowledged message ids"""

    def __init__(self):
        super().__init__()
        self.acked = []

    async def ack(self, queue_name, message_ids):
        self.acked.extend(message_ids)
        return True


class FailingStorage(InMemoryAccessLogStorage):

    async def store_entries(self, events):
        raise RuntimeError("storage down")


class TestAccessLogWorker:

    def test_drain_moves_events_in_batches(self):
        queue = InMemoryQueue()
        storage = InMemoryAccessLogStorage()
        for _ in range(5):
            asyncio.run(queue.publish(QUEUE, event()))
        worker = AccessLogWorker(queue=queue, storage=storage, queue_name=QUEUE, batch_size=2)

        assert asyncio.run(worker.drain()) == 5
        assert worker.processed_count == 5
        assert asyncio.run(storage.count_accesses(["link-1"])) == 5
        assert asyncio.run(queue.get_queue_length(QUEUE)) == 0

    def test_acks_after_store(self):
        queue = AckTrackingQueue()
        asyncio.run(queue.publish(QUEUE, event(message_id="1-0")))
        asyncio.run(queue.publish(QUEUE, event(message_id="1-1")))
        worker = AccessLogWorker(queue=queue, storage=InMemoryAccessLogStorage(), queue_name=QUEUE)

        asyncio.run(worker.process_once())

        assert queue.acked == ["1-0", "1-1"]

    def test_storage_failure_leaves_messages_unacked(self):
        queue = AckTrackingQueue()
        asyncio.run(queue.publish(QUEUE, event(message_id="1-0")))
        worker = AccessLogWorker(queue=queue, storage=FailingStorage(), queue_name=QUEUE)

        assert asyncio.run(worker.process_once()) == 0
        assert queue.acked == []
        assert worker.processed_count == 0

    def test_start_stops_on_request(self):
        queue = InMemoryQueue()
        storage = InMemoryAccessLogStorage()
        worker = AccessLogWorker(queue=queue, storage=storage, queue_name=QUEUE, poll_interval=0.01)

        async def run():
            task = asyncio.create_task(worker.start())
            await queue.publish(QUEUE, event())
            await asyncio.sleep(0.05)
            worker.stop()
            await asyncio.wait_for(task, timeout=1)

        asyncio.run(run())

        assert worker.running is False
        assert asyncio.run(storage.count_accesses(["link-1"])) == 1
