import asyncio
import os
import uuid

import pytest

from frontier.partition import Partition
from frontier.queue_manager import FrontierQueueManager
from frontier.records import UrlDescriptor
from frontier.storage.postgres.postgres_init import init_postgres
from frontier.storage.postgres.postgres_store import PostgresFrontierStore

# read at import time: the autouse fixture clears FRONTIER_* before each test
TEST_DATABASE_URL = os.getenv("FRONTIER_TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(
    not TEST_DATABASE_URL, reason="FRONTIER_TEST_DATABASE_URL is not set"
)


@pytest.mark.asyncio
async def test_concurrent_claims_against_postgres_never_share_an_item():
    await init_postgres(TEST_DATABASE_URL)

    partition = Partition(crawl_id=f"it-{uuid.uuid4().hex}")
    queue = FrontierQueueManager(
        PostgresFrontierStore(TEST_DATABASE_URL, max_size=8),
        partition=partition,
        classifier=lambda url: 5 if url.endswith("/0") else 1,
    )
    await queue.connect()
    try:
        urls = [f"https://example.com/{i}" for i in range(20)]
        first = await queue.enqueue_many(UrlDescriptor(url=url) for url in urls)
        again = await queue.enqueue_many(UrlDescriptor(url=url) for url in urls)

        assert first.inserted == 20
        assert again.duplicates == 20

        results = await asyncio.gather(*[queue.claim_next() for _ in range(40)])
        claimed = [task for task in results if task is not None]

        assert len(claimed) == 20
        assert len({task.identity for task in claimed}) == 20
        assert await queue.count() == 0
        assert await queue.has_pending() is True

        for task in claimed:
            assert await queue.report_done(task.identity, 200) is True
        assert await queue.report_done(claimed[0].identity, 500) is False
        assert await queue.has_pending() is False
    finally:
        await queue.close()
