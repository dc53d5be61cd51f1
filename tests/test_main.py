import pytest

from frontier.main import bootstrap, build_store
from frontier.partition import Partition
from frontier.queue_manager import FrontierQueueManager
from frontier.records import UrlDescriptor
from frontier.storage.memory_store import MemoryFrontierStore
from frontier.storage.postgres.postgres_store import PostgresFrontierStore
from frontier.utils.config_loader import FrontierConfig


def make_config(**overrides):
    values = {"database_url": "postgresql://u:p@db:5432/frontier", "store_backend": "memory"}
    values.update(overrides)
    return FrontierConfig(**values)


def test_build_store_selects_backend():
    assert isinstance(build_store(make_config()), MemoryFrontierStore)

    store = build_store(make_config(store_backend="postgres", pool_max_size=4))
    assert isinstance(store, PostgresFrontierStore)
    assert store.max_size == 4

    with pytest.raises(ValueError):
        build_store(make_config(store_backend="sqlite"))


@pytest.mark.asyncio
async def test_bootstrap_recovers_claims_before_seeding(tmp_path):
    journal = tmp_path / "frontier.jsonl"
    partition = Partition(crawl_id="news")

    # a previous run crashed while holding a claim
    previous = FrontierQueueManager(MemoryFrontierStore(journal), partition=partition)
    await previous.connect()
    await previous.enqueue_one(UrlDescriptor(url="https://example.com/stale"))
    await previous.claim_next()
    await previous.close()

    queue = await bootstrap(
        make_config(
            journal_path=str(journal),
            crawl_id="news",
            seed_urls=["https://example.com/", "https://example.com/article/1"],
            priority_rules=[{"pattern": "/article/", "level": 5}],
        )
    )

    assert queue.partition == partition
    assert await queue.count() == 3

    first = await queue.claim_next()
    assert first.url == "https://example.com/article/1"
    assert first.priority == 5
    await queue.close()
