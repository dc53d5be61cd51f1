from __future__ import annotations

import time
from typing import Iterable, Optional

from loguru import logger

from frontier.errors import StoreError, UnsupportedOperationError
from frontier.ingest import DEFAULT_BATCH_SIZE, BatchIngestor
from frontier.monitoring.metrics_server import (
    CLAIM_LATENCY,
    FRONTIER_CLAIM_EMPTY,
    FRONTIER_CLAIM_ERRORS,
    FRONTIER_CLAIMED,
    FRONTIER_COMPLETED,
    FRONTIER_RECOVERED,
)
from frontier.partition import DEFAULT_PARTITION, Partition
from frontier.priority import PriorityClassifier, PriorityRules
from frontier.records import EnqueueReport, FrontierTask, UrlDescriptor
from frontier.storage.base import FrontierStore


class FrontierQueueManager:
    """Priority frontier shared by crawler workers.

    The manager is bound to a default partition; every operation takes an
    optional ``partition`` to address another logical queue on the same store.
    """

    def __init__(
        self,
        store: FrontierStore,
        *,
        partition: Partition = DEFAULT_PARTITION,
        classifier: Optional[PriorityClassifier] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.store = store
        self.partition = partition
        self.classifier = classifier if classifier is not None else PriorityRules()
        self.ingestor = BatchIngestor(store, self.classifier, batch_size=batch_size)

    def _resolve(self, partition: Optional[Partition]) -> Partition:
        return partition if partition is not None else self.partition

    # -------------------------------------------------------
    # Connection
    # -------------------------------------------------------

    async def connect(self) -> None:
        await self.store.connect()

    async def close(self) -> None:
        await self.store.close()

    # -------------------------------------------------------
    # Ingest
    # -------------------------------------------------------

    async def enqueue_many(
        self,
        items: Iterable[Optional[UrlDescriptor]],
        partition: Optional[Partition] = None,
    ) -> EnqueueReport:
        return await self.ingestor.enqueue_many(items, self._resolve(partition))

    async def enqueue_one(
        self, item: Optional[UrlDescriptor], partition: Optional[Partition] = None
    ) -> EnqueueReport:
        return await self.ingestor.enqueue_one(item, self._resolve(partition))

    # -------------------------------------------------------
    # Claim
    # -------------------------------------------------------

    async def claim_next(self, partition: Optional[Partition] = None) -> Optional[FrontierTask]:
        """Claim the most urgent pending item, or return None.

        None is the normal "nothing to do" answer and is also returned when the
        store fails mid-claim; callers poll again later.
        """
        target = self._resolve(partition)
        label = target.label()

        start = time.perf_counter()
        try:
            task = await self.store.claim_next(target)
        except StoreError:
            FRONTIER_CLAIM_ERRORS.labels(partition=label).inc()
            logger.exception(f"Claim in {label} aborted")
            return None
        finally:
            CLAIM_LATENCY.labels(partition=label).observe(time.perf_counter() - start)

        if task is None:
            FRONTIER_CLAIM_EMPTY.labels(partition=label).inc()
            return None

        FRONTIER_CLAIMED.labels(partition=label).inc()
        logger.debug(f"Claimed {task.url} (priority={task.priority}) in {label}")
        return task

    # -------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------

    async def report_done(
        self,
        identity: str,
        result_code: Optional[int],
        partition: Optional[Partition] = None,
    ) -> bool:
        """Mark an item done. Completing a done item again changes nothing."""
        target = self._resolve(partition)
        updated = await self.store.mark_done(target, identity, result_code)
        if updated:
            FRONTIER_COMPLETED.labels(partition=target.label()).inc()
        else:
            logger.debug(f"report_done({identity}) in {target.label()} changed nothing")
        return updated

    async def recover_stale_claims(self, partition: Optional[Partition] = None) -> int:
        """Put every claimed item of the partition back to pending.

        There is no claim lease: run this at startup, before any worker
        claims, to release items held by workers of a crashed process.
        """
        target = self._resolve(partition)
        recovered = await self.store.reset_claimed(target)
        if recovered:
            FRONTIER_RECOVERED.labels(partition=target.label()).inc(recovered)
            logger.warning(f"Recovered {recovered} stale claims in {target.label()}")
        return recovered

    async def has_pending(self, partition: Optional[Partition] = None) -> bool:
        return await self.store.has_pending(self._resolve(partition))

    async def count(self, partition: Optional[Partition] = None) -> int:
        return await self.store.count_pending(self._resolve(partition))

    async def erase(self, partition: Optional[Partition] = None) -> None:
        """Refuse to clear a partition.

        The table is the permanent crawl record, so a partition holding any
        item cannot be erased. Erasing an empty partition does nothing.
        """
        target = self._resolve(partition)
        if await self.store.contains_any(target):
            raise UnsupportedOperationError(
                f"Refusing to erase partition {target.label()}: the frontier is the crawl history"
            )
        logger.info(f"erase() on empty partition {target.label()}: nothing to do")
