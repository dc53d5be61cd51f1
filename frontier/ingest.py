from __future__ import annotations

from itertools import islice
from typing import Iterable, Iterator, Optional

from loguru import logger

from frontier.errors import StoreError
from frontier.identity import compute_identity
from frontier.monitoring.metrics_server import (
    FRONTIER_DUPLICATES,
    FRONTIER_ENQUEUED,
    FRONTIER_INGEST_FAILED,
)
from frontier.partition import Partition
from frontier.priority import PriorityClassifier
from frontier.records import EnqueueReport, UrlDescriptor, WorkItemRecord
from frontier.storage.base import FrontierStore, IngestSession


DEFAULT_BATCH_SIZE = 1000


def _windows(items: Iterable[Optional[UrlDescriptor]], size: int) -> Iterator[list[Optional[UrlDescriptor]]]:
    iterator = iter(items)
    while True:
        window = list(islice(iterator, size))
        if not window:
            return
        yield window


class BatchIngestor:
    """Deduplicated bulk enqueue.

    Items are committed in windows of ``batch_size``; a new transaction starts
    right after each commit, so a crash loses at most the open window. Per-item
    store failures are logged and counted, never raised.
    """

    def __init__(
        self,
        store: FrontierStore,
        classifier: PriorityClassifier,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.classifier = classifier
        self.batch_size = batch_size

    def build_record(self, item: UrlDescriptor) -> WorkItemRecord:
        return WorkItemRecord(
            identity=compute_identity(item.url),
            priority_level=int(self.classifier(item.url)),
            link=item,
        )

    async def enqueue_many(
        self, items: Iterable[Optional[UrlDescriptor]], partition: Partition
    ) -> EnqueueReport:
        report = EnqueueReport()

        try:
            async with self.store.ingest_session(partition) as session:
                for window in _windows(items, self.batch_size):
                    report.merge(await self._ingest_window(session, window, partition))
        except StoreError as exc:
            logger.error(f"Ingest into {partition.label()} aborted: {exc}")

        self._record_metrics(report, partition)
        if report.submitted:
            logger.debug(
                f"Enqueued {report.inserted}/{report.submitted} URLs into {partition.label()} "
                f"(duplicates={report.duplicates}, skipped={report.skipped}, failed={report.failed})"
            )
        return report

    async def enqueue_one(self, item: Optional[UrlDescriptor], partition: Partition) -> EnqueueReport:
        return await self.enqueue_many([item], partition)

    async def _ingest_window(
        self,
        session: IngestSession,
        window: list[Optional[UrlDescriptor]],
        partition: Partition,
    ) -> EnqueueReport:
        report = EnqueueReport(submitted=len(window))
        try:
            async with session.transaction():
                for item in window:
                    if item is None:
                        report.skipped += 1
                        continue
                    inserted = await self.insert_one(session, item)
                    if inserted is None:
                        report.failed += 1
                    elif inserted:
                        report.inserted += 1
                    else:
                        report.duplicates += 1
        except StoreError as exc:
            logger.error(f"Commit of {len(window)} URLs into {partition.label()} failed: {exc}")
            lost = report.inserted + report.duplicates + report.failed
            return EnqueueReport(submitted=len(window), skipped=report.skipped, failed=lost)
        return report

    async def insert_one(self, session: IngestSession, item: UrlDescriptor) -> Optional[bool]:
        """Insert a single item, retrying once with a fresh insert plan.

        Returns True (inserted), False (duplicate) or None (failed twice).
        """
        record = self.build_record(item)
        try:
            return await session.insert(record)
        except StoreError as exc:
            logger.warning(f"Insert of {item.url} failed, retrying with a new plan: {exc}")

        await session.reset_insert_plan()
        try:
            return await session.insert(record)
        except StoreError as exc:
            logger.error(f"Giving up on {item.url}: {exc}")
            return None

    def _record_metrics(self, report: EnqueueReport, partition: Partition) -> None:
        label = partition.label()
        if report.inserted:
            FRONTIER_ENQUEUED.labels(partition=label).inc(report.inserted)
        if report.duplicates:
            FRONTIER_DUPLICATES.labels(partition=label).inc(report.duplicates)
        if report.failed:
            FRONTIER_INGEST_FAILED.labels(partition=label).inc(report.failed)
