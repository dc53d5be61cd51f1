import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from loguru import logger

from frontier.errors import StoreError
from frontier.monitoring.metrics_server import WORKER_ACTIVE, WORKER_FAILED, WORKER_PROCESSED
from frontier.queue_manager import FrontierQueueManager
from frontier.records import FrontierTask, UrlDescriptor

FAILED_RESULT_CODE = 0


@dataclass
class HandlerResult:
    result_code: Optional[int]
    discovered: list[UrlDescriptor] = field(default_factory=list)


TaskHandler = Callable[[FrontierTask], Awaitable[HandlerResult]]


class Worker:
    """Claim / handle / complete loop around a :class:`FrontierQueueManager`.

    Fetching and parsing live in ``handler``; the worker only moves items
    through the frontier and feeds discovered links back in.
    """

    def __init__(
        self,
        queue: FrontierQueueManager,
        handler: TaskHandler,
        worker_id: int,
        *,
        poll_interval: float = 3.0,
        stop_when_drained: bool = False,
    ):
        self.queue = queue
        self.handler = handler
        self.worker_id = worker_id
        self.name = f"Worker-{worker_id}"
        self.poll_interval = poll_interval
        self.stop_when_drained = stop_when_drained

    async def complete(self, task: FrontierTask, result_code: Optional[int]) -> bool:
        """Report ``task`` done, retrying once on a store error.

        When both attempts fail the item stays claimed and is released by the
        next ``recover_stale_claims`` sweep.
        """
        for attempt in (1, 2):
            try:
                await self.queue.report_done(task.identity, result_code)
                return True
            except StoreError:
                logger.exception(
                    f"[{self.name}] report_done for {task.url} failed (attempt {attempt})"
                )
        logger.warning(f"[{self.name}] Leaving {task.url} claimed for recovery")
        return False

    async def process(self, task: FrontierTask) -> None:
        worker_label = str(self.worker_id)

        try:
            result = await self.handler(task)
        except Exception as e:
            logger.error(f"[{self.name}] Error processing {task.url}: {e}")
            WORKER_FAILED.labels(worker_id=worker_label).inc()
            await self.complete(task, FAILED_RESULT_CODE)
            return

        if result.discovered:
            await self.queue.enqueue_many(result.discovered)

        if not await self.complete(task, result.result_code):
            return
        WORKER_PROCESSED.labels(worker_id=worker_label).inc()
        logger.info(
            f"[{self.name}] Done: {task.url} (status={result.result_code}, links={len(result.discovered)})"
        )

    async def _drained(self) -> bool:
        try:
            return not await self.queue.has_pending()
        except StoreError:
            logger.exception(f"[{self.name}] Drain check failed; polling again")
            return False

    async def run(self) -> None:
        worker_label = str(self.worker_id)
        WORKER_ACTIVE.labels(worker_id=worker_label).set(1.0)

        logger.info(f"{self.name} started.")

        try:
            while True:
                task = await self.queue.claim_next()
                if task is None:
                    if self.stop_when_drained and await self._drained():
                        logger.info(f"{self.name} stopping; frontier drained")
                        break
                    await asyncio.sleep(self.poll_interval)
                    continue

                logger.debug(f"[{self.name}] Claimed: {task.url}")
                await self.process(task)
        finally:
            WORKER_ACTIVE.labels(worker_id=worker_label).set(0.0)
