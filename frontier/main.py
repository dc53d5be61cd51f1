import asyncio
import signal

from loguru import logger

# -------------------------------
# UVLOOP (optional event loop)
# -------------------------------
try:
    import uvloop
    uvloop.install()
except ImportError:
    logger.warning("uvloop not available, using default asyncio loop.")

# -------------------------------
# INTERNAL IMPORTS
# -------------------------------
from frontier.monitoring.metrics_server import QUEUE_PENDING, start_metrics_server
from frontier.partition import Partition
from frontier.priority import PriorityRules
from frontier.queue_manager import FrontierQueueManager
from frontier.records import UrlDescriptor
from frontier.storage.base import FrontierStore
from frontier.storage.memory_store import MemoryFrontierStore
from frontier.storage.postgres.postgres_init import init_postgres
from frontier.storage.postgres.postgres_store import PostgresFrontierStore
from frontier.utils.config_loader import FrontierConfig, load_config
from frontier.utils.logger import setup_logger


def build_store(config: FrontierConfig) -> FrontierStore:
    backend = config.store_backend.lower()
    if backend == "memory":
        return MemoryFrontierStore(config.journal_path)
    if backend == "postgres":
        return PostgresFrontierStore(
            config.database_url,
            min_size=config.pool_min_size,
            max_size=config.pool_max_size,
            connect_retries=config.connect_retries,
            retry_delay=config.connect_retry_delay,
        )
    raise ValueError(f"Unknown store backend '{config.store_backend}'")


# -------------------------------
# QUEUE METRIC MONITOR TASK
# -------------------------------
async def monitor_queue_size(queue: FrontierQueueManager, partition: Partition, interval: float = 2.0):
    label = partition.label()
    while True:
        try:
            QUEUE_PENDING.labels(partition=label).set(await queue.count(partition))
        except Exception as e:
            logger.error(f"Queue monitor error: {e}")
        await asyncio.sleep(interval)


async def bootstrap(config: FrontierConfig) -> FrontierQueueManager:
    """Open the frontier and make it safe for workers to start claiming.

    Any failure to open the store propagates: the service must not run
    against a store it could not open.
    """
    if config.store_backend.lower() == "postgres":
        await init_postgres(config.database_url)

    queue = FrontierQueueManager(
        build_store(config),
        partition=config.partition(),
        classifier=PriorityRules.from_config(config.priority_rules),
        batch_size=config.batch_size,
    )
    await queue.connect()

    # claims left behind by an unclean shutdown
    await queue.recover_stale_claims()

    if config.seed_urls:
        report = await queue.enqueue_many(UrlDescriptor(url=url) for url in config.seed_urls)
        logger.info(f"Seeded {report.inserted} of {report.submitted} configured URLs")

    return queue


# -------------------------------
# MAIN APPLICATION
# -------------------------------
async def main() -> None:
    config = load_config()
    setup_logger(config.log_level, config.log_path)

    logger.info("Starting frontier service...")

    queue = await bootstrap(config)

    metrics_runner, _ = await start_metrics_server(port=config.metrics_port)
    monitor_task = asyncio.create_task(monitor_queue_size(queue, queue.partition))

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    logger.info(
        f"Frontier service started for {queue.partition.label()} "
        f"({await queue.count()} pending)."
    )

    try:
        await shutdown_event.wait()
    except asyncio.CancelledError:
        pass
    finally:
        monitor_task.cancel()
        await asyncio.gather(monitor_task, return_exceptions=True)

        await metrics_runner.shutdown()
        await metrics_runner.cleanup()

        await queue.close()


# -------------------------------
# ENTRYPOINT
# -------------------------------
if __name__ == "__main__":
    asyncio.run(main())
