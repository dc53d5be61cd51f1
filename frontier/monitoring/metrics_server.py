from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    generate_latest,
    Counter,
    Gauge,
    Histogram,
)

# -------------------------
# Worker-Level Metrics
# -------------------------

WORKER_PROCESSED = Counter(
    "jooya_worker_processed_total",
    "Successfully processed work items",
    ["worker_id"],
)

WORKER_FAILED = Counter(
    "jooya_worker_failed_total",
    "Work items whose handler raised",
    ["worker_id"],
)

WORKER_ACTIVE = Gauge(
    "jooya_worker_active",
    "Worker active state",
    ["worker_id"],
)

# -------------------------
# Ingest Metrics
# -------------------------

FRONTIER_ENQUEUED = Counter(
    "jooya_frontier_enqueued_total",
    "URLs inserted into the frontier",
    ["partition"],
)

FRONTIER_DUPLICATES = Counter(
    "jooya_frontier_duplicates_total",
    "URLs ignored because their identity was already queued",
    ["partition"],
)

FRONTIER_INGEST_FAILED = Counter(
    "jooya_frontier_ingest_failed_total",
    "URLs that could not be inserted",
    ["partition"],
)

# -------------------------
# Claim / Lifecycle Metrics
# -------------------------

FRONTIER_CLAIMED = Counter(
    "jooya_frontier_claimed_total",
    "Work items handed to a worker",
    ["partition"],
)

FRONTIER_CLAIM_EMPTY = Counter(
    "jooya_frontier_claim_empty_total",
    "Claim attempts that found nothing to do",
    ["partition"],
)

FRONTIER_CLAIM_ERRORS = Counter(
    "jooya_frontier_claim_errors_total",
    "Claim attempts aborted by a store error",
    ["partition"],
)

FRONTIER_COMPLETED = Counter(
    "jooya_frontier_completed_total",
    "Work items reported done",
    ["partition"],
)

FRONTIER_RECOVERED = Counter(
    "jooya_frontier_recovered_total",
    "Stale claims reset to pending",
    ["partition"],
)

CLAIM_LATENCY = Histogram(
    "jooya_frontier_claim_latency_seconds",
    "Time spent selecting and claiming the next item",
    ["partition"],
)

# -------------------------
# Queue Metrics
# -------------------------

QUEUE_PENDING = Gauge(
    "jooya_frontier_pending",
    "Number of URLs waiting in the frontier",
    ["partition"],
)


# -------------------------
# /metrics endpoint
# -------------------------

async def metrics_handler(request):
    data = generate_latest()

    # content_type must not carry the charset parameter
    ctype = CONTENT_TYPE_LATEST.split(";")[0]

    return web.Response(
        body=data,
        content_type=ctype
    )


def create_metrics_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/metrics", metrics_handler)
    return app


async def start_metrics_server(port=8000):
    runner = web.AppRunner(create_metrics_app())
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", port)
    await site.start()

    return runner, site
