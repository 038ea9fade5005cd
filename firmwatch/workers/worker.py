from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog
from redis import Redis
from rq import Queue, Worker

from firmwatch.core.config import get_settings
from firmwatch.core.logging import setup_logging
from firmwatch.workers import jobs

logger = structlog.get_logger()

REGISTERED_JOBS = {
    "run_scan": jobs.run_scan_job,
    "scheduled_scan": jobs.scheduled_scan_job,
}


async def main() -> None:
    """Bootstrap the scan worker and start the recurring scan chain."""
    setup_logging()
    settings = get_settings()
    redis_connection = Redis.from_url(settings.redis_url)
    queue_names: Sequence[str] = (settings.scan_queue_name,)
    logger.info(
        "worker_bootstrap",
        queues=list(queue_names),
        redis_url=settings.redis_url,
        jobs=list(REGISTERED_JOBS.keys()),
        scan_interval_seconds=settings.scan_interval_seconds,
    )

    scan_queue = Queue(settings.scan_queue_name, connection=redis_connection)
    jobs.ensure_scan_scheduled(scan_queue, settings.scan_interval_seconds)

    await asyncio.to_thread(_run_worker, redis_connection, queue_names)


def _run_worker(connection: Redis, queue_names: Sequence[str]) -> None:
    """Run the RQ worker in a background thread."""
    queues = [Queue(name, connection=connection) for name in queue_names]
    worker = Worker(queues, connection=connection, name="firmwatch-worker")
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    asyncio.run(main())
