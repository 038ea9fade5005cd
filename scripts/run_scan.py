#!/usr/bin/env python3
"""Run a deadline scan once, or queue one on the scan worker."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from redis import Redis
from rq import Queue

from firmwatch.core.config import get_settings
from firmwatch.core.logging import setup_logging
from firmwatch.domain.services.audit import AuditRecorder
from firmwatch.domain.services.scan import ScanService
from firmwatch.infrastructure.db.session import dispose_engine, get_session_factory


async def run_inline(as_of: date | None) -> dict:
    session_factory = get_session_factory()
    scanner = ScanService(session_factory, audit=AuditRecorder(session_factory))
    try:
        summary = await scanner.run(as_of)
    finally:
        await dispose_engine()
    return {
        "scan_date": summary.scan_date.isoformat(),
        "summary": summary.to_dict(),
        "totals": summary.totals(),
        "failed_types": summary.failed_types,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--as-of", type=date.fromisoformat, help="Evaluate deadlines as of YYYY-MM-DD")
    parser.add_argument("--enqueue", action="store_true", help="Queue the scan instead of running it here")
    args = parser.parse_args()

    setup_logging()
    settings = get_settings()

    if args.enqueue:
        queue = Queue(settings.scan_queue_name, connection=Redis.from_url(settings.redis_url))
        job = queue.enqueue(
            "firmwatch.workers.jobs.run_scan_job",
            args.as_of.isoformat() if args.as_of else None,
        )
        print(f"Queued scan job {job.id} on '{settings.scan_queue_name}'")
        return

    result = asyncio.run(run_inline(args.as_of))
    print(json.dumps(result, indent=2))
    if result["failed_types"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
