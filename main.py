#!/usr/bin/env python3
"""
Rental request pool worker.

Runs the pool scheduler: hourly expiration sweep plus daily, weekly and
monthly maintenance jobs.
"""

import sys
import asyncio
import argparse
import logging
import signal

from request_pool.config import is_component_enabled, is_development_mode
from request_pool.logger import setup_logging, auto_setup_logging
from request_pool.scheduler import PoolScheduler
from request_pool.service import create_request_pool_service

logger = logging.getLogger(__name__)


async def run(once: bool = False) -> int:
    """Start the service and the scheduler loop (or a single tick)."""
    service = await create_request_pool_service()

    try:
        scheduler = PoolScheduler(service)

        if once:
            results = await scheduler.run_scheduled_tasks()
            failed = [name for name, result in results.items()
                      if isinstance(result, dict) and 'error' in result]
            return 1 if failed else 0

        if not is_component_enabled('scheduler'):
            logger.error("❌ Scheduler is disabled in config/features.yaml")
            return 1

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda: asyncio.ensure_future(scheduler.stop()))
            except NotImplementedError:
                # Windows event loops have no signal handlers
                pass

        await scheduler.start()
        return 0
    finally:
        await service.close()


def main():
    parser = argparse.ArgumentParser(description='Rental request pool worker')
    parser.add_argument('--once', action='store_true', help='run due jobs once and exit')
    parser.add_argument('--log-level', default=None, help='override LOG_LEVEL')
    args = parser.parse_args()

    if args.log_level:
        setup_logging(level=args.log_level, use_json=not is_development_mode())
    else:
        auto_setup_logging()

    sys.exit(asyncio.run(run(once=args.once)))


if __name__ == '__main__':
    main()
