"""
One-shot pool maintenance for cron.

Expires overdue pool requests and, on request, runs the maintenance jobs
that the long-running worker schedules itself.

Usage:
    python scripts/run_pool_maintenance.py                # sweep only
    python scripts/run_pool_maintenance.py --reconcile --analytics
    python scripts/run_pool_maintenance.py --all
"""

import asyncio
import argparse
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from request_pool.logger import auto_setup_logging
from request_pool.retry import job_retry
from request_pool.service import create_request_pool_service


async def run_maintenance(reconcile: bool, analytics: bool, prune: bool):
    service = await create_request_pool_service()

    try:
        sweep = await job_retry(service.cleanup_expired_requests)()
        print(f"🧹 Sweep: {sweep['expired']}/{sweep['found']} expired, failed: {sweep['failed'] or '-'}")

        if reconcile:
            result = await job_retry(service.capacity.reconcile_availability)()
            print(f"🔧 Availability: {result['closed']} closed, {result['reopened']} reopened")

        if analytics:
            result = await job_retry(service.refresh_all_analytics)()
            print(f"📈 Analytics: {result['snapshots']}/{result['locations']} locations")

            result = await job_retry(service.refresh_landlord_metrics)()
            print(f"📈 Landlord metrics: {result['landlords']} landlords, {result['with_responses']} with responses")

        if prune:
            result = await job_retry(service.prune_history)()
            print(f"🗑️ Pruned: {result['analytics']} snapshots, {result['matches']} matches")

        stats = await service.get_pool_stats()
        print(
            f"✅ Pool: {stats['active_requests']} active requests, "
            f"{stats['available_landlords']} available landlords, "
            f"{stats['recent_matches']} matches in 24h"
        )
    finally:
        await service.close()


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Request pool maintenance')
    parser.add_argument('--reconcile', action='store_true', help='realign landlord availability')
    parser.add_argument('--analytics', action='store_true', help='snapshot every location and refresh landlord metrics')
    parser.add_argument('--prune', action='store_true', help='delete old analytics and handled matches')
    parser.add_argument('--all', action='store_true', help='run every job')
    args = parser.parse_args()

    auto_setup_logging()
    asyncio.run(run_maintenance(
        reconcile=args.reconcile or args.all,
        analytics=args.analytics or args.all,
        prune=args.prune or args.all,
    ))
