#!/usr/bin/env python3
"""
Telecast Refresh Scheduler Runner
=================================

Entry point for running refresh batches, either once or as a continuous
service that starts a new batch every ``refresh.interval_minutes``.
"""

import sys
import asyncio
import argparse
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from telecast.config.settings import get_settings
from telecast.database.schema import DatabaseSchema
from telecast.database.connection import get_db_manager
from telecast.refresh.pipeline import RefreshPipeline
from telecast.utils.logging import configure_application_logging, get_logger_for_component


class RefreshSchedulerService:
    """
    Service wrapper for RefreshPipeline that handles continuous operation.
    """

    def __init__(self, pipeline: RefreshPipeline, batch_size=None):
        self.pipeline = pipeline
        self.batch_size = batch_size
        self.settings = pipeline.settings
        self.logger = get_logger_for_component("scheduler")
        self.running = True

    async def run_service(self):
        """Run refresh batches until stopped."""
        interval = self.settings.refresh.interval_minutes
        self.logger.info(f"Starting refresh service, one batch every {interval} minutes")

        while self.running:
            try:
                report = await self.pipeline.run_batch(batch_size=self.batch_size)
                self.logger.info(
                    f"Batch finished: {report.succeeded} succeeded, {report.failed} failed "
                    f"in {report.duration_seconds:.1f}s"
                )
                await asyncio.sleep(interval * 60)

            except asyncio.CancelledError:
                self.running = False
                raise
            except Exception as e:
                self.logger.error(f"Service error: {e}", exc_info=True)
                # Back off for 5 minutes before retrying on error
                await asyncio.sleep(5 * 60)

        self.logger.info("Refresh service stopped")


async def main():
    """Main entry point for the scheduler."""
    parser = argparse.ArgumentParser(description='Telecast Refresh Scheduler')
    parser.add_argument('--service', action='store_true',
                        help='Run as continuous service (for Docker/systemd)')
    parser.add_argument('--batch-size', type=int, default=None,
                        help='Channels per batch (default from config)')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    args = parser.parse_args()

    settings = get_settings()

    configure_application_logging(
        settings.logging,
        level="DEBUG" if args.debug else settings.get_effective_log_level(),
    )
    logger = get_logger_for_component("scheduler_runner")

    logger.info("Starting Telecast Refresh Scheduler...")

    try:
        DatabaseSchema(settings.database.path).create_tables()
        db = get_db_manager(settings.database.path, pool_size=settings.database.pool_size)
        pipeline = RefreshPipeline(db, settings=settings)

        if args.service:
            print("🕐 Telecast Refresh Service starting...")
            print(f"📅 Refreshing every {settings.refresh.interval_minutes} minutes")
            print("Press Ctrl+C to stop.")

            service = RefreshSchedulerService(pipeline, batch_size=args.batch_size)
            await service.run_service()

        else:
            print("🔄 Running refresh batch...")
            report = await pipeline.run_batch(batch_size=args.batch_size)
            print("\n".join(report.summary_lines()))
            # Feed failures do not fail the run
            sys.exit(0)

    except KeyboardInterrupt:
        print("\n👋 Scheduler stopped by user")
        logger.info("Scheduler stopped by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"❌ Failed to start scheduler: {e}")
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(130)
