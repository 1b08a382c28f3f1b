"""
Scheduler module for Waitlist Alerts.

Uses APScheduler to poll the match engine on an interval (default every
3 hours). The poller remembers when it last ran and passes that to the
engine, which can use it to skip runs that come too soon.

Can also be run manually via command line.
"""

import logging
from datetime import datetime
from typing import Optional
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import AppConfig, get_app_config
from .errors import PipelineError
from .models import RunReport, utcnow
from .pipeline import MatchAlertPipeline

logger = logging.getLogger(__name__)


class MatchAlertPoller:
    """
    Periodic caller of the match engine.

    Usage:
        poller = MatchAlertPoller()
        poller.poll()          # one run
        poller.start()         # blocking schedule
    """

    def __init__(
        self,
        pipeline: Optional[MatchAlertPipeline] = None,
        config: Optional[AppConfig] = None,
    ):
        self.config = config or get_app_config()
        self.pipeline = pipeline or MatchAlertPipeline(config=self.config)
        self.last_run: Optional[datetime] = None

    def poll(self) -> Optional[RunReport]:
        """
        Run the engine once.

        Returns:
            RunReport, or None if the run failed
        """
        started = utcnow()
        try:
            report = self.pipeline.run(last_run=self.last_run, now=started)
        except PipelineError as e:
            logger.error(f"Match alert run failed: {e}")
            return None

        if not report.skipped:
            self.last_run = started
        return report

    def create_scheduler(self) -> BlockingScheduler:
        """Create the APScheduler with the polling job."""
        scheduler = BlockingScheduler()
        hours = self.config.poll_interval_hours

        scheduler.add_job(
            self.poll,
            trigger=IntervalTrigger(hours=hours),
            id="match_alerts",
            name="Check waitlist matches and alert agents",
            replace_existing=True,
            max_instances=1,
        )

        logger.info(f"Scheduler configured to poll every {hours} hours")
        return scheduler

    def start(self) -> None:
        """Start the scheduler (blocking)."""
        scheduler = self.create_scheduler()

        logger.info("Starting Waitlist Alerts scheduler...")
        logger.info("Press Ctrl+C to stop")

        logger.info("Running initial match check...")
        self.poll()

        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler stopped")


# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main():
    """CLI entry point for the scheduler."""
    import argparse

    parser = argparse.ArgumentParser(description="Waitlist Alerts Scheduler")
    parser.add_argument(
        "--mode",
        choices=["schedule", "once"],
        default="schedule",
        help="Mode to run: schedule (continuous) or once (single run)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    poller = MatchAlertPoller()
    if args.mode == "schedule":
        poller.start()
    else:
        logger.info("Running single match check...")
        poller.poll()


if __name__ == "__main__":
    main()
