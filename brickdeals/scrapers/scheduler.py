"""APScheduler-based scraping scheduler.

This module provides a background job scheduler that runs a periodic
scrape for every configured target URL. It uses APScheduler to call the
ScraperService at configurable intervals.
"""

import asyncio
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional

import structlog
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from brickdeals.config import settings
from brickdeals.scrapers.scraper_service import ScraperService

logger = structlog.get_logger(__name__)

# Delay between the first runs of consecutive targets
STAGGER_SECONDS = 30


class ScraperScheduler:
    """Manages periodic scraping jobs using APScheduler.

    This scheduler:
    - Starts and stops background scraping jobs
    - Staggers first runs to avoid hitting every site at once
    - Keeps the outcome of the last run per target
    - Handles errors without stopping the scheduler
    """

    def __init__(self, scraper_service: ScraperService):
        """Initialize scraper scheduler.

        Args:
            scraper_service: Service used to run each scrape
        """
        self.scraper_service = scraper_service
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.logger = logger.bind(service="scraper_scheduler")
        self._job_ids: Dict[str, str] = {}  # Map target url -> job_id
        self._last_results: Dict[str, dict] = {}

    def start(self) -> None:
        """Start the scheduler.

        Jobs are not added automatically. Call add_target_job() or
        load_target_jobs() to register them.
        """
        if not self.scheduler.running:
            self.scheduler.start()
            self.logger.info("scheduler_started")
        else:
            self.logger.warning("scheduler_already_running")

    async def stop(self) -> None:
        """Stop the scheduler, waiting for running jobs to complete."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
            # AsyncIOScheduler runs shutdown as a loop callback
            await asyncio.sleep(0)
            self.logger.info("scheduler_stopped")
        else:
            self.logger.warning("scheduler_not_running")

    def load_target_jobs(
        self,
        urls: Optional[Iterable[str]] = None,
        interval_minutes: Optional[int] = None,
    ) -> int:
        """Schedule a job for every target URL.

        Args:
            urls: Target URLs; settings.SCRAPE_TARGETS by default
            interval_minutes: Interval for every job; settings default

        Returns:
            Number of jobs scheduled
        """
        targets = list(urls) if urls is not None else settings.get_scrape_targets()
        interval = interval_minutes or settings.SCRAPE_INTERVAL_MINUTES

        self.logger.info("loading_target_jobs", count=len(targets))

        jobs_added = 0
        for idx, url in enumerate(targets):
            job = self.add_target_job(
                url=url,
                interval_minutes=interval,
                offset_seconds=idx * STAGGER_SECONDS,
            )
            if job is not None:
                jobs_added += 1

        self.logger.info("target_jobs_loaded", count=jobs_added)
        return jobs_added

    def add_target_job(
        self,
        url: str,
        interval_minutes: int = 60,
        offset_seconds: int = 0,
    ) -> Optional[Job]:
        """Add a periodic scraping job for a target URL.

        Args:
            url: Target listing or detail URL
            interval_minutes: How often to run the job
            offset_seconds: Initial delay before first run (for staggering)

        Returns:
            APScheduler Job instance or None if already scheduled
        """
        if url in self._job_ids:
            self.logger.warning("job_already_exists", url=url)
            return None

        start_date = datetime.now(timezone.utc) + timedelta(seconds=offset_seconds)
        trigger = IntervalTrigger(
            minutes=interval_minutes,
            start_date=start_date,
            timezone="UTC",
        )

        job_id = f"scrape_{hashlib.sha1(url.encode('utf-8')).hexdigest()[:12]}"
        job = self.scheduler.add_job(
            func=self._run_target_scrape_wrapper,
            trigger=trigger,
            args=[url],
            id=job_id,
            name=f"Scrape {url}",
            replace_existing=True,
            max_instances=1,  # No overlapping runs of the same target
            next_run_time=start_date,
        )

        self._job_ids[url] = job.id

        self.logger.info(
            "target_job_added",
            url=url,
            job_id=job.id,
            interval_minutes=interval_minutes,
            offset_seconds=offset_seconds,
            first_run=start_date.isoformat(),
        )
        return job

    def remove_target_job(self, url: str) -> bool:
        """Remove the scraping job of a target URL.

        Returns:
            True if job was removed, False if not found
        """
        job_id = self._job_ids.get(url)
        if not job_id:
            self.logger.warning("job_not_found", url=url)
            return False

        if self.scheduler.get_job(job_id) is not None:
            self.scheduler.remove_job(job_id)
        del self._job_ids[url]
        self._last_results.pop(url, None)

        self.logger.info("target_job_removed", url=url)
        return True

    async def _run_target_scrape_wrapper(self, url: str) -> None:
        """Entry point called by APScheduler.

        Catches all exceptions so a failing job never stops the scheduler.
        """
        try:
            await self.run_target_scrape(url)
        except Exception as e:
            self._last_results[url] = {
                "status": "failed",
                "finished_at": datetime.now(timezone.utc).isoformat(),
                "error": str(e),
            }
            self.logger.error(
                "scrape_job_failed",
                url=url,
                error=str(e),
                exc_info=True,
            )

    async def run_target_scrape(self, url: str) -> int:
        """Execute a single scraping job for a target URL.

        Returns:
            Number of records extracted

        Raises:
            InvalidInputError: If the URL is not supported
            PersistenceError: If the store cannot be read or written
        """
        self.logger.info("starting_scrape_job", url=url)
        start_time = datetime.now(timezone.utc)

        records = await self.scraper_service.scrape(url)

        end_time = datetime.now(timezone.utc)
        duration = (end_time - start_time).total_seconds()
        stats = self.scraper_service.last_merge_stats.get(url)

        self._last_results[url] = {
            "status": "completed",
            "finished_at": end_time.isoformat(),
            "duration_seconds": round(duration, 2),
            "items_found": len(records),
            **(stats.as_dict() if stats is not None and records else {}),
        }

        self.logger.info(
            "scrape_job_completed",
            url=url,
            items_found=len(records),
            duration_seconds=round(duration, 2),
        )
        return len(records)

    def get_jobs_status(self) -> dict:
        """Get status of all scheduled jobs.

        Returns:
            Dict with job information keyed by target url
        """
        jobs = {}
        for url, job_id in self._job_ids.items():
            job = self.scheduler.get_job(job_id)
            if job:
                next_run = getattr(job, "next_run_time", None)
                jobs[url] = {
                    "job_id": job_id,
                    "next_run": next_run.isoformat() if next_run else None,
                    "trigger": str(job.trigger),
                    "last_result": self._last_results.get(url),
                }
        return jobs

    def is_running(self) -> bool:
        return self.scheduler.running
