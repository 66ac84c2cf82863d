"""Retry controller with exponential backoff for scrape units of work."""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from brickdeals.config import settings
from brickdeals.core.exceptions import ScrapeAttemptError
from brickdeals.scrapers.base import DealRecord

logger = structlog.get_logger(__name__)


# A unit of work receives its 1-based attempt number
ScrapeUnit = Callable[[int], Awaitable[List[DealRecord]]]


@dataclass
class RetryOutcome:
    """Result of running a unit of work under the retry controller."""

    records: List[DealRecord] = field(default_factory=list)
    attempts: int = 0
    succeeded: bool = False
    last_error: Optional[str] = None


class RetryController:
    """Runs a scrape unit with bounded attempts and exponential backoff.

    NavigationError and ZeroResultExtractionError (any ScrapeAttemptError)
    fail an attempt. Once attempts are exhausted the controller returns an
    empty outcome instead of raising. Any other exception is a bug and
    propagates immediately.
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        backoff_multiplier: Optional[float] = None,
        backoff_max: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_attempts = settings.MAX_SCRAPE_ATTEMPTS if max_attempts is None else max_attempts
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._multiplier = (
            settings.BACKOFF_MULTIPLIER_SECONDS if backoff_multiplier is None else backoff_multiplier
        )
        self._max_wait = settings.BACKOFF_MAX_SECONDS if backoff_max is None else backoff_max
        self._sleep = sleep

    def _retrying(self, label: str) -> AsyncRetrying:
        def _log_before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "scrape_attempt_failed",
                target=label,
                attempt=retry_state.attempt_number,
                max_attempts=self.max_attempts,
                error=str(error),
                backoff_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self._multiplier, max=self._max_wait),
            retry=retry_if_exception_type(ScrapeAttemptError),
            before_sleep=_log_before_sleep,
            sleep=self._sleep,
            reraise=False,
        )

    async def run(self, unit: ScrapeUnit, label: str = "") -> RetryOutcome:
        """Run a unit of work until it succeeds or attempts run out.

        Args:
            unit: Coroutine function taking the attempt number
            label: Target description used in log events (usually the URL)

        Returns:
            RetryOutcome with the records of the successful attempt, or an
            empty record list after the final failed attempt
        """
        attempt_number = 0
        try:
            async for attempt in self._retrying(label):
                attempt_number = attempt.retry_state.attempt_number
                with attempt:
                    records = await unit(attempt_number)
        except RetryError as e:
            error = e.last_attempt.exception()
            logger.error(
                "scrape_attempts_exhausted",
                target=label,
                attempts=attempt_number,
                error=str(error),
            )
            return RetryOutcome(
                records=[],
                attempts=attempt_number,
                succeeded=False,
                last_error=str(error),
            )

        logger.info(
            "scrape_unit_succeeded",
            target=label,
            attempts=attempt_number,
            count=len(records),
        )
        return RetryOutcome(records=records, attempts=attempt_number, succeeded=True)
