"""Factline — Data Sync Service.

Keeps the local store in step with ChurchTools:
  definitions → occurrences → samples, in that order, per pass.

Two passes exist: the rolling three-month window (scheduled + startup)
and a full-year backfill on the slow, rate-limit-friendly path.
At most one pass runs at a time, process-wide.
"""

import threading
import time
from calendar import monthrange
from datetime import date, datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Optional, Tuple

from pydantic import BaseModel
from sqlmodel import Session

from factline.config import settings
from factline.connectors.churchtools.endpoints import ChurchToolsEndpoints
from factline.database import new_session
from factline.models.upstream_models import FetchResult, to_utc
from factline.store import repository
from factline.core.logging import get_logger

logger = get_logger("sync")


class SyncAlreadyRunningError(Exception):
    """Another sync pass holds the single-flight lock."""

    def __init__(self, message: str = "Sync already in progress"):
        super().__init__(message)


class SyncResult(BaseModel):
    """Record counts written by one pass."""

    definitions: int = 0
    occurrences: int = 0
    samples: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def window_bounds(today: date) -> Tuple[date, date]:
    """First day of the previous month to the last day of the next month."""
    prev_year, prev_month = (today.year, today.month - 1) if today.month > 1 else (today.year - 1, 12)
    next_year, next_month = (today.year, today.month + 1) if today.month < 12 else (today.year + 1, 1)
    last_day = monthrange(next_year, next_month)[1]
    return date(prev_year, prev_month, 1), date(next_year, next_month, last_day)


class DataSyncService:
    """Single-flight orchestrator over the ingestion endpoints and the store."""

    def __init__(
        self,
        endpoints: ChurchToolsEndpoints,
        session_factory: Callable[[], Session] = new_session,
    ):
        self.endpoints = endpoints
        self.session_factory = session_factory
        self._lock = threading.Lock()

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    # ── Single-flight ──

    def _try_start(self) -> bool:
        # Non-blocking acquire is the atomic test-and-set
        return self._lock.acquire(blocking=False)

    def _finish(self) -> None:
        self._lock.release()

    # ── Pass ──

    async def _run_pass(
        self, name: str, fetch: Callable[[], Awaitable[FetchResult]]
    ) -> SyncResult:
        started = time.monotonic()
        result = SyncResult()

        await self.endpoints.ensure_authenticated()

        logger.info("Fetching metric definitions...")
        definitions = await self.endpoints.fetch_metric_definitions()
        with self.session_factory() as session:
            for definition in definitions:
                repository.upsert_metric_definition(session, definition)
            repository.commit_or_raise(session)
        result.definitions = len(definitions)

        fetched = await fetch()

        with self.session_factory() as session:
            labels: Dict[int, str] = {}
            for occurrence in fetched.occurrences:
                repository.upsert_occurrence(session, occurrence)
                labels[occurrence.id] = occurrence.name
            for sample in fetched.samples:
                repository.upsert_sample(
                    session, sample, labels.get(sample.occurrence_id)
                )
            # Occurrences and their samples commit as one unit
            repository.commit_or_raise(session)
        result.occurrences = len(fetched.occurrences)
        result.samples = len(fetched.samples)

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"{name} complete: {result.definitions} definitions, "
            f"{result.occurrences} occurrences, {result.samples} samples",
            extra={"duration_ms": duration_ms},
        )
        return result

    async def sync_window(self, now: Optional[datetime] = None) -> SyncResult:
        """Re-sync previous, current and next calendar month.

        Raises SyncAlreadyRunningError if a pass is in flight.
        """
        if not self._try_start():
            raise SyncAlreadyRunningError()

        try:
            date_from, date_to = window_bounds((now or _utcnow()).date())
            logger.info(f"Starting window sync {date_from} → {date_to}...")
            return await self._run_pass(
                "Window sync",
                lambda: self.endpoints.fetch_range(date_from, date_to),
            )
        except Exception as e:
            logger.error(f"Window sync failed: {e}")
            raise
        finally:
            self._finish()

    async def sync_year(self, year: int) -> SyncResult:
        """Backfill one calendar year on the delayed, serial fetch path.

        Raises SyncAlreadyRunningError if a pass is in flight.
        """
        if not self._try_start():
            raise SyncAlreadyRunningError()

        try:
            logger.info(f"Starting full year sync for {year}...", extra={"year": year})
            return await self._run_pass(
                f"Year {year} sync",
                lambda: self.endpoints.fetch_year(year),
            )
        except Exception as e:
            logger.error(f"Year {year} sync failed: {e}", extra={"year": year})
            raise
        finally:
            self._finish()

    async def run_scheduled_sync(self) -> Optional[SyncResult]:
        """Scheduler entry point: a concurrent pass means skip, not error."""
        try:
            return await self.sync_window()
        except SyncAlreadyRunningError:
            logger.info("Sync already in progress, skipping scheduled run")
            return None

    # ── Startup ──

    def last_sync(self) -> Optional[datetime]:
        with self.session_factory() as session:
            return repository.get_sync_watermark(session)

    async def perform_initial_sync(
        self, now: Optional[datetime] = None
    ) -> Optional[SyncResult]:
        """Window sync unless the last one is fresher than the threshold."""
        now = to_utc(now) if now is not None else _utcnow()
        last_sync = self.last_sync()

        if last_sync is None:
            logger.info("No previous sync found, starting initial sync...")
            return await self.sync_window(now)

        age = now - last_sync
        hours = age / timedelta(hours=1)
        logger.info(f"Last sync was {hours:.2f} hours ago")
        if hours > settings.sync_freshness_hours:
            logger.info("Last sync is stale, starting sync...")
            return await self.sync_window(now)

        logger.info("Recent sync found, skipping initial sync")
        return None
