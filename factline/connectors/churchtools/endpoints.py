"""Factline — ChurchTools API Endpoints.

Fetch functions for fact definitions, events, and per-event facts.
Nothing here persists or aggregates; the sync service owns that.
"""

import asyncio
from datetime import date
from typing import List, Optional, Sequence

from factline.config import settings
from factline.connectors.churchtools.client import (
    AuthenticationError,
    ChurchToolsAPIError,
    ChurchToolsClient,
)
from factline.connectors.churchtools.transformer import (
    transform_metric_definitions,
    transform_occurrences,
    transform_samples,
)
from factline.models.upstream_models import (
    FetchResult,
    MetricDefinitionRecord,
    OccurrenceRecord,
    SampleRecord,
)
from factline.core.logging import get_logger

logger = get_logger("churchtools.endpoints")

PROGRESS_EVERY = 10


def _iso(d: date | str) -> str:
    return d if isinstance(d, str) else d.isoformat()


class ChurchToolsEndpoints:
    """Typed fetches on top of an authenticated ChurchToolsClient."""

    def __init__(
        self,
        client: ChurchToolsClient,
        batch_size: int | None = None,
        delay_ms: int | None = None,
    ):
        self.client = client
        self.batch_size = max(1, batch_size or settings.sync_batch_size)
        self.delay_ms = settings.backfill_delay_ms if delay_ms is None else delay_ms

    async def ensure_authenticated(self) -> None:
        """Log in again if an earlier failure cleared the session."""
        if not self.client.authenticated:
            await self.client.authenticate()

    # ── Definitions ──

    async def fetch_metric_definitions(self) -> List[MetricDefinitionRecord]:
        """Full snapshot of fact definitions."""
        master_data = await self.client.get("/event/masterdata")
        definitions = transform_metric_definitions(master_data)
        logger.info(f"Fetched {len(definitions)} metric definitions")
        return definitions

    # ── Occurrences ──

    async def fetch_occurrences(
        self,
        year: Optional[int] = None,
        date_from: date | str | None = None,
        date_to: date | str | None = None,
    ) -> List[OccurrenceRecord]:
        """Events starting in a full year or an explicit [from, to] range."""
        params = {}
        if year is not None:
            params = {"from": f"{year}-01-01", "to": f"{year}-12-31"}
        elif date_from is not None and date_to is not None:
            params = {"from": _iso(date_from), "to": _iso(date_to)}

        raw = await self.client.get("/events", params=params or None)
        occurrences = transform_occurrences(raw)
        logger.info(f"Fetched {len(occurrences)} occurrences ({params or 'no range'})")
        return occurrences

    # ── Samples ──

    async def fetch_samples(self, occurrence_id: int) -> List[SampleRecord]:
        """Facts for one event.

        Upstream failures, including a 403 on an event the sync user may not
        read, degrade to an empty list. AuthenticationError propagates.
        """
        try:
            raw = await self.client.get(f"/events/{occurrence_id}/facts")
        except AuthenticationError:
            raise
        except ChurchToolsAPIError as e:
            logger.warning(
                f"Could not fetch samples for occurrence {occurrence_id}: {e}",
                extra={"occurrence_id": occurrence_id},
            )
            return []
        return transform_samples(raw)

    async def fetch_samples_batched(
        self, occurrences: Sequence[OccurrenceRecord]
    ) -> List[SampleRecord]:
        """Concurrent fetch, at most ``batch_size`` requests in flight."""
        samples: List[SampleRecord] = []
        for i in range(0, len(occurrences), self.batch_size):
            batch = occurrences[i : i + self.batch_size]
            results = await asyncio.gather(
                *(self.fetch_samples(o.id) for o in batch)
            )
            for batch_samples in results:
                samples.extend(batch_samples)
        return samples

    async def fetch_samples_with_delay(
        self,
        occurrences: Sequence[OccurrenceRecord],
        delay_ms: int | None = None,
    ) -> List[SampleRecord]:
        """Serial fetch with a fixed pause between requests (backfills)."""
        delay = (self.delay_ms if delay_ms is None else delay_ms) / 1000
        total = len(occurrences)
        logger.info(f"Fetching samples for {total} occurrences with {delay * 1000:.0f}ms delay...")

        samples: List[SampleRecord] = []
        for i, occurrence in enumerate(occurrences):
            samples.extend(await self.fetch_samples(occurrence.id))
            if i < total - 1 and delay > 0:
                await asyncio.sleep(delay)
            if (i + 1) % PROGRESS_EVERY == 0:
                logger.info(f"  Processed {i + 1}/{total} occurrences...")

        logger.info(f"Completed fetching samples for {total} occurrences")
        return samples

    # ── Combined ──

    async def fetch_range(self, date_from: date | str, date_to: date | str) -> FetchResult:
        occurrences = await self.fetch_occurrences(date_from=date_from, date_to=date_to)
        samples = await self.fetch_samples_batched(occurrences)
        return FetchResult(occurrences=occurrences, samples=samples)

    async def fetch_year(self, year: int, delay_ms: int | None = None) -> FetchResult:
        occurrences = await self.fetch_occurrences(year=year)
        samples = await self.fetch_samples_with_delay(occurrences, delay_ms)
        return FetchResult(occurrences=occurrences, samples=samples)
